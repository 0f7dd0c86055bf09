"""
Expense Transaction Processor

Records, edits and removes expenses together with their envelope effect.

Each mutation is one atomic unit:

    create  -> apply(envelope, amount) + insert expense
    update  -> reverse(old envelope, old amount) + apply(new envelope,
               new amount) + update expense    (only when amount or
               envelope changes; otherwise just the expense row)
    delete  -> reverse(envelope, amount) + delete expense

If any step fails, every record is left as it was.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from spendly.audit import create_correlation_id
from spendly.errors import NotFoundError
from spendly.models.ledger import Expense, ExpenseOutcome
from spendly.models.reports import DailyStats
from spendly.services.ledger.balance import EnvelopeBalanceEngine
from spendly.services.ledger.guard import MutationGuard
from spendly.services.storage import LedgerStorageInterface
from spendly.validation import InputValidator


logger = structlog.get_logger(__name__)


class _Unset:
    """Marker for optional fields that were not passed at all."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class ExpenseProcessor:
    """Expense mutations and expense reads."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        balance_engine: EnvelopeBalanceEngine,
        guard: MutationGuard,
    ):
        self._storage = storage
        self._balance = balance_engine
        self._guard = guard

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create_expense(
        self,
        owner_id: UUID,
        envelope_id: Any,
        amount: Any,
        description: str,
        expense_date: Any,
        shop_name: Optional[str] = None,
        receipt_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Record an expense and charge its envelope.

        Raises:
            ValidationError: Bad amount, description, date or envelope id
            NotFoundError: Envelope missing or owned by someone else
            ConsistencyError: A storage write failed (nothing was written)
        """
        expense, _ = await self._record(
            owner_id,
            envelope_id,
            amount,
            description,
            expense_date,
            shop_name,
            receipt_url,
            correlation_id,
        )
        return expense

    async def add_expense(
        self,
        owner_id: UUID,
        envelope_id: Any,
        amount: Any,
        description: str,
        expense_date: Any,
        shop_name: Optional[str] = None,
        receipt_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseOutcome:
        """
        Record an expense and report its effect.

        Same as create_expense(), but also returns the envelope's new
        balance, the owner's total spend on the expense date and whether
        the envelope is now overspent.
        """
        expense, new_balance = await self._record(
            owner_id,
            envelope_id,
            amount,
            description,
            expense_date,
            shop_name,
            receipt_url,
            correlation_id,
        )
        daily = await self.daily_stats(owner_id, expense.expense_date)
        return ExpenseOutcome(
            expense=expense,
            new_balance=new_balance,
            daily_spend=daily.total_spent,
            is_overspent=new_balance < 0,
        )

    async def apply_expense(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        amount: Decimal,
        description: str,
        expense_date: date,
        shop_name: Optional[str] = None,
        receipt_url: Optional[str] = None,
    ) -> tuple[Expense, Decimal]:
        """
        Charge the envelope and insert the expense, without auditing.

        Joins the caller's transaction and locks when they are active;
        input must already be validated.

        Returns:
            (expense, new envelope balance)
        """
        async with self._guard.hold(envelope_id):
            async with self._storage.transaction():
                new_balance = await self._balance.apply(owner_id, envelope_id, amount)
                expense = Expense(
                    owner_id=owner_id,
                    envelope_id=envelope_id,
                    amount=amount,
                    description=description,
                    expense_date=expense_date,
                    shop_name=shop_name,
                    receipt_url=receipt_url,
                )
                await self._storage.insert_expense(expense)
        return expense, new_balance

    async def _record(
        self,
        owner_id: UUID,
        envelope_id: Any,
        amount: Any,
        description: str,
        expense_date: Any,
        shop_name: Optional[str],
        receipt_url: Optional[str],
        correlation_id: Optional[UUID],
    ) -> tuple[Expense, Decimal]:
        check = InputValidator()
        envelope_id = check.identifier(envelope_id, "envelope_id")
        amount = check.amount(amount)
        description = check.text(description, "description")
        expense_date = check.calendar_date(expense_date, "expense_date")
        shop_name = check.text(shop_name, "shop_name", max_length=200, required=False)
        receipt_url = check.text(receipt_url, "receipt_url", max_length=2000, required=False)
        check.raise_if_invalid("create_expense")

        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.atomic(
            owner_id,
            "create_expense",
            envelope_id,
            correlation_id=correlation_id,
        ):
            expense, new_balance = await self.apply_expense(
                owner_id,
                envelope_id,
                amount,
                description,
                expense_date,
                shop_name=shop_name,
                receipt_url=receipt_url,
            )

        logger.info(
            "expense_recorded",
            expense_id=str(expense.id),
            envelope_id=str(envelope_id),
            amount=str(amount),
        )
        if self._guard.audit_logger:
            await self._guard.audit_logger.log_expense_recorded(
                owner_id=owner_id,
                expense_id=expense.id,
                envelope_id=envelope_id,
                amount=amount,
                new_balance=new_balance,
                correlation_id=correlation_id,
            )
        return expense, new_balance

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    async def update_expense(
        self,
        owner_id: UUID,
        expense_id: UUID,
        amount: Any = None,
        description: Optional[str] = None,
        envelope_id: Any = None,
        expense_date: Any = None,
        shop_name: Optional[str] = UNSET,
        receipt_url: Optional[str] = UNSET,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Edit an expense, moving money between envelopes when needed.

        amount, description, envelope_id and expense_date are unchanged
        when None. shop_name and receipt_url are unchanged when omitted
        and cleared when passed as None.

        Raises:
            ValidationError: Bad replacement values
            NotFoundError: Expense or target envelope missing
            ConsistencyError: A storage write failed (nothing was written)
        """
        check = InputValidator()
        changes: dict[str, Any] = {}
        if amount is not None:
            changes["amount"] = check.amount(amount)
        if description is not None:
            changes["description"] = check.text(description, "description")
        if envelope_id is not None:
            changes["envelope_id"] = check.identifier(envelope_id, "envelope_id")
        if expense_date is not None:
            changes["expense_date"] = check.calendar_date(expense_date, "expense_date")
        if shop_name is not UNSET:
            changes["shop_name"] = check.text(
                shop_name, "shop_name", max_length=200, required=False
            )
        if receipt_url is not UNSET:
            changes["receipt_url"] = check.text(
                receipt_url, "receipt_url", max_length=2000, required=False
            )
        check.raise_if_invalid("update_expense")

        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.hold(expense_id):
            current = await self._fetch(owner_id, expense_id, "update_expense")

            old_envelope = current.envelope_id
            old_amount = current.amount
            new_envelope = changes.get("envelope_id", old_envelope)
            new_amount = changes.get("amount", old_amount)
            ledger_changed = new_envelope != old_envelope or new_amount != old_amount

            lock_ids = (old_envelope, new_envelope) if ledger_changed else ()
            async with self._guard.atomic(
                owner_id,
                "update_expense",
                *lock_ids,
                correlation_id=correlation_id,
            ):
                if ledger_changed:
                    if new_envelope != old_envelope:
                        target = await self._storage.get_envelope(
                            owner_id,
                            new_envelope,
                            for_update=True,
                        )
                        if target is None:
                            raise NotFoundError("envelope", new_envelope)

                    await self._balance.reverse(owner_id, old_envelope, old_amount)
                    await self._balance.apply(owner_id, new_envelope, new_amount)

                updated = current.with_changes(**changes)
                await self._storage.update_expense(updated)

        if self._guard.audit_logger:
            details = dict(changes)
            if ledger_changed:
                details["old_envelope_id"] = old_envelope
                details["old_amount"] = old_amount
            await self._guard.audit_logger.log_expense_updated(
                owner_id=owner_id,
                expense_id=expense_id,
                ledger_changed=ledger_changed,
                details=details,
                correlation_id=correlation_id,
            )
        return updated

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_expense(
        self,
        owner_id: UUID,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Remove an expense and return its amount to the envelope.

        Raises:
            NotFoundError: Expense missing or owned by someone else
            ConsistencyError: A storage write failed (nothing was written)
        """
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.hold(expense_id):
            current = await self._fetch(owner_id, expense_id, "delete_expense")

            async with self._guard.atomic(
                owner_id,
                "delete_expense",
                current.envelope_id,
                correlation_id=correlation_id,
            ):
                await self._balance.reverse(owner_id, current.envelope_id, current.amount)
                await self._storage.delete_expense(owner_id, expense_id)

        if self._guard.audit_logger:
            await self._guard.audit_logger.log_expense_deleted(
                owner_id=owner_id,
                expense_id=expense_id,
                envelope_id=current.envelope_id,
                amount=current.amount,
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _fetch(self, owner_id: UUID, expense_id: UUID, operation: str) -> Expense:
        async with self._guard.reading(operation):
            expense = await self._storage.get_expense(owner_id, expense_id)
        if expense is None:
            raise NotFoundError("expense", expense_id)
        return expense

    async def get_expense(self, owner_id: UUID, expense_id: UUID) -> Expense:
        return await self._fetch(owner_id, expense_id, "get_expense")

    async def list_expenses(
        self,
        owner_id: UUID,
        start_date: Any = None,
        end_date: Any = None,
        envelope_id: Any = None,
    ) -> list[Expense]:
        """Expenses newest first, optionally within dates and for one envelope."""
        check = InputValidator()
        if start_date is not None:
            start_date = check.calendar_date(start_date, "start_date")
        if end_date is not None:
            end_date = check.calendar_date(end_date, "end_date")
        if envelope_id is not None:
            envelope_id = check.identifier(envelope_id, "envelope_id")
        check.raise_if_invalid("list_expenses")

        async with self._guard.reading("list_expenses"):
            return await self._storage.list_expenses(
                owner_id,
                date_from=start_date,
                date_to=end_date,
                envelope_id=envelope_id,
            )

    async def daily_stats(self, owner_id: UUID, day: Any) -> DailyStats:
        """Total spend and transaction count for one calendar day."""
        check = InputValidator()
        day = check.calendar_date(day, "day")
        check.raise_if_invalid("daily_stats")

        expenses = await self.list_expenses(owner_id, start_date=day, end_date=day)
        return DailyStats.from_amounts(day, [expense.amount for expense in expenses])
