"""
Bill Payment Processor

Bills live outside the ledger until they are paid:

    UNPAID --mark_paid--> PAID      (terminal, no "unpay")

Paying a bill may charge one envelope, materializing exactly one expense
in the same transaction as the state change. If the requested envelope
cannot be resolved the bill is still paid and the skipped charge is
reported on the result and in the audit log.
"""

from datetime import date, timedelta
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from spendly.audit import create_correlation_id
from spendly.config import get_settings
from spendly.errors import AlreadyPaidError, NotFoundError
from spendly.models.ledger import Bill, BillPayment, BillStatus, Expense
from spendly.services.ledger.expenses import ExpenseProcessor
from spendly.services.ledger.guard import MutationGuard
from spendly.services.storage import LedgerStorageInterface
from spendly.validation import InputValidator


logger = structlog.get_logger(__name__)

ENVELOPE_NOT_FOUND = "Envelope not found"


class BillProcessor:
    """Bill CRUD and the unpaid -> paid transition."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        expense_processor: ExpenseProcessor,
        guard: MutationGuard,
    ):
        self._storage = storage
        self._expenses = expense_processor
        self._guard = guard

    # -------------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------------

    async def mark_paid(
        self,
        owner_id: UUID,
        bill_id: UUID,
        envelope_id: Any = None,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BillPayment:
        """
        Mark a bill paid, optionally charging an envelope.

        Args:
            owner_id: Owner of the bill
            bill_id: Bill to pay
            envelope_id: Envelope to charge (optional)
            today: Payment date, defaults to the current date

        Raises:
            NotFoundError: Bill missing or owned by someone else
            AlreadyPaidError: Bill was paid before
            ConsistencyError: A storage write failed; the bill is still unpaid
        """
        check = InputValidator()
        if envelope_id is not None:
            envelope_id = check.identifier(envelope_id, "envelope_id")
        paid_on = check.calendar_date(today or date.today(), "today")
        check.raise_if_invalid("mark_bill_paid")

        correlation_id = correlation_id or create_correlation_id()
        expense: Optional[Expense] = None
        skip_reason: Optional[str] = None

        async with self._guard.atomic(
            owner_id,
            "mark_bill_paid",
            bill_id,
            envelope_id,
            correlation_id=correlation_id,
        ):
            bill = await self._storage.get_bill(owner_id, bill_id, for_update=True)
            if bill is None:
                raise NotFoundError("bill", bill_id)
            if bill.is_paid:
                raise AlreadyPaidError(bill_id)

            charge_envelope = None
            if envelope_id is not None:
                envelope = await self._storage.get_envelope(
                    owner_id,
                    envelope_id,
                    for_update=True,
                )
                if envelope is None:
                    skip_reason = ENVELOPE_NOT_FOUND
                else:
                    charge_envelope = envelope_id

            paid = bill.with_changes(
                is_paid=True,
                paid_date=paid_on,
                envelope_id=charge_envelope,
            )
            await self._storage.update_bill(paid)

            if charge_envelope is not None:
                expense, new_balance = await self._expenses.apply_expense(
                    owner_id,
                    charge_envelope,
                    bill.amount,
                    f"Bill payment: {bill.name}",
                    paid_on,
                    shop_name=bill.name,
                )

        logger.info(
            "bill_paid",
            bill_id=str(bill_id),
            expense_id=str(expense.id) if expense else None,
            ledger_skipped=skip_reason is not None,
        )

        audit = self._guard.audit_logger
        if audit:
            if expense is not None:
                await audit.log_expense_recorded(
                    owner_id=owner_id,
                    expense_id=expense.id,
                    envelope_id=expense.envelope_id,
                    amount=expense.amount,
                    new_balance=new_balance,
                    correlation_id=correlation_id,
                )
            await audit.log_bill_paid(
                owner_id=owner_id,
                bill_id=bill_id,
                amount=paid.amount,
                expense_id=expense.id if expense else None,
                correlation_id=correlation_id,
            )
            if skip_reason is not None:
                await audit.log_ledger_effect_skipped(
                    owner_id=owner_id,
                    bill_id=bill_id,
                    envelope_id=envelope_id,
                    reason=skip_reason,
                    correlation_id=correlation_id,
                )

        return BillPayment(
            bill=paid,
            expense=expense,
            ledger_skipped=skip_reason is not None,
            skip_reason=skip_reason,
        )

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def create_bill(
        self,
        owner_id: UUID,
        name: str,
        amount: Any,
        due_date: Any,
        month: Any,
        year: Any,
        category: str = "other",
        is_recurring: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> Bill:
        """
        Create an unpaid bill. No ledger effect.

        Raises:
            ValidationError: Bad name, amount, due date, month or year
        """
        check = InputValidator()
        name = check.text(name, "name", max_length=200)
        amount = check.amount(amount)
        due_date = check.calendar_date(due_date, "due_date")
        month = check.month(month)
        year = check.year(year)
        category = check.text(category, "category", max_length=50)
        check.raise_if_invalid("create_bill")

        bill = Bill(
            owner_id=owner_id,
            name=name,
            amount=amount,
            due_date=due_date,
            category=category,
            is_recurring=bool(is_recurring),
            month=month,
            year=year,
        )

        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.atomic(
            owner_id,
            "create_bill",
            bill.id,
            correlation_id=correlation_id,
        ):
            await self._storage.insert_bill(bill)

        if self._guard.audit_logger:
            await self._guard.audit_logger.log_bill_created(
                owner_id=owner_id,
                bill_id=bill.id,
                name=bill.name,
                amount=bill.amount,
                correlation_id=correlation_id,
            )
        return bill

    async def update_bill(
        self,
        owner_id: UUID,
        bill_id: UUID,
        name: Optional[str] = None,
        amount: Any = None,
        due_date: Any = None,
        category: Optional[str] = None,
        is_recurring: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Bill:
        """
        Edit a bill's descriptive fields. Fields left as None are unchanged.

        Payment state is not editable here, and an expense already
        materialized by paying the bill is not touched.
        """
        check = InputValidator()
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = check.text(name, "name", max_length=200)
        if amount is not None:
            changes["amount"] = check.amount(amount)
        if due_date is not None:
            changes["due_date"] = check.calendar_date(due_date, "due_date")
        if category is not None:
            changes["category"] = check.text(category, "category", max_length=50)
        if is_recurring is not None:
            changes["is_recurring"] = bool(is_recurring)
        check.raise_if_invalid("update_bill")

        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.atomic(
            owner_id,
            "update_bill",
            bill_id,
            correlation_id=correlation_id,
        ):
            current = await self._storage.get_bill(owner_id, bill_id, for_update=True)
            if current is None:
                raise NotFoundError("bill", bill_id)
            updated = current.with_changes(**changes)
            await self._storage.update_bill(updated)

        if self._guard.audit_logger:
            await self._guard.audit_logger.log_bill_updated(
                owner_id=owner_id,
                bill_id=bill_id,
                changes=changes,
                correlation_id=correlation_id,
            )
        return updated

    async def delete_bill(
        self,
        owner_id: UUID,
        bill_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete a bill. A paid bill's expense stays in the ledger."""
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.atomic(
            owner_id,
            "delete_bill",
            bill_id,
            correlation_id=correlation_id,
        ):
            current = await self._storage.get_bill(owner_id, bill_id, for_update=True)
            if current is None:
                raise NotFoundError("bill", bill_id)
            await self._storage.delete_bill(owner_id, bill_id)

        if self._guard.audit_logger:
            await self._guard.audit_logger.log_bill_deleted(
                owner_id=owner_id,
                bill_id=bill_id,
                name=current.name,
                correlation_id=correlation_id,
            )

    async def get_bill(self, owner_id: UUID, bill_id: UUID) -> Bill:
        async with self._guard.reading("get_bill"):
            bill = await self._storage.get_bill(owner_id, bill_id)
        if bill is None:
            raise NotFoundError("bill", bill_id)
        return bill

    async def list_bills(
        self,
        owner_id: UUID,
        month: Any = None,
        year: Any = None,
        status: Optional[Union[BillStatus, str]] = None,
    ) -> list[Bill]:
        """Bills ordered by due date, optionally filtered by month and status."""
        check = InputValidator()
        if month is not None:
            month = check.month(month)
        if year is not None:
            year = check.year(year)
        is_paid = None
        if status is not None:
            status = check.bill_status(status)
            if status is not None:
                is_paid = status == BillStatus.PAID
        check.raise_if_invalid("list_bills")

        async with self._guard.reading("list_bills"):
            return await self._storage.list_bills(
                owner_id,
                month=month,
                year=year,
                is_paid=is_paid,
            )

    async def upcoming_bills(
        self,
        owner_id: UUID,
        today: Optional[date] = None,
        within_days: Optional[int] = None,
    ) -> list[Bill]:
        """
        Unpaid bills due between today and today + within_days (inclusive).

        The window defaults to the configured reminder window.
        """
        if within_days is None:
            within_days = get_settings().ledger.reminder_window_days

        check = InputValidator()
        today = check.calendar_date(today or date.today(), "today")
        within_days = check.day_count(within_days, "within_days")
        check.raise_if_invalid("upcoming_bills")

        horizon = today + timedelta(days=within_days)

        bills = await self.list_bills(owner_id, status=BillStatus.UNPAID)
        return [bill for bill in bills if today <= bill.due_date <= horizon]
