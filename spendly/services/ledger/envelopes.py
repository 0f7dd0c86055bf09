"""
Envelope Service

CRUD for monthly budget envelopes, plus usage stats and reconciliation.

Rules:
- A new envelope starts with current_balance == allocated_amount
- An allocation edit shifts the balance by the same delta, so the spend
  recorded against the envelope is preserved
- An envelope with expenses attributed to it cannot be deleted
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from spendly.audit import create_correlation_id
from spendly.errors import EnvelopeInUseError, NotFoundError
from spendly.models.ledger import Envelope, EnvelopeStat, Reconciliation
from spendly.models.reports import spend_percentage
from spendly.services.ledger.balance import EnvelopeBalanceEngine
from spendly.services.ledger.guard import MutationGuard
from spendly.services.storage import LedgerStorageInterface
from spendly.validation import InputValidator


logger = structlog.get_logger(__name__)


class EnvelopeService:
    """Envelope lifecycle and read-side envelope views."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        balance_engine: EnvelopeBalanceEngine,
        guard: MutationGuard,
    ):
        self._storage = storage
        self._balance = balance_engine
        self._guard = guard

    async def create_envelope(
        self,
        owner_id: UUID,
        name: str,
        allocated_amount: Any,
        month: Any,
        year: Any,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Envelope:
        """
        Create an envelope for one month.

        Raises:
            ValidationError: Bad name, allocation, month or year
        """
        check = InputValidator()
        name = check.text(name, "name", max_length=100)
        allocated = check.allocation(allocated_amount)
        month = check.month(month)
        year = check.year(year)
        icon = check.icon(icon) if icon is not None else None
        color = check.text(color, "color", max_length=20, required=False)
        check.raise_if_invalid("create_envelope")

        envelope = Envelope(
            owner_id=owner_id,
            name=name,
            icon=icon or "📦",
            color=color,
            allocated_amount=allocated,
            current_balance=allocated,
            month=month,
            year=year,
        )

        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.atomic(
            owner_id,
            "create_envelope",
            envelope.id,
            correlation_id=correlation_id,
        ):
            await self._storage.insert_envelope(envelope)

        if self._guard.audit_logger:
            await self._guard.audit_logger.log_envelope_created(
                owner_id=owner_id,
                envelope_id=envelope.id,
                name=envelope.name,
                allocated=envelope.allocated_amount,
                correlation_id=correlation_id,
            )
        return envelope

    async def update_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        allocated_amount: Any = None,
        correlation_id: Optional[UUID] = None,
    ) -> Envelope:
        """
        Edit an envelope. Fields left as None are unchanged.

        Raises:
            ValidationError: Bad replacement values
            NotFoundError: Envelope missing or owned by someone else
        """
        check = InputValidator()
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = check.text(name, "name", max_length=100)
        if icon is not None:
            changes["icon"] = check.icon(icon)
        if color is not None:
            changes["color"] = check.text(color, "color", max_length=20)
        allocated = None
        if allocated_amount is not None:
            allocated = check.allocation(allocated_amount)
        check.raise_if_invalid("update_envelope")

        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.atomic(
            owner_id,
            "update_envelope",
            envelope_id,
            correlation_id=correlation_id,
        ):
            if allocated is not None:
                updated = await self._balance.rebase_allocation(
                    owner_id,
                    envelope_id,
                    allocated,
                    **changes,
                )
            else:
                current = await self._storage.get_envelope(
                    owner_id,
                    envelope_id,
                    for_update=True,
                )
                if current is None:
                    raise NotFoundError("envelope", envelope_id)
                updated = current.with_changes(**changes)
                await self._storage.update_envelope(updated)

        if allocated is not None:
            changes["allocated_amount"] = allocated
        if self._guard.audit_logger:
            await self._guard.audit_logger.log_envelope_updated(
                owner_id=owner_id,
                envelope_id=envelope_id,
                changes=changes,
                correlation_id=correlation_id,
            )
        return updated

    async def delete_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an envelope that has no expenses.

        Raises:
            NotFoundError: Envelope missing or owned by someone else
            EnvelopeInUseError: Expenses are still attributed to it
        """
        correlation_id = correlation_id or create_correlation_id()
        async with self._guard.atomic(
            owner_id,
            "delete_envelope",
            envelope_id,
            correlation_id=correlation_id,
        ):
            envelope = await self._storage.get_envelope(
                owner_id,
                envelope_id,
                for_update=True,
            )
            if envelope is None:
                raise NotFoundError("envelope", envelope_id)

            in_use = await self._storage.count_expenses(owner_id, envelope_id)
            if in_use:
                raise EnvelopeInUseError(
                    f"Envelope '{envelope.name}' still has {in_use} expense(s); "
                    "delete or move them first",
                    envelope_id=envelope_id,
                    expense_count=in_use,
                )

            await self._storage.delete_envelope(owner_id, envelope_id)

        if self._guard.audit_logger:
            await self._guard.audit_logger.log_envelope_deleted(
                owner_id=owner_id,
                envelope_id=envelope_id,
                name=envelope.name,
                correlation_id=correlation_id,
            )

    async def get_envelope(self, owner_id: UUID, envelope_id: UUID) -> Envelope:
        async with self._guard.reading("get_envelope"):
            envelope = await self._storage.get_envelope(owner_id, envelope_id)
        if envelope is None:
            raise NotFoundError("envelope", envelope_id)
        return envelope

    async def list_envelopes(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Envelope]:
        """Envelopes newest first, optionally for one month."""
        check = InputValidator()
        if month is not None:
            month = check.month(month)
        if year is not None:
            year = check.year(year)
        check.raise_if_invalid("list_envelopes")

        async with self._guard.reading("list_envelopes"):
            return await self._storage.list_envelopes(owner_id, month=month, year=year)

    async def envelope_stats(
        self,
        owner_id: UUID,
        month: Any,
        year: Any,
    ) -> list[EnvelopeStat]:
        """Spent and percentage used for every envelope of a month."""
        envelopes = await self.list_envelopes(owner_id, month=month, year=year)
        return [
            EnvelopeStat(
                envelope_id=envelope.id,
                name=envelope.name,
                icon=envelope.icon,
                allocated_amount=envelope.allocated_amount,
                current_balance=envelope.current_balance,
                spent=envelope.spent,
                percentage=spend_percentage(envelope.spent, envelope.allocated_amount),
            )
            for envelope in envelopes
        ]

    async def reconcile_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Reconciliation:
        """
        Recompute an envelope's balance from its expenses.

        Drift is reported (and audited), never corrected.
        """
        async with self._guard.hold(envelope_id):
            async with self._guard.reading("reconcile_envelope"):
                envelope = await self._storage.get_envelope(owner_id, envelope_id)
                if envelope is None:
                    raise NotFoundError("envelope", envelope_id)
                expenses = await self._storage.list_expenses(
                    owner_id,
                    envelope_id=envelope_id,
                )

        recorded = sum((expense.amount for expense in expenses), Decimal("0"))
        result = Reconciliation(
            envelope_id=envelope_id,
            allocated_amount=envelope.allocated_amount,
            recorded_spend=recorded,
            expense_count=len(expenses),
            expected_balance=envelope.allocated_amount - recorded,
            actual_balance=envelope.current_balance,
        )

        if not result.is_consistent:
            logger.warning(
                "envelope_drift_detected",
                envelope_id=str(envelope_id),
                drift=str(result.drift),
            )
            if self._guard.audit_logger:
                await self._guard.audit_logger.log_envelope_drift(
                    owner_id=owner_id,
                    envelope_id=envelope_id,
                    expected=result.expected_balance,
                    actual=result.actual_balance,
                    correlation_id=correlation_id or create_correlation_id(),
                )
        return result
