"""
Envelope Balance Engine

The only code that changes an envelope's current_balance.

    apply    -> balance decreases by the amount (an expense lands)
    reverse  -> balance increases by the amount (an expense leaves)
    rebase   -> allocation changes, balance shifts by the same delta

There is no floor: an envelope can be overspent. There is no
deduplication either; callers apply each expense exactly once.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from spendly.errors import NotFoundError
from spendly.models.ledger import Envelope
from spendly.services.ledger.locks import RecordLocks
from spendly.services.storage import LedgerStorageInterface
from spendly.validation import InputValidator


logger = structlog.get_logger(__name__)


class EnvelopeBalanceEngine:
    """
    Applies and reverses amounts on envelope balances.

    Every call runs inside the storage transaction (joining the caller's
    if one is active) and under the envelope's record lock. Callers
    normally hold both already.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        locks: Optional[RecordLocks] = None,
    ):
        self._storage = storage
        self._locks = locks or RecordLocks()

    async def apply(self, owner_id: UUID, envelope_id: UUID, amount: Any) -> Decimal:
        """
        Charge an amount to an envelope.

        Returns:
            The new balance

        Raises:
            ValidationError: Amount is not a positive number
            NotFoundError: Envelope missing or owned by someone else
        """
        amount = self._positive(amount, "apply")
        envelope = await self._shift(owner_id, envelope_id, -amount)
        return envelope.current_balance

    async def reverse(self, owner_id: UUID, envelope_id: UUID, amount: Any) -> Decimal:
        """Return an amount to an envelope. Same errors as apply()."""
        amount = self._positive(amount, "reverse")
        envelope = await self._shift(owner_id, envelope_id, amount)
        return envelope.current_balance

    async def rebase_allocation(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        allocated_amount: Decimal,
        **changes: Any,
    ) -> Envelope:
        """
        Change an envelope's allocation, keeping its recorded spend.

        The balance moves by new_allocation - old_allocation. Extra
        descriptive changes (name, icon, color) are written in the same
        update.
        """
        async with self._locks.hold(envelope_id):
            async with self._storage.transaction():
                envelope = await self._load(owner_id, envelope_id)
                delta = allocated_amount - envelope.allocated_amount
                updated = envelope.with_changes(
                    allocated_amount=allocated_amount,
                    current_balance=envelope.current_balance + delta,
                    **changes,
                )
                await self._storage.update_envelope(updated)

        logger.debug(
            "envelope_rebased",
            envelope_id=str(envelope_id),
            delta=str(delta),
            balance=str(updated.current_balance),
        )
        return updated

    @staticmethod
    def _positive(amount: Any, operation: str) -> Decimal:
        check = InputValidator()
        value = check.amount(amount)
        check.raise_if_invalid(operation)
        return value

    async def _load(self, owner_id: UUID, envelope_id: UUID) -> Envelope:
        envelope = await self._storage.get_envelope(
            owner_id,
            envelope_id,
            for_update=True,
        )
        if envelope is None:
            raise NotFoundError("envelope", envelope_id)
        return envelope

    async def _shift(self, owner_id: UUID, envelope_id: UUID, delta: Decimal) -> Envelope:
        async with self._locks.hold(envelope_id):
            async with self._storage.transaction():
                envelope = await self._load(owner_id, envelope_id)
                updated = envelope.with_changes(
                    current_balance=envelope.current_balance + delta,
                )
                await self._storage.update_envelope(updated)

        logger.debug(
            "envelope_balance_shifted",
            envelope_id=str(envelope_id),
            delta=str(delta),
            balance=str(updated.current_balance),
        )
        return updated
