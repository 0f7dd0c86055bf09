"""
In-Memory Storage Implementation

Used by the test suite and by single-process deployments that do not need
persistence.

TRANSACTIONS: A transaction works on a staged copy of every table and
swaps it in on commit. Readers outside the transaction keep seeing the
last committed tables, so staged writes are never observable. A
store-wide lock serializes transactions.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Optional
from uuid import UUID

from spendly.models.ledger import Bill, Envelope, Expense, UserPreferences
from spendly.models.audit import AuditEvent
from spendly.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    RecordNotFoundError,
    UserPreferencesInterface,
)


class _Tables:
    """One consistent version of every table."""

    def __init__(self):
        self.envelopes: dict[UUID, Envelope] = {}
        self.expenses: dict[UUID, Expense] = {}
        self.bills: dict[UUID, Bill] = {}
        self.preferences: dict[UUID, UserPreferences] = {}

    def copy(self) -> "_Tables":
        # Records are replaced on write, never mutated, so copying the
        # dicts is enough to isolate a staged version.
        staged = _Tables()
        staged.envelopes = dict(self.envelopes)
        staged.expenses = dict(self.expenses)
        staged.bills = dict(self.bills)
        staged.preferences = dict(self.preferences)
        return staged


class InMemoryLedgerStorage(LedgerStorageInterface, UserPreferencesInterface):
    """
    Dict-backed ledger storage.

    Records are copied on the way in and on the way out so callers can
    never mutate stored state behind the store's back.
    """

    def __init__(self):
        self._committed = _Tables()
        self._write_lock = asyncio.Lock()
        self._staged: ContextVar[Optional[_Tables]] = ContextVar(
            f"spendly_memory_tx_{id(self)}",
            default=None,
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._staged.get() is not None:
            yield
            return

        async with self._write_lock:
            staged = self._committed.copy()
            token = self._staged.set(staged)
            try:
                yield
            finally:
                self._staged.reset(token)
            # Only reached when the block exited without an exception
            self._committed = staged

    def in_transaction(self) -> bool:
        return self._staged.get() is not None

    def _tables(self) -> _Tables:
        return self._staged.get() or self._committed

    # -------------------------------------------------------------------------
    # Envelopes
    # -------------------------------------------------------------------------

    async def insert_envelope(self, envelope: Envelope) -> None:
        async with self.transaction():
            table = self._tables().envelopes
            if envelope.id in table:
                raise DuplicateError(f"Envelope already exists: {envelope.id}")
            table[envelope.id] = envelope.model_copy()

    async def get_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        for_update: bool = False,
    ) -> Optional[Envelope]:
        envelope = self._tables().envelopes.get(envelope_id)
        if envelope is None or envelope.owner_id != owner_id:
            return None
        return envelope.model_copy()

    async def update_envelope(self, envelope: Envelope) -> None:
        async with self.transaction():
            table = self._tables().envelopes
            stored = table.get(envelope.id)
            if stored is None or stored.owner_id != envelope.owner_id:
                raise RecordNotFoundError(f"Envelope not found: {envelope.id}")
            table[envelope.id] = envelope.model_copy()

    async def delete_envelope(self, owner_id: UUID, envelope_id: UUID) -> bool:
        async with self.transaction():
            table = self._tables().envelopes
            stored = table.get(envelope_id)
            if stored is None or stored.owner_id != owner_id:
                return False
            del table[envelope_id]
            return True

    async def list_envelopes(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Envelope]:
        envelopes = [
            envelope.model_copy()
            for envelope in self._tables().envelopes.values()
            if envelope.owner_id == owner_id
            and (month is None or envelope.month == month)
            and (year is None or envelope.year == year)
        ]
        envelopes.sort(key=lambda e: e.created_at, reverse=True)
        return envelopes

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def insert_expense(self, expense: Expense) -> None:
        async with self.transaction():
            table = self._tables().expenses
            if expense.id in table:
                raise DuplicateError(f"Expense already exists: {expense.id}")
            table[expense.id] = expense.model_copy()

    async def get_expense(self, owner_id: UUID, expense_id: UUID) -> Optional[Expense]:
        expense = self._tables().expenses.get(expense_id)
        if expense is None or expense.owner_id != owner_id:
            return None
        return expense.model_copy()

    async def update_expense(self, expense: Expense) -> None:
        async with self.transaction():
            table = self._tables().expenses
            stored = table.get(expense.id)
            if stored is None or stored.owner_id != expense.owner_id:
                raise RecordNotFoundError(f"Expense not found: {expense.id}")
            table[expense.id] = expense.model_copy()

    async def delete_expense(self, owner_id: UUID, expense_id: UUID) -> bool:
        async with self.transaction():
            table = self._tables().expenses
            stored = table.get(expense_id)
            if stored is None or stored.owner_id != owner_id:
                return False
            del table[expense_id]
            return True

    async def list_expenses(
        self,
        owner_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        envelope_id: Optional[UUID] = None,
    ) -> list[Expense]:
        expenses = []
        for expense in self._tables().expenses.values():
            if expense.owner_id != owner_id:
                continue
            if date_from and expense.expense_date < date_from:
                continue
            if date_to and expense.expense_date > date_to:
                continue
            if envelope_id and expense.envelope_id != envelope_id:
                continue
            expenses.append(expense.model_copy())

        # Newest first
        expenses.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
        return expenses

    async def count_expenses(self, owner_id: UUID, envelope_id: UUID) -> int:
        return sum(
            1
            for expense in self._tables().expenses.values()
            if expense.owner_id == owner_id and expense.envelope_id == envelope_id
        )

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def insert_bill(self, bill: Bill) -> None:
        async with self.transaction():
            table = self._tables().bills
            if bill.id in table:
                raise DuplicateError(f"Bill already exists: {bill.id}")
            table[bill.id] = bill.model_copy()

    async def get_bill(
        self,
        owner_id: UUID,
        bill_id: UUID,
        for_update: bool = False,
    ) -> Optional[Bill]:
        bill = self._tables().bills.get(bill_id)
        if bill is None or bill.owner_id != owner_id:
            return None
        return bill.model_copy()

    async def update_bill(self, bill: Bill) -> None:
        async with self.transaction():
            table = self._tables().bills
            stored = table.get(bill.id)
            if stored is None or stored.owner_id != bill.owner_id:
                raise RecordNotFoundError(f"Bill not found: {bill.id}")
            table[bill.id] = bill.model_copy()

    async def delete_bill(self, owner_id: UUID, bill_id: UUID) -> bool:
        async with self.transaction():
            table = self._tables().bills
            stored = table.get(bill_id)
            if stored is None or stored.owner_id != owner_id:
                return False
            del table[bill_id]
            return True

    async def list_bills(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
        is_paid: Optional[bool] = None,
    ) -> list[Bill]:
        bills = [
            bill.model_copy()
            for bill in self._tables().bills.values()
            if bill.owner_id == owner_id
            and (month is None or bill.month == month)
            and (year is None or bill.year == year)
            and (is_paid is None or bill.is_paid == is_paid)
        ]
        bills.sort(key=lambda b: (b.due_date, b.created_at))
        return bills

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    async def get_daily_budget(self, owner_id: UUID) -> Optional[Decimal]:
        preferences = self._tables().preferences.get(owner_id)
        return preferences.daily_budget if preferences else None

    async def set_daily_budget(self, owner_id: UUID, daily_budget: Decimal) -> None:
        async with self.transaction():
            self._tables().preferences[owner_id] = UserPreferences(
                owner_id=owner_id,
                daily_budget=daily_budget,
            )


class InMemoryAuditStorage(AuditStorageInterface):
    """
    List-backed audit log.

    Audit events are append-only.
    """

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy())
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
