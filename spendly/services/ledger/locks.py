"""
Per-record locks.

Balance updates are read-modify-write, so two coroutines charging the
same envelope must not interleave. Every mutation holds the lock of each
record it touches for the whole of its transaction.

Locks are acquired in sorted id order, and a task that already holds a
record's lock passes straight through, so composed operations (paying a
bill records an expense) never wait on themselves.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Optional
from uuid import UUID


class RecordLocks:
    """One asyncio.Lock per record id, re-entrant per task."""

    def __init__(self):
        self._locks: dict[UUID, asyncio.Lock] = {}
        # Tasks holding or waiting on each lock; an entry goes when this hits zero
        self._users: dict[UUID, int] = {}
        self._held: ContextVar[frozenset] = ContextVar(
            f"spendly_held_locks_{id(self)}",
            default=frozenset(),
        )

    @property
    def active_count(self) -> int:
        """Number of records that currently have a lock."""
        return len(self._locks)

    def _checkout(self, record_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(record_id)
        if lock is None:
            lock = self._locks[record_id] = asyncio.Lock()
        self._users[record_id] = self._users.get(record_id, 0) + 1
        return lock

    def _checkin(self, record_id: UUID) -> None:
        remaining = self._users[record_id] - 1
        if remaining:
            self._users[record_id] = remaining
        else:
            del self._users[record_id]
            del self._locks[record_id]

    def is_held(self, record_id: UUID) -> bool:
        """True when the current task holds the record's lock."""
        return record_id in self._held.get()

    @asynccontextmanager
    async def hold(self, *record_ids: Optional[UUID]) -> AsyncIterator[None]:
        """
        Hold the locks of every given record (None entries are ignored).

        Usage:
            async with locks.hold(bill_id, envelope_id):
                ...
        """
        held = self._held.get()
        wanted = sorted(
            {record_id for record_id in record_ids if record_id is not None} - held,
            key=str,
        )

        acquired: list[UUID] = []
        try:
            for record_id in wanted:
                lock = self._checkout(record_id)
                try:
                    await lock.acquire()
                except BaseException:
                    self._checkin(record_id)
                    raise
                acquired.append(record_id)

            token = self._held.set(held | frozenset(wanted))
            try:
                yield
            finally:
                self._held.reset(token)
        finally:
            for record_id in reversed(acquired):
                self._locks[record_id].release()
                self._checkin(record_id)
