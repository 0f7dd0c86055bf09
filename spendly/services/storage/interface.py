"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the ledger on a relational database (SQLAlchemy) in production
2. Use in-memory storage for testing and single-node deployments
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs, always scoped by owner id.

TRANSACTIONS: Multi-step ledger mutations run inside `transaction()`.
All writes made inside it land together or not at all. The scope is
re-entrant: entering it while a transaction is already active joins the
outer one, so composed operations commit once.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import AsyncContextManager, Optional
from uuid import UUID

from spendly.models.ledger import Bill, Envelope, Expense
from spendly.models.audit import AuditEvent


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger record storage.

    Any storage implementation (in-memory, SQLite, PostgreSQL, etc.)
    must implement these methods.

    Reads return None (or an empty list) for records that are missing
    OR belong to another owner; the two cases are indistinguishable.
    """

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """
        Open an atomic write scope.

        Usage:
            async with storage.transaction():
                await storage.update_envelope(envelope)
                await storage.insert_expense(expense)

        Raises:
            StorageError: If the commit fails (nothing was written)
            StorageUnavailableError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    def in_transaction(self) -> bool:
        """True when called inside an active transaction scope."""
        pass

    # -------------------------------------------------------------------------
    # Envelopes
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_envelope(self, envelope: Envelope) -> None:
        """
        Store a new envelope.

        Raises:
            DuplicateError: If the id is already taken
        """
        pass

    @abstractmethod
    async def get_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        for_update: bool = False,
    ) -> Optional[Envelope]:
        """
        Retrieve an envelope.

        Args:
            owner_id: Owner the envelope must belong to
            envelope_id: The envelope's ID
            for_update: Lock the row until the transaction ends
                        (where the backend supports row locks)
        """
        pass

    @abstractmethod
    async def update_envelope(self, envelope: Envelope) -> None:
        """
        Replace a stored envelope.

        Raises:
            RecordNotFoundError: If it does not exist for its owner
        """
        pass

    @abstractmethod
    async def delete_envelope(self, owner_id: UUID, envelope_id: UUID) -> bool:
        """Delete an envelope; False if there was nothing to delete."""
        pass

    @abstractmethod
    async def list_envelopes(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Envelope]:
        """List envelopes, newest first, optionally for one month."""
        pass

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_expense(self, expense: Expense) -> None:
        pass

    @abstractmethod
    async def get_expense(self, owner_id: UUID, expense_id: UUID) -> Optional[Expense]:
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> None:
        """
        Replace a stored expense.

        Raises:
            RecordNotFoundError: If it does not exist for its owner
        """
        pass

    @abstractmethod
    async def delete_expense(self, owner_id: UUID, expense_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_expenses(
        self,
        owner_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        envelope_id: Optional[UUID] = None,
    ) -> list[Expense]:
        """
        List expenses with optional filters.

        Args:
            owner_id: Owner to list for
            date_from: Only expenses on or after this date
            date_to: Only expenses on or before this date
            envelope_id: Only expenses charged to this envelope

        Returns:
            Matching expenses, newest first
        """
        pass

    @abstractmethod
    async def count_expenses(self, owner_id: UUID, envelope_id: UUID) -> int:
        """Number of expenses currently charged to an envelope."""
        pass

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_bill(self, bill: Bill) -> None:
        pass

    @abstractmethod
    async def get_bill(
        self,
        owner_id: UUID,
        bill_id: UUID,
        for_update: bool = False,
    ) -> Optional[Bill]:
        pass

    @abstractmethod
    async def update_bill(self, bill: Bill) -> None:
        """
        Replace a stored bill.

        Raises:
            RecordNotFoundError: If it does not exist for its owner
        """
        pass

    @abstractmethod
    async def delete_bill(self, owner_id: UUID, bill_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_bills(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
        is_paid: Optional[bool] = None,
    ) -> list[Bill]:
        """List bills ordered by due date (earliest first)."""
        pass


class UserPreferencesInterface(ABC):
    """Per-user settings consumed by reports."""

    @abstractmethod
    async def get_daily_budget(self, owner_id: UUID) -> Optional[Decimal]:
        """The user's daily budget, or None if never configured."""
        pass

    @abstractmethod
    async def set_daily_budget(self, owner_id: UUID, daily_budget: Decimal) -> None:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one ledger operation, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events about one record, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Attempted to replace a record that is not stored."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate record."""
    pass


class StorageUnavailableError(StorageError):
    """Could not connect to storage backend."""
    pass
