"""
Mutation boundary shared by the ledger services.

`MutationGuard.atomic()` is the one place where a ledger mutation:
1. takes the record locks it needs
2. opens the storage transaction
3. translates storage failures into ledger errors

Storage failures are translated only at the outermost scope, after the
transaction has rolled back, and a rollback audit event is written there.
Ledger errors (validation, not found, already paid) pass through untouched;
the transaction still rolls back, but nothing had been written yet.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

import structlog

from spendly.audit import AuditLogger, create_correlation_id
from spendly.errors import ConsistencyError, UpstreamUnavailableError
from spendly.services.ledger.locks import RecordLocks
from spendly.services.storage import (
    LedgerStorageInterface,
    StorageError,
    StorageUnavailableError,
)


logger = structlog.get_logger(__name__)


class MutationGuard:
    """Locks, transaction and error translation for ledger mutations."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        locks: Optional[RecordLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._locks = locks or RecordLocks()
        self._audit_logger = audit_logger

    @property
    def locks(self) -> RecordLocks:
        return self._locks

    @property
    def audit_logger(self) -> Optional[AuditLogger]:
        return self._audit_logger

    def hold(self, *record_ids: Optional[UUID]):
        """Hold record locks without opening a transaction."""
        return self._locks.hold(*record_ids)

    @asynccontextmanager
    async def atomic(
        self,
        owner_id: UUID,
        operation: str,
        *record_ids: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AsyncIterator[None]:
        """
        Run a block as one all-or-nothing ledger mutation.

        Raises:
            ConsistencyError: A storage write failed; everything was rolled back
            UpstreamUnavailableError: Storage could not be reached
        """
        outermost = not self._storage.in_transaction()

        try:
            async with self._locks.hold(*record_ids):
                async with self._storage.transaction():
                    yield
        except StorageError as e:
            if not outermost:
                raise

            if isinstance(e, StorageUnavailableError):
                error = UpstreamUnavailableError(
                    f"Storage unavailable during {operation}",
                    operation=operation,
                )
            else:
                error = ConsistencyError(
                    f"{operation} failed and was rolled back",
                    operation=operation,
                )

            logger.error(
                "ledger_mutation_rolled_back",
                operation=operation,
                owner_id=str(owner_id),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_rollback(
                    owner_id=owner_id,
                    operation=operation,
                    error_kind=error.kind,
                    error_message=str(e),
                    correlation_id=correlation_id or create_correlation_id(),
                )
            raise error from e

    def reading(self, operation: str):
        """Translate storage failures of a read (see translate_read_errors)."""
        return translate_read_errors(operation)


@asynccontextmanager
async def translate_read_errors(operation: str) -> AsyncIterator[None]:
    """
    Translate storage failures of a read.

    Nothing was written, so every storage failure surfaces as
    UpstreamUnavailableError.
    """
    try:
        yield
    except StorageError as e:
        logger.error("ledger_read_failed", operation=operation, error=str(e))
        raise UpstreamUnavailableError(
            f"Storage failed during {operation}",
            operation=operation,
        ) from e
