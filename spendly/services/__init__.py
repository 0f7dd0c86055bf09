"""Services package."""

from spendly.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    RecordNotFoundError,
    SQLAuditStorage,
    SQLDatabase,
    SQLLedgerStorage,
    StorageError,
    StorageUnavailableError,
    UserPreferencesInterface,
)

__all__ = [
    # Storage interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "UserPreferencesInterface",
    # Storage exceptions
    "DuplicateError",
    "RecordNotFoundError",
    "StorageError",
    "StorageUnavailableError",
    # Storage implementations
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "SQLAuditStorage",
    "SQLDatabase",
    "SQLLedgerStorage",
]
