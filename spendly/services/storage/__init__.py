"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend and a relational one (SQLAlchemy); business
logic only ever sees the interfaces.
"""

from spendly.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    RecordNotFoundError,
    StorageError,
    StorageUnavailableError,
    UserPreferencesInterface,
)
from spendly.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from spendly.services.storage.sql import (
    SQLAuditStorage,
    SQLDatabase,
    SQLLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "UserPreferencesInterface",
    # Exceptions
    "DuplicateError",
    "RecordNotFoundError",
    "StorageError",
    "StorageUnavailableError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQLAlchemy implementation
    "SQLAuditStorage",
    "SQLDatabase",
    "SQLLedgerStorage",
]
