"""
Shared fixtures.

No external services are used: ledgers run on the in-memory store or on
an in-memory SQLite database through SQLAlchemy.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from spendly.audit import AuditLogger
from spendly.orchestrator import Ledger
from spendly.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    SQLAuditStorage,
    SQLDatabase,
    SQLLedgerStorage,
)


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def other_owner_id():
    return uuid4()


@pytest.fixture
def today():
    return date(2026, 10, 14)


@pytest.fixture
def sqlite_database():
    database = SQLDatabase(url="sqlite:///:memory:")
    database.connect()
    yield database
    database.dispose()


@pytest.fixture
def memory_ledger():
    audit_storage = InMemoryAuditStorage()
    return Ledger(InMemoryLedgerStorage(), audit_logger=AuditLogger(audit_storage))


@pytest.fixture
def sqlite_ledger(sqlite_database):
    return Ledger(
        SQLLedgerStorage(sqlite_database),
        audit_logger=AuditLogger(SQLAuditStorage(sqlite_database)),
    )


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request):
    """A fully wired ledger on each storage backend."""
    return request.getfixturevalue(f"{request.param}_ledger")


@pytest.fixture
async def groceries(ledger, owner_id):
    """Groceries envelope with 400.00 allocated for October 2026."""
    return await ledger.create_envelope(
        owner_id,
        name="Groceries",
        allocated_amount=Decimal("400.00"),
        month=10,
        year=2026,
        icon="🛒",
    )


@pytest.fixture
async def dining(ledger, owner_id):
    """Dining envelope with 50.00 allocated for October 2026."""
    return await ledger.create_envelope(
        owner_id,
        name="Dining",
        allocated_amount=Decimal("50.00"),
        month=10,
        year=2026,
        icon="🍽️",
    )


@pytest.fixture
def assert_invariant(ledger, owner_id):
    """Check every envelope's balance equals allocation minus its expenses."""

    async def check():
        for envelope in await ledger.list_envelopes(owner_id):
            result = await ledger.reconcile_envelope(owner_id, envelope.id)
            assert result.is_consistent, f"{envelope.name} drifted by {result.drift}"

    return check
