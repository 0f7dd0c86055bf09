"""Tests for audit logging and ledger wiring."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from tenacity import wait_none

from spendly.audit import AuditLogger, create_correlation_id
from spendly.errors import UpstreamUnavailableError
from spendly.models import AuditEventBuilder, AuditEventType
from spendly.orchestrator import Ledger, create_ledger
from spendly.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    SQLDatabase,
    SQLLedgerStorage,
    StorageError,
)


class BrokenAuditStorage(InMemoryAuditStorage):
    """Audit store that rejects every write."""

    async def append_event(self, event):
        raise StorageError("audit store offline")


class TestCorrelation:
    """Tests for correlation ids on audit events."""

    def test_correlation_ids_are_unique(self):
        first = create_correlation_id()
        assert isinstance(first, UUID)
        assert first != create_correlation_id()

    async def test_caller_correlation_id_is_kept(self, ledger, owner_id):
        """Test that one id ties together every event of an operation."""
        correlation_id = uuid4()
        envelope = await ledger.create_envelope(
            owner_id, "Travel", "200", 10, 2026, correlation_id=correlation_id
        )
        await ledger.create_expense(
            owner_id, envelope.id, "20", "Train", date(2026, 10, 2), correlation_id=correlation_id
        )

        events = await ledger.audit_logger.storage.get_events_by_correlation_id(correlation_id)
        assert [event.event_type for event in events] == [
            AuditEventType.ENVELOPE_CREATED,
            AuditEventType.EXPENSE_RECORDED,
        ]
        assert all(event.owner_id == owner_id for event in events)

    async def test_caller_correlation_id_on_bill_payment(self, ledger, owner_id, groceries):
        correlation_id = uuid4()
        bill = await ledger.create_bill(owner_id, "Gas", "30", date(2026, 10, 20), 10, 2026)
        await ledger.mark_bill_paid(
            owner_id, bill.id, envelope_id=groceries.id, correlation_id=correlation_id
        )
        await ledger.set_daily_budget(owner_id, "600", correlation_id=correlation_id)

        events = await ledger.audit_logger.storage.get_events_by_correlation_id(correlation_id)
        assert [event.event_type for event in events] == [
            AuditEventType.EXPENSE_RECORDED,
            AuditEventType.BILL_PAID,
            AuditEventType.DAILY_BUDGET_UPDATED,
        ]

    async def test_bill_payment_events(self, ledger, owner_id, groceries):
        bill = await ledger.create_bill(owner_id, "Milk delivery", "12", date(2026, 10, 20), 10, 2026)
        await ledger.mark_bill_paid(owner_id, bill.id, envelope_id=groceries.id)

        events = await ledger.audit_logger.storage.get_events_by_entity("bill", bill.id)
        assert [event.event_type for event in events] == [
            AuditEventType.BILL_CREATED,
            AuditEventType.BILL_PAID,
        ]


class TestAuditFailures:
    """Tests for audit storage outages."""

    async def test_audit_failure_does_not_fail_mutation(self, owner_id):
        """Test that a committed mutation stands when auditing fails."""
        ledger = Ledger(InMemoryLedgerStorage(), audit_logger=AuditLogger(BrokenAuditStorage()))

        envelope = await ledger.create_envelope(owner_id, "Rent", "900", 10, 2026)
        await ledger.create_expense(owner_id, envelope.id, "900", "October rent", date(2026, 10, 1))

        stored = await ledger.get_envelope(owner_id, envelope.id)
        assert stored.current_balance == Decimal("0.00")

    async def test_log_reports_storage_failure(self, owner_id):
        logger = AuditLogger(BrokenAuditStorage())
        event = AuditEventBuilder.daily_budget_updated(owner_id, Decimal("500"))
        assert await logger.log(event) is False

    async def test_log_without_storage(self, owner_id):
        logger = AuditLogger()
        event = AuditEventBuilder.daily_budget_updated(owner_id, Decimal("500"))
        assert await logger.log(event) is True


class TestCreateLedger:
    """Tests for the ledger factory."""

    async def test_in_memory(self, owner_id):
        ledger = create_ledger(use_database=False)
        assert isinstance(ledger.storage, InMemoryLedgerStorage)

        envelope = await ledger.create_envelope(owner_id, "Misc", "10", 10, 2026)
        assert (await ledger.get_envelope(owner_id, envelope.id)).name == "Misc"

    async def test_sqlite_database(self, owner_id):
        ledger = create_ledger(database_url="sqlite:///:memory:")
        assert isinstance(ledger.storage, SQLLedgerStorage)

        envelope = await ledger.create_envelope(owner_id, "Misc", "10", 10, 2026)
        await ledger.set_daily_budget(owner_id, "250")
        assert (await ledger.get_envelope(owner_id, envelope.id)).name == "Misc"
        assert await ledger.get_daily_budget(owner_id) == Decimal("250.00")

    def test_unreachable_database(self, monkeypatch, tmp_path):
        """Test that an unreachable database fails unless fallback is allowed."""
        monkeypatch.setattr(SQLDatabase.connect.retry, "wait", wait_none())
        url = f"sqlite:///{tmp_path / 'missing' / 'nested' / 'spendly.db'}"

        with pytest.raises(UpstreamUnavailableError):
            create_ledger(database_url=url)

        ledger = create_ledger(database_url=url, fallback_to_memory=True)
        assert isinstance(ledger.storage, InMemoryLedgerStorage)
