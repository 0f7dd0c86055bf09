"""
Tests for storage backends.

Both backends must behave identically: owner scoping, ordering, and
all-or-nothing transactions.
"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from spendly.models import Bill, Envelope, Expense
from spendly.models.audit import AuditEventBuilder
from spendly.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    RecordNotFoundError,
    SQLAuditStorage,
    SQLLedgerStorage,
    StorageError,
)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        return InMemoryLedgerStorage()
    return SQLLedgerStorage(request.getfixturevalue("sqlite_database"))


@pytest.fixture(params=["memory", "sqlite"])
def audit_storage(request):
    if request.param == "memory":
        return InMemoryAuditStorage()
    return SQLAuditStorage(request.getfixturevalue("sqlite_database"))


def make_envelope(owner_id, name="Groceries", allocated="400", month=10, year=2026):
    return Envelope(
        owner_id=owner_id,
        name=name,
        allocated_amount=Decimal(allocated),
        current_balance=Decimal(allocated),
        month=month,
        year=year,
    )


def make_expense(owner_id, envelope_id, amount="10", day=date(2026, 10, 5)):
    return Expense(
        owner_id=owner_id,
        envelope_id=envelope_id,
        amount=Decimal(amount),
        description="Test expense",
        expense_date=day,
    )


class TestEnvelopeStorage:
    """Tests for envelope persistence."""

    async def test_insert_and_get(self, storage, owner_id):
        """Test an envelope round-trips through storage."""
        envelope = make_envelope(owner_id)
        await storage.insert_envelope(envelope)

        stored = await storage.get_envelope(owner_id, envelope.id)
        assert stored.name == "Groceries"
        assert stored.current_balance == Decimal("400.00")

    async def test_foreign_owner_sees_nothing(self, storage, owner_id, other_owner_id):
        """Test that another owner's envelope reads as missing."""
        envelope = make_envelope(owner_id)
        await storage.insert_envelope(envelope)

        assert await storage.get_envelope(other_owner_id, envelope.id) is None
        assert await storage.list_envelopes(other_owner_id) == []
        assert await storage.delete_envelope(other_owner_id, envelope.id) is False

    async def test_duplicate_insert(self, storage, owner_id):
        """Test that inserting the same id twice fails."""
        envelope = make_envelope(owner_id)
        await storage.insert_envelope(envelope)
        with pytest.raises(DuplicateError):
            await storage.insert_envelope(envelope)

    async def test_update_missing(self, storage, owner_id):
        """Test that replacing an unknown envelope fails."""
        with pytest.raises(RecordNotFoundError):
            await storage.update_envelope(make_envelope(owner_id))

    async def test_list_filters_by_month(self, storage, owner_id):
        """Test month and year filters."""
        await storage.insert_envelope(make_envelope(owner_id, "October", month=10))
        await storage.insert_envelope(make_envelope(owner_id, "November", month=11))

        october = await storage.list_envelopes(owner_id, month=10, year=2026)
        assert [envelope.name for envelope in october] == ["October"]
        assert len(await storage.list_envelopes(owner_id)) == 2


class TestExpenseStorage:
    """Tests for expense persistence."""

    async def test_list_newest_first_with_filters(self, storage, owner_id):
        """Test ordering and date and envelope filters."""
        envelope = make_envelope(owner_id)
        other = make_envelope(owner_id, "Other")
        await storage.insert_envelope(envelope)
        await storage.insert_envelope(other)

        await storage.insert_expense(make_expense(owner_id, envelope.id, day=date(2026, 10, 1)))
        await storage.insert_expense(make_expense(owner_id, envelope.id, day=date(2026, 10, 9)))
        await storage.insert_expense(make_expense(owner_id, other.id, day=date(2026, 10, 5)))

        expenses = await storage.list_expenses(owner_id)
        assert [e.expense_date.day for e in expenses] == [9, 5, 1]

        ranged = await storage.list_expenses(
            owner_id,
            date_from=date(2026, 10, 2),
            date_to=date(2026, 10, 9),
        )
        assert len(ranged) == 2

        only_first = await storage.list_expenses(owner_id, envelope_id=envelope.id)
        assert len(only_first) == 2
        assert await storage.count_expenses(owner_id, envelope.id) == 2
        assert await storage.count_expenses(owner_id, other.id) == 1

    async def test_optional_fields_round_trip(self, storage, owner_id):
        """Test shop name and receipt handle persistence."""
        envelope = make_envelope(owner_id)
        await storage.insert_envelope(envelope)
        expense = make_expense(owner_id, envelope.id).with_changes(
            shop_name="Fresh Mart",
            receipt_url="receipts/abc.jpg",
        )
        await storage.insert_expense(expense)

        stored = await storage.get_expense(owner_id, expense.id)
        assert stored.shop_name == "Fresh Mart"
        assert stored.receipt_url == "receipts/abc.jpg"
        assert stored.expense_date == date(2026, 10, 5)


class TestBillStorage:
    """Tests for bill persistence."""

    async def test_list_bills_by_due_date_and_status(self, storage, owner_id):
        """Test due-date ordering and the paid filter."""
        later = Bill(
            owner_id=owner_id,
            name="Rent",
            amount=Decimal("900"),
            due_date=date(2026, 10, 28),
            month=10,
            year=2026,
        )
        sooner = Bill(
            owner_id=owner_id,
            name="Internet",
            amount=Decimal("15.99"),
            due_date=date(2026, 10, 3),
            month=10,
            year=2026,
            is_paid=True,
            paid_date=date(2026, 10, 2),
        )
        await storage.insert_bill(later)
        await storage.insert_bill(sooner)

        bills = await storage.list_bills(owner_id)
        assert [bill.name for bill in bills] == ["Internet", "Rent"]
        unpaid = await storage.list_bills(owner_id, is_paid=False)
        assert [bill.name for bill in unpaid] == ["Rent"]


class TestPreferencesStorage:
    """Tests for the daily budget."""

    async def test_daily_budget(self, storage, owner_id):
        """Test unset, set and overwrite."""
        assert await storage.get_daily_budget(owner_id) is None
        await storage.set_daily_budget(owner_id, Decimal("750"))
        await storage.set_daily_budget(owner_id, Decimal("800"))
        assert await storage.get_daily_budget(owner_id) == Decimal("800")


class TestTransactions:
    """Tests for all-or-nothing transactions."""

    async def test_commit(self, storage, owner_id):
        """Test that writes inside a transaction land together."""
        envelope = make_envelope(owner_id)
        async with storage.transaction():
            assert storage.in_transaction()
            await storage.insert_envelope(envelope)
            await storage.insert_expense(make_expense(owner_id, envelope.id))

        assert not storage.in_transaction()
        assert await storage.get_envelope(owner_id, envelope.id) is not None
        assert await storage.count_expenses(owner_id, envelope.id) == 1

    async def test_rollback_discards_every_write(self, storage, owner_id):
        """Test that a failure inside a transaction writes nothing."""
        envelope = make_envelope(owner_id)
        await storage.insert_envelope(envelope)

        with pytest.raises(StorageError):
            async with storage.transaction():
                await storage.update_envelope(
                    envelope.with_changes(current_balance=Decimal("1"))
                )
                await storage.insert_expense(make_expense(owner_id, envelope.id))
                raise StorageError("boom")

        stored = await storage.get_envelope(owner_id, envelope.id)
        assert stored.current_balance == Decimal("400.00")
        assert await storage.count_expenses(owner_id, envelope.id) == 0

    async def test_nested_transaction_joins_outer(self, storage, owner_id):
        """Test that an inner scope commits only with the outer one."""
        envelope = make_envelope(owner_id)

        with pytest.raises(StorageError):
            async with storage.transaction():
                async with storage.transaction():
                    await storage.insert_envelope(envelope)
                raise StorageError("outer failed")

        assert await storage.get_envelope(owner_id, envelope.id) is None


class TestInMemoryIsolation:
    """Tests specific to the in-memory store."""

    async def test_returned_records_are_copies(self, owner_id):
        """Test that callers cannot mutate stored state."""
        storage = InMemoryLedgerStorage()
        envelope = make_envelope(owner_id)
        await storage.insert_envelope(envelope)

        fetched = await storage.get_envelope(owner_id, envelope.id)
        fetched.current_balance = Decimal("0")

        stored = await storage.get_envelope(owner_id, envelope.id)
        assert stored.current_balance == Decimal("400.00")


class TestAuditStorage:
    """Tests for audit event persistence."""

    async def test_append_and_query(self, audit_storage):
        """Test lookups by correlation id and entity."""
        owner_id = uuid4()
        envelope_id = uuid4()
        correlation_id = uuid4()

        first = AuditEventBuilder.envelope_created(
            owner_id, envelope_id, "Groceries", Decimal("400"), correlation_id
        )
        second = AuditEventBuilder.envelope_deleted(
            owner_id, envelope_id, "Groceries", correlation_id
        )
        unrelated = AuditEventBuilder.daily_budget_updated(owner_id, Decimal("500"))

        base = datetime(2026, 10, 14, 9, 0, 0)
        events = [
            event.model_copy(update={"timestamp": base + timedelta(seconds=offset)})
            for offset, event in enumerate((first, second, unrelated))
        ]
        for event in events:
            assert await audit_storage.append_event(event)

        correlated = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_id for e in correlated] == [first.event_id, second.event_id]

        by_entity = await audit_storage.get_events_by_entity("envelope", envelope_id)
        assert len(by_entity) == 2
        assert by_entity[0].details["name"] == "Groceries"

        recent = await audit_storage.get_recent_events(limit=1)
        assert recent[0].event_id == unrelated.event_id
