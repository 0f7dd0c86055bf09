"""Tests for the envelope service."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from spendly.errors import EnvelopeInUseError, NotFoundError, ValidationError


class TestEnvelopeLifecycle:
    """Tests for create, edit and delete."""

    async def test_create_starts_full(self, groceries):
        """Test that a new envelope's balance equals its allocation."""
        assert groceries.allocated_amount == Decimal("400.00")
        assert groceries.current_balance == Decimal("400.00")
        assert groceries.icon == "🛒"

    async def test_create_default_icon(self, ledger, owner_id):
        envelope = await ledger.create_envelope(owner_id, "Misc", "0", 10, 2026)
        assert envelope.icon == "📦"
        assert envelope.current_balance == Decimal("0.00")

    async def test_create_validation(self, ledger, owner_id):
        """Test that every bad field is reported and nothing is stored."""
        with pytest.raises(ValidationError) as exc_info:
            await ledger.create_envelope(owner_id, " ", "-10", 13, 2026)
        fields = {issue.field for issue in exc_info.value.issues}
        assert fields == {"name", "allocated_amount", "month"}
        assert await ledger.list_envelopes(owner_id) == []

    async def test_rename_keeps_balance(self, ledger, owner_id, groceries):
        await ledger.create_expense(owner_id, groceries.id, "25", "Bread", date(2026, 10, 3))
        updated = await ledger.update_envelope(owner_id, groceries.id, name="Food", color="#00ff00")
        assert updated.name == "Food"
        assert updated.color == "#00ff00"
        assert updated.current_balance == Decimal("375.00")

    async def test_allocation_edit_rebases_balance(self, ledger, owner_id, groceries, assert_invariant):
        """Test that raising the allocation keeps what was already spent."""
        await ledger.create_expense(owner_id, groceries.id, "60", "Veg", date(2026, 10, 3))

        updated = await ledger.update_envelope(owner_id, groceries.id, allocated_amount="500")
        assert updated.allocated_amount == Decimal("500.00")
        assert updated.current_balance == Decimal("440.00")
        await assert_invariant()

    async def test_update_unknown(self, ledger, owner_id):
        with pytest.raises(NotFoundError):
            await ledger.update_envelope(owner_id, uuid4(), name="Ghost")

    async def test_delete_empty_envelope(self, ledger, owner_id, groceries):
        await ledger.delete_envelope(owner_id, groceries.id)
        with pytest.raises(NotFoundError):
            await ledger.get_envelope(owner_id, groceries.id)

    async def test_delete_in_use_is_refused(self, ledger, owner_id, groceries):
        """Test that an envelope with expenses cannot be deleted."""
        await ledger.create_expense(owner_id, groceries.id, "10", "Eggs", date(2026, 10, 2))

        with pytest.raises(EnvelopeInUseError) as exc_info:
            await ledger.delete_envelope(owner_id, groceries.id)
        assert exc_info.value.kind == "validation_error"
        assert exc_info.value.details["expense_count"] == 1
        assert (await ledger.get_envelope(owner_id, groceries.id)).name == "Groceries"

    async def test_foreign_owner_cannot_delete(self, ledger, other_owner_id, groceries):
        with pytest.raises(NotFoundError):
            await ledger.delete_envelope(other_owner_id, groceries.id)


class TestEnvelopeViews:
    """Tests for listing, stats and reconciliation."""

    async def test_list_by_month(self, ledger, owner_id, groceries):
        await ledger.create_envelope(owner_id, "November", "10", 11, 2026)
        october = await ledger.list_envelopes(owner_id, month=10, year=2026)
        assert [envelope.id for envelope in october] == [groceries.id]

    async def test_stats_percentage(self, ledger, owner_id, groceries, dining):
        """Test spent and percentage used per envelope."""
        await ledger.create_expense(owner_id, groceries.id, "100", "Weekly shop", date(2026, 10, 5))
        await ledger.create_expense(owner_id, dining.id, "60", "Dinner", date(2026, 10, 5))

        stats = {stat.name: stat for stat in await ledger.envelope_stats(owner_id, 10, 2026)}
        assert stats["Groceries"].spent == Decimal("100.00")
        assert stats["Groceries"].percentage == Decimal("25.00")
        assert stats["Dining"].current_balance == Decimal("-10.00")
        assert stats["Dining"].percentage == Decimal("120.00")

    async def test_stats_zero_allocation(self, ledger, owner_id):
        await ledger.create_envelope(owner_id, "Empty", "0", 10, 2026)
        [stat] = await ledger.envelope_stats(owner_id, 10, 2026)
        assert stat.percentage == Decimal("0")

    async def test_reconcile_consistent(self, ledger, owner_id, groceries):
        await ledger.create_expense(owner_id, groceries.id, "12.34", "Fruit", date(2026, 10, 8))
        result = await ledger.reconcile_envelope(owner_id, groceries.id)
        assert result.is_consistent
        assert result.recorded_spend == Decimal("12.34")
        assert result.expense_count == 1

    async def test_reconcile_reports_drift(self, ledger, owner_id, groceries):
        """Test that a tampered balance is reported and left alone."""
        tampered = groceries.with_changes(current_balance=Decimal("390.00"))
        await ledger.storage.update_envelope(tampered)

        result = await ledger.reconcile_envelope(owner_id, groceries.id)
        assert not result.is_consistent
        assert result.drift == Decimal("-10.00")
        assert result.expected_balance == Decimal("400.00")

        stored = await ledger.get_envelope(owner_id, groceries.id)
        assert stored.current_balance == Decimal("390.00")

        events = await ledger.audit_logger.storage.get_events_by_entity("envelope", groceries.id)
        assert any(event.event_type.value == "envelope_drift_detected" for event in events)
