"""Tests for the report aggregator and document rendering."""

import pytest
from datetime import date
from decimal import Decimal

from spendly.errors import ValidationError
from spendly.models import Expense
from spendly.models.reports import DayStatus
from spendly.reports import PlainTextRenderer, month_bounds, week_bounds


class TestPeriodBounds:
    """Tests for week and month windows."""

    def test_week_starts_monday(self):
        assert week_bounds(date(2026, 10, 14)) == (date(2026, 10, 12), date(2026, 10, 18))
        assert week_bounds(date(2026, 10, 12)) == (date(2026, 10, 12), date(2026, 10, 18))
        assert week_bounds(date(2026, 10, 18)) == (date(2026, 10, 12), date(2026, 10, 18))

    def test_month_bounds(self):
        assert month_bounds(2, 2028) == (date(2028, 2, 1), date(2028, 2, 29))
        assert month_bounds(12, 2026) == (date(2026, 12, 1), date(2026, 12, 31))


class TestDailyStats:
    """Tests for single-day totals."""

    async def test_daily_stats(self, ledger, owner_id, groceries, dining):
        await ledger.create_expense(owner_id, groceries.id, "40", "Veg", date(2026, 10, 14))
        await ledger.create_expense(owner_id, dining.id, "12.50", "Lunch", date(2026, 10, 14))
        await ledger.create_expense(owner_id, dining.id, "9", "Coffee", date(2026, 10, 15))

        stats = await ledger.daily_stats(owner_id, "2026-10-14")
        assert stats.day == date(2026, 10, 14)
        assert stats.total_spent == Decimal("52.50")
        assert stats.transaction_count == 2

    async def test_empty_day(self, ledger, owner_id):
        stats = await ledger.daily_stats(owner_id, date(2026, 10, 1))
        assert stats.total_spent == Decimal("0")
        assert stats.transaction_count == 0


class TestWeeklyReport:
    """Tests for the Monday-to-Sunday report."""

    async def test_seven_days_from_monday(self, ledger, owner_id, today):
        """Test that an empty week still lists every day."""
        report = await ledger.weekly_report(owner_id, today)

        assert report.period.start == date(2026, 10, 12)
        assert report.period.end == date(2026, 10, 18)
        assert [entry.day_name for entry in report.daily_breakdown] == [
            "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
        ]
        assert report.total_spent == Decimal("0")
        assert report.envelope_breakdown == []

    async def test_week_totals_and_envelopes(
        self, ledger, owner_id, other_owner_id, groceries, dining, today
    ):
        """Test day totals and envelope grouping, largest first."""
        await ledger.create_expense(owner_id, groceries.id, "100", "Shop", date(2026, 10, 12))
        await ledger.create_expense(owner_id, dining.id, "30", "Dinner", date(2026, 10, 14))
        # Outside the week
        await ledger.create_expense(owner_id, dining.id, "5", "Snack", date(2026, 10, 11))

        # An expense whose envelope this owner cannot resolve
        foreign = await ledger.create_envelope(other_owner_id, "Theirs", "10", 10, 2026)
        await ledger.storage.insert_expense(Expense(
            owner_id=owner_id,
            envelope_id=foreign.id,
            amount=Decimal("50"),
            description="Orphan",
            expense_date=date(2026, 10, 16),
        ))

        report = await ledger.weekly_report(owner_id, today)

        assert report.total_spent == Decimal("180.00")
        assert report.transaction_count == 3
        by_day = {entry.day: entry for entry in report.daily_breakdown}
        assert by_day[date(2026, 10, 12)].total_spent == Decimal("100.00")
        assert by_day[date(2026, 10, 13)].transaction_count == 0

        names = [(entry.name, entry.total) for entry in report.envelope_breakdown]
        assert names == [
            ("Groceries", Decimal("100.00")),
            ("Unknown", Decimal("50.00")),
            ("Dining", Decimal("30.00")),
        ]
        unknown = report.envelope_breakdown[1]
        assert unknown.envelope_id is None
        assert unknown.icon == "📦"

    async def test_reference_at_end_of_calendar(self, ledger, owner_id):
        """Test that a week running past the last date is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await ledger.weekly_report(owner_id, date(9999, 12, 31))
        assert exc_info.value.issues[0].field == "reference_date"


class TestMonthlyReport:
    """Tests for the calendar-month report with day statuses."""

    async def test_empty_month_is_all_green(self, ledger, owner_id):
        report = await ledger.monthly_report(owner_id, 10, 2026)

        assert report.total_spent == Decimal("0")
        assert len(report.daily_breakdown) == 31
        assert report.status_count.green == 31
        assert report.status_count.red == 0
        assert report.daily_budget == Decimal("1000")

    async def test_day_statuses_against_budget(self, ledger, owner_id, groceries):
        """Test strict thresholds: above budget is red, above 80% is yellow."""
        await ledger.set_daily_budget(owner_id, "100")
        await ledger.create_expense(owner_id, groceries.id, "80", "At warning line", date(2026, 10, 1))
        await ledger.create_expense(owner_id, groceries.id, "85", "Warning", date(2026, 10, 2))
        await ledger.create_expense(owner_id, groceries.id, "100", "At budget", date(2026, 10, 3))
        await ledger.create_expense(owner_id, groceries.id, "60", "Over, part one", date(2026, 10, 4))
        await ledger.create_expense(owner_id, groceries.id, "60", "Over, part two", date(2026, 10, 4))

        report = await ledger.monthly_report(owner_id, 10, 2026)
        statuses = {entry.day.day: entry.status for entry in report.daily_breakdown}

        assert statuses[1] == DayStatus.GREEN
        assert statuses[2] == DayStatus.YELLOW
        assert statuses[3] == DayStatus.YELLOW
        assert statuses[4] == DayStatus.RED
        assert report.status_count.model_dump() == {"green": 28, "yellow": 2, "red": 1}
        assert report.daily_budget == Decimal("100.00")
        assert report.total_spent == Decimal("385.00")

    async def test_day_entries_serialize_as_date(self, ledger, owner_id, today):
        """Test that serialized day entries carry a `date` key."""
        monthly = await ledger.monthly_report(owner_id, 10, 2026)
        weekly = await ledger.weekly_report(owner_id, today)

        first_day = monthly.model_dump(mode="json", by_alias=True)["daily_breakdown"][0]
        assert first_day["date"] == "2026-10-01"
        assert "day" not in first_day
        monday = weekly.model_dump(mode="json", by_alias=True)["daily_breakdown"][0]
        assert monday["date"] == "2026-10-12"
        assert monday["day_name"] == "Monday"

    async def test_envelope_breakdown(self, ledger, owner_id, groceries, dining):
        await ledger.create_expense(owner_id, groceries.id, "100", "Shop", date(2026, 10, 5))
        await ledger.create_envelope(owner_id, "Next month", "10", 11, 2026)

        report = await ledger.monthly_report(owner_id, 10, 2026)
        breakdown = {line.name: line for line in report.envelope_breakdown}

        assert set(breakdown) == {"Groceries", "Dining"}
        assert breakdown["Groceries"].spent == Decimal("100.00")
        assert breakdown["Groceries"].remaining == Decimal("300.00")
        assert breakdown["Groceries"].percentage == Decimal("25.00")
        assert breakdown["Dining"].percentage == Decimal("0.00")

    async def test_invalid_month(self, ledger, owner_id):
        with pytest.raises(ValidationError):
            await ledger.monthly_report(owner_id, 13, 2026)

    async def test_budget_must_be_positive(self, ledger, owner_id):
        with pytest.raises(ValidationError):
            await ledger.set_daily_budget(owner_id, "0")
        assert await ledger.get_daily_budget(owner_id) == Decimal("1000")


class TestDocumentSnapshot:
    """Tests for the monthly document."""

    async def test_snapshot_fields(self, ledger, owner_id, groceries):
        await ledger.create_expense(owner_id, groceries.id, "123.45", "Shop", date(2026, 10, 9))

        document = await ledger.pdf_snapshot(owner_id, 10, 2026)

        assert document.period_label == "October 2026"
        assert document.filename == "spendly-report-2026-10.pdf"
        assert document.total_spent == Decimal("123.45")
        assert document.transaction_count == 1
        assert [line.name for line in document.lines] == ["Groceries"]
        assert document.lines[0].remaining == Decimal("276.55")

    async def test_render_monthly_document(self, ledger, owner_id, groceries):
        """Test the text rendition carries every section."""
        await ledger.create_expense(owner_id, groceries.id, "40", "Shop", date(2026, 10, 9))

        document, content = await ledger.render_monthly_document(owner_id, 10, 2026)
        text = content.decode("utf-8")

        assert document.filename == "spendly-report-2026-10.pdf"
        assert "Period: October 2026" in text
        assert "Total Spent: ₹40.00" in text
        assert "Total Transactions: 1" in text
        assert "🛒 Groceries" in text
        assert "  Remaining: ₹360.00" in text
        assert text.rstrip().endswith(document.footer)

    async def test_empty_month_renders(self, ledger, owner_id):
        document = await ledger.pdf_snapshot(owner_id, 2, 2027)
        text = PlainTextRenderer().render(document).decode("utf-8")

        assert "Total Spent: ₹0.00" in text
        assert "No envelopes for this period" in text
        assert PlainTextRenderer().content_type.startswith("text/plain")
