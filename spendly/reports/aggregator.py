"""
Report Aggregation Engine

DESIGN DECISION: Reports are DETERMINISTIC reads over stored records.
Every number in a report is a sum or count over expenses and envelopes
that exist in storage. Nothing is estimated, nothing is cached, and an
empty window is a valid report with zero totals.

Reports never write. They read the ledger store and the user's daily
budget directly and are independent of the mutation path.
"""

import calendar
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from spendly.config import LedgerSettings, get_settings
from spendly.models.ledger import Envelope, Expense
from spendly.models.reports import (
    DailyStats,
    DaySpend,
    DayStatusEntry,
    DocumentLine,
    DocumentModel,
    EnvelopeBreakdown,
    EnvelopeSpend,
    MonthlyReport,
    ReportPeriod,
    StatusCount,
    WeeklyReport,
    classify_day,
    spend_percentage,
)
from spendly.services.ledger.guard import translate_read_errors
from spendly.services.storage import LedgerStorageInterface, UserPreferencesInterface
from spendly.validation import InputValidator


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def week_bounds(reference: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing reference."""
    start = reference - timedelta(days=reference.weekday())
    return start, start + timedelta(days=6)


def month_bounds(month: int, year: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _days(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def _group_by_day(expenses: list[Expense]) -> dict[date, list[Decimal]]:
    grouped: dict[date, list[Decimal]] = defaultdict(list)
    for expense in expenses:
        grouped[expense.expense_date].append(expense.amount)
    return grouped


class ReportAggregator:
    """
    Builds weekly, monthly and document reports for one owner.

    Usage:
        aggregator = ReportAggregator(storage, storage)
        report = await aggregator.monthly_report(owner_id, 10, 2026)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        preferences: UserPreferencesInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._preferences = preferences
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Shared reads
    # -------------------------------------------------------------------------

    async def _expenses(self, owner_id: UUID, start: date, end: date, operation: str) -> list[Expense]:
        async with translate_read_errors(operation):
            return await self._storage.list_expenses(owner_id, date_from=start, date_to=end)

    async def _month_envelopes(
        self,
        owner_id: UUID,
        month: int,
        year: int,
        operation: str,
    ) -> list[Envelope]:
        async with translate_read_errors(operation):
            return await self._storage.list_envelopes(owner_id, month=month, year=year)

    async def daily_budget(self, owner_id: UUID) -> Decimal:
        """The owner's daily budget, or the configured default."""
        async with translate_read_errors("daily_budget"):
            budget = await self._preferences.get_daily_budget(owner_id)
        return budget if budget is not None else self._settings.default_daily_budget

    @staticmethod
    def _month(month: Any, year: Any, operation: str) -> tuple[int, int]:
        check = InputValidator()
        month = check.month(month)
        year = check.year(year)
        check.raise_if_invalid(operation)
        return month, year

    # -------------------------------------------------------------------------
    # Daily
    # -------------------------------------------------------------------------

    async def daily_stats(self, owner_id: UUID, day: Any) -> DailyStats:
        """Total spend and transaction count for one calendar day."""
        check = InputValidator()
        day = check.calendar_date(day, "day")
        check.raise_if_invalid("daily_stats")

        expenses = await self._expenses(owner_id, day, day, "daily_stats")
        return DailyStats.from_amounts(day, [expense.amount for expense in expenses])

    # -------------------------------------------------------------------------
    # Weekly
    # -------------------------------------------------------------------------

    async def weekly_report(
        self,
        owner_id: UUID,
        reference_date: Any = None,
    ) -> WeeklyReport:
        """
        Spend for the Monday-to-Sunday week containing reference_date.

        Always seven daily entries; envelope entries only for envelopes
        with spend in the week.
        """
        check = InputValidator()
        reference = check.week_reference(reference_date or date.today())
        check.raise_if_invalid("weekly_report")

        start, end = week_bounds(reference)
        expenses = await self._expenses(owner_id, start, end, "weekly_report")
        by_day = _group_by_day(expenses)

        daily = [
            DaySpend(
                day=day,
                day_name=calendar.day_name[day.weekday()],
                total_spent=sum(by_day.get(day, []), ZERO),
                transaction_count=len(by_day.get(day, [])),
            )
            for day in _days(start, end)
        ]

        return WeeklyReport(
            period=ReportPeriod(start=start, end=end),
            total_spent=sum((expense.amount for expense in expenses), ZERO),
            transaction_count=len(expenses),
            daily_breakdown=daily,
            envelope_breakdown=await self._envelope_spend(owner_id, expenses),
        )

    async def _envelope_spend(
        self,
        owner_id: UUID,
        expenses: list[Expense],
    ) -> list[EnvelopeSpend]:
        """Group expenses by envelope; unresolvable envelopes share one entry."""
        envelope_ids = {expense.envelope_id for expense in expenses}
        envelopes: dict[UUID, Envelope] = {}
        async with translate_read_errors("weekly_report"):
            for envelope_id in envelope_ids:
                envelope = await self._storage.get_envelope(owner_id, envelope_id)
                if envelope is not None:
                    envelopes[envelope_id] = envelope

        groups: dict[Optional[UUID], EnvelopeSpend] = {}
        for expense in expenses:
            envelope = envelopes.get(expense.envelope_id)
            key = envelope.id if envelope else None
            entry = groups.get(key)
            if entry is None:
                entry = groups[key] = EnvelopeSpend(
                    envelope_id=key,
                    name=envelope.name if envelope else self._settings.unknown_envelope_name,
                    icon=envelope.icon if envelope else self._settings.unknown_envelope_icon,
                )
            entry.total += expense.amount
            entry.count += 1

        return sorted(groups.values(), key=lambda entry: entry.total, reverse=True)

    # -------------------------------------------------------------------------
    # Monthly
    # -------------------------------------------------------------------------

    async def monthly_report(
        self,
        owner_id: UUID,
        month: Any,
        year: Any,
    ) -> MonthlyReport:
        """
        Spend for a calendar month with a traffic-light status per day.

        Days above the daily budget are red, days above the warning share
        of it are yellow, every other day (including empty ones) is green.
        """
        month, year = self._month(month, year, "monthly_report")
        start, end = month_bounds(month, year)

        expenses = await self._expenses(owner_id, start, end, "monthly_report")
        envelopes = await self._month_envelopes(owner_id, month, year, "monthly_report")
        budget = await self.daily_budget(owner_id)
        by_day = _group_by_day(expenses)

        daily: list[DayStatusEntry] = []
        counts = StatusCount()
        for day in _days(start, end):
            total = sum(by_day.get(day, []), ZERO)
            status = classify_day(total, budget, self._settings.warning_ratio)
            setattr(counts, status.value, getattr(counts, status.value) + 1)
            daily.append(DayStatusEntry(
                day=day,
                total_spent=total,
                transaction_count=len(by_day.get(day, [])),
                status=status,
            ))

        breakdown = [
            EnvelopeBreakdown(
                envelope_id=envelope.id,
                name=envelope.name,
                icon=envelope.icon,
                allocated=envelope.allocated_amount,
                spent=envelope.spent,
                remaining=envelope.current_balance,
                percentage=spend_percentage(envelope.spent, envelope.allocated_amount),
            )
            for envelope in envelopes
        ]

        logger.debug(
            "monthly_report_built",
            owner_id=str(owner_id),
            month=month,
            year=year,
            expenses=len(expenses),
        )
        return MonthlyReport(
            period=ReportPeriod(start=start, end=end, month=month, year=year),
            total_spent=sum((expense.amount for expense in expenses), ZERO),
            transaction_count=len(expenses),
            daily_budget=budget,
            status_count=counts,
            daily_breakdown=daily,
            envelope_breakdown=breakdown,
        )

    # -------------------------------------------------------------------------
    # Document snapshot
    # -------------------------------------------------------------------------

    async def pdf_snapshot(
        self,
        owner_id: UUID,
        month: Any,
        year: Any,
    ) -> DocumentModel:
        """
        Everything a renderer needs to produce the monthly document.

        The snapshot is renderer-agnostic; PDF output is a DocumentRenderer.
        """
        month, year = self._month(month, year, "pdf_snapshot")
        start, end = month_bounds(month, year)

        expenses = await self._expenses(owner_id, start, end, "pdf_snapshot")
        envelopes = await self._month_envelopes(owner_id, month, year, "pdf_snapshot")

        return DocumentModel(
            title=self._settings.report_title,
            period_label=start.strftime("%B %Y"),
            currency_symbol=self._settings.currency_symbol,
            total_spent=sum((expense.amount for expense in expenses), ZERO),
            transaction_count=len(expenses),
            lines=[
                DocumentLine(
                    icon=envelope.icon,
                    name=envelope.name,
                    allocated=envelope.allocated_amount,
                    spent=envelope.spent,
                    remaining=envelope.current_balance,
                )
                for envelope in envelopes
            ],
            closing_message=self._settings.report_closing_message,
            footer=self._settings.report_footer,
            filename=f"spendly-report-{year}-{month}.pdf",
        )
