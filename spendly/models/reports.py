"""
Report Models for Spendly

Read-side shapes produced by the report aggregator. None of these are
stored; they are derived on demand from expenses and envelopes.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from spendly.models.ledger import quantize_money, utc_now


class DayStatus(str, Enum):
    """
    Traffic-light classification of one day's spend.

    RED: spent more than the daily budget
    YELLOW: spent more than the warning share of the budget
    GREEN: everything else (including days with no spend)
    """
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


def classify_day(
    total_spent: Decimal,
    daily_budget: Decimal,
    warning_ratio: Decimal,
) -> DayStatus:
    """
    Classify a day against the budget.

    Both thresholds are strict greater-than and red is checked first.
    """
    if total_spent > daily_budget:
        return DayStatus.RED
    if total_spent > daily_budget * warning_ratio:
        return DayStatus.YELLOW
    return DayStatus.GREEN


def spend_percentage(spent: Decimal, allocated: Decimal) -> Decimal:
    """Spent as a percentage of allocated, 2 decimals; 0 when nothing is allocated."""
    if allocated == 0:
        return Decimal("0")
    return quantize_money(spent / allocated * 100)


class ReportPeriod(BaseModel):
    """Inclusive date range a report covers."""

    start: date
    end: date
    month: Optional[int] = None
    year: Optional[int] = None


class DailyStats(BaseModel):
    """Spend for a single calendar day."""

    day: date = Field(serialization_alias="date")
    total_spent: Decimal = Decimal("0")
    transaction_count: int = Field(default=0, ge=0)

    @classmethod
    def from_amounts(cls, day: date, amounts: list[Decimal]) -> "DailyStats":
        return cls(
            day=day,
            total_spent=sum(amounts, Decimal("0")),
            transaction_count=len(amounts),
        )


class DaySpend(DailyStats):
    """One entry of a weekly breakdown."""

    day_name: str


class EnvelopeSpend(BaseModel):
    """Spend grouped by envelope within a report window."""

    envelope_id: Optional[UUID] = None
    name: str
    icon: str
    total: Decimal = Decimal("0")
    count: int = Field(default=0, ge=0)


class WeeklyReport(BaseModel):
    """Monday-to-Sunday spend summary."""

    period: ReportPeriod
    total_spent: Decimal
    transaction_count: int
    daily_breakdown: list[DaySpend]
    envelope_breakdown: list[EnvelopeSpend]


class DayStatusEntry(BaseModel):
    """One day of a monthly report with its traffic-light status."""

    day: date = Field(serialization_alias="date")
    total_spent: Decimal
    transaction_count: int = 0
    status: DayStatus


class StatusCount(BaseModel):
    """Histogram of day statuses across a month."""

    green: int = 0
    yellow: int = 0
    red: int = 0


class EnvelopeBreakdown(BaseModel):
    """Envelope usage line of a monthly report."""

    envelope_id: UUID
    name: str
    icon: str
    allocated: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: Decimal


class MonthlyReport(BaseModel):
    """Calendar-month spend summary with day statuses."""

    period: ReportPeriod
    total_spent: Decimal
    transaction_count: int
    daily_budget: Decimal
    status_count: StatusCount
    daily_breakdown: list[DayStatusEntry]
    envelope_breakdown: list[EnvelopeBreakdown]


# =============================================================================
# DOCUMENT SNAPSHOT
# =============================================================================

class DocumentLine(BaseModel):
    """Per-envelope line of the monthly document."""

    icon: str
    name: str
    allocated: Decimal
    spent: Decimal
    remaining: Decimal


class DocumentModel(BaseModel):
    """
    Renderer-agnostic monthly document.

    A DocumentRenderer turns this into a downloadable file. The snapshot
    carries everything the renderer needs; it never queries the ledger.
    """

    title: str
    period_label: str
    currency_symbol: str
    total_spent: Decimal
    transaction_count: int
    lines: list[DocumentLine] = Field(default_factory=list)
    closing_message: str
    footer: str
    filename: str
    generated_at: datetime = Field(default_factory=utc_now)
