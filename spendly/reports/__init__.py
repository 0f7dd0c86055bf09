"""Reports package."""

from spendly.reports.aggregator import ReportAggregator, month_bounds, week_bounds
from spendly.reports.renderer import DocumentRenderer, PlainTextRenderer

__all__ = [
    "DocumentRenderer",
    "PlainTextRenderer",
    "ReportAggregator",
    "month_bounds",
    "week_bounds",
]
