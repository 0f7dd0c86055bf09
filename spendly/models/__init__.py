"""
Data Models Package

This package contains all Pydantic models used by the Spendly ledger.
All data flowing through the system must conform to these schemas.
"""

from spendly.models.ledger import (
    Bill,
    BillPayment,
    BillStatus,
    Envelope,
    EnvelopeStat,
    Expense,
    ExpenseOutcome,
    LedgerRecord,
    Money,
    Reconciliation,
    UserPreferences,
    ValidationIssue,
    quantize_money,
)
from spendly.models.reports import (
    DailyStats,
    DayStatus,
    DayStatusEntry,
    DaySpend,
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
from spendly.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Bill",
    "BillPayment",
    "BillStatus",
    "Envelope",
    "EnvelopeStat",
    "Expense",
    "ExpenseOutcome",
    "LedgerRecord",
    "Money",
    "Reconciliation",
    "UserPreferences",
    "ValidationIssue",
    "quantize_money",
    # Report models
    "DailyStats",
    "DayStatus",
    "DayStatusEntry",
    "DaySpend",
    "DocumentLine",
    "DocumentModel",
    "EnvelopeBreakdown",
    "EnvelopeSpend",
    "MonthlyReport",
    "ReportPeriod",
    "StatusCount",
    "WeeklyReport",
    "classify_day",
    "spend_percentage",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
