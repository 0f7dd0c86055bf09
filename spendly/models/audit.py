"""
Audit Models for Spendly

Every ledger mutation is logged for audit purposes.
This provides:
1. Traceability of every balance change
2. Debugging information when a mutation rolls back
3. A record of partial successes (bill paid, envelope not charged)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from spendly.models.ledger import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Envelopes
    ENVELOPE_CREATED = "envelope_created"
    ENVELOPE_UPDATED = "envelope_updated"
    ENVELOPE_DELETED = "envelope_deleted"
    ENVELOPE_DRIFT_DETECTED = "envelope_drift_detected"

    # Expenses
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # Bills
    BILL_CREATED = "bill_created"
    BILL_UPDATED = "bill_updated"
    BILL_DELETED = "bill_deleted"
    BILL_PAID = "bill_paid"
    LEDGER_EFFECT_SKIPPED = "ledger_effect_skipped"

    # Preferences
    DAILY_BUDGET_UPDATED = "daily_budget_updated"

    # Failures
    MUTATION_ROLLED_BACK = "mutation_rolled_back"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and what
    owner_id: Optional[UUID] = Field(
        default=None,
        description="User the affected record belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'envelope', 'expense', 'bill')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one ledger operation"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def details_json(self) -> str:
        """Serialize details for a text column."""
        return json.dumps(self.details, default=str) if self.details else ""


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_recorded(owner_id, expense_id, ...)
        event = AuditEventBuilder.bill_paid(owner_id, bill_id, ...)
    """

    @staticmethod
    def envelope_created(
        owner_id: UUID,
        envelope_id: UUID,
        name: str,
        allocated: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENVELOPE_CREATED,
            owner_id=owner_id,
            entity_type="envelope",
            entity_id=envelope_id,
            correlation_id=correlation_id,
            description=f"Envelope created: {name} ({_money(allocated)})",
            details={"name": name, "allocated_amount": _money(allocated)},
        )

    @staticmethod
    def envelope_updated(
        owner_id: UUID,
        envelope_id: UUID,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENVELOPE_UPDATED,
            owner_id=owner_id,
            entity_type="envelope",
            entity_id=envelope_id,
            correlation_id=correlation_id,
            description=f"Envelope updated: {', '.join(sorted(changes)) or 'no changes'}",
            details={key: str(value) for key, value in changes.items()},
        )

    @staticmethod
    def envelope_deleted(
        owner_id: UUID,
        envelope_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENVELOPE_DELETED,
            owner_id=owner_id,
            entity_type="envelope",
            entity_id=envelope_id,
            correlation_id=correlation_id,
            description=f"Envelope deleted: {name}",
        )

    @staticmethod
    def envelope_drift_detected(
        owner_id: UUID,
        envelope_id: UUID,
        expected: Decimal,
        actual: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENVELOPE_DRIFT_DETECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="envelope",
            entity_id=envelope_id,
            correlation_id=correlation_id,
            description=(
                f"Envelope balance {_money(actual)} does not match "
                f"recorded spend (expected {_money(expected)})"
            ),
            details={"expected": _money(expected), "actual": _money(actual)},
        )

    @staticmethod
    def expense_recorded(
        owner_id: UUID,
        expense_id: UUID,
        envelope_id: UUID,
        amount: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense recorded: {_money(amount)}",
            details={
                "envelope_id": str(envelope_id),
                "amount": _money(amount),
                "new_balance": _money(new_balance),
            },
        )

    @staticmethod
    def expense_updated(
        owner_id: UUID,
        expense_id: UUID,
        ledger_changed: bool,
        details: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        suffix = " (balances adjusted)" if ledger_changed else ""
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense updated{suffix}",
            details={key: str(value) for key, value in details.items()},
        )

    @staticmethod
    def expense_deleted(
        owner_id: UUID,
        expense_id: UUID,
        envelope_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            owner_id=owner_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense deleted, {_money(amount)} returned to envelope",
            details={"envelope_id": str(envelope_id), "amount": _money(amount)},
        )

    @staticmethod
    def bill_created(
        owner_id: UUID,
        bill_id: UUID,
        name: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_CREATED,
            owner_id=owner_id,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill created: {name} - {_money(amount)}",
            details={"name": name, "amount": _money(amount)},
        )

    @staticmethod
    def bill_updated(
        owner_id: UUID,
        bill_id: UUID,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_UPDATED,
            owner_id=owner_id,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill updated: {', '.join(sorted(changes)) or 'no changes'}",
            details={key: str(value) for key, value in changes.items()},
        )

    @staticmethod
    def bill_deleted(
        owner_id: UUID,
        bill_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_DELETED,
            owner_id=owner_id,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill deleted: {name}",
        )

    @staticmethod
    def bill_paid(
        owner_id: UUID,
        bill_id: UUID,
        amount: Decimal,
        expense_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            owner_id=owner_id,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill paid: {_money(amount)}",
            details={
                "amount": _money(amount),
                "expense_id": str(expense_id) if expense_id else None,
            },
        )

    @staticmethod
    def ledger_effect_skipped(
        owner_id: UUID,
        bill_id: UUID,
        envelope_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_EFFECT_SKIPPED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description="Bill marked paid without charging an envelope",
            details={"envelope_id": str(envelope_id), "reason": reason},
        )

    @staticmethod
    def daily_budget_updated(
        owner_id: UUID,
        daily_budget: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DAILY_BUDGET_UPDATED,
            owner_id=owner_id,
            entity_type="preferences",
            correlation_id=correlation_id,
            description=f"Daily budget set to {_money(daily_budget)}",
            details={"daily_budget": _money(daily_budget)},
        )

    @staticmethod
    def mutation_rolled_back(
        owner_id: UUID,
        operation: str,
        error_kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"{operation} rolled back",
            error_code=error_kind,
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
