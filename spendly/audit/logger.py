"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when a mutation rolls back
3. Visibility of partial successes (bill paid, envelope not charged)

The audit logger:
- Is async so it composes with the ledger services
- Gracefully handles failures (a failed audit write never fails a mutation)
- Supports correlation IDs to trace the events of one operation
"""

import logging
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from spendly.config import get_settings
from spendly.models.audit import AuditEvent, AuditEventBuilder
from spendly.services.storage import AuditStorageInterface


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structlog for local JSON logging.

    Called once at import with the configured level; call again to
    change the level at runtime.
    """
    level = log_level or get_settings().app.log_level
    logging.basicConfig(format="%(message)s", level=getattr(logging, level))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(default=str),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("spendly.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # The ledger mutation already committed; never undo it here
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Envelopes
    # -------------------------------------------------------------------------

    async def log_envelope_created(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        name: str,
        allocated: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log envelope creation."""
        await self.log(AuditEventBuilder.envelope_created(
            owner_id=owner_id,
            envelope_id=envelope_id,
            name=name,
            allocated=allocated,
            correlation_id=correlation_id,
        ))

    async def log_envelope_updated(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.envelope_updated(
            owner_id=owner_id,
            envelope_id=envelope_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_envelope_deleted(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        name: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.envelope_deleted(
            owner_id=owner_id,
            envelope_id=envelope_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_envelope_drift(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        expected: Decimal,
        actual: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log a balance that disagrees with the recorded expenses."""
        await self.log(AuditEventBuilder.envelope_drift_detected(
            owner_id=owner_id,
            envelope_id=envelope_id,
            expected=expected,
            actual=actual,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def log_expense_recorded(
        self,
        owner_id: UUID,
        expense_id: UUID,
        envelope_id: UUID,
        amount: Decimal,
        new_balance: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log a new expense and the balance it left behind."""
        await self.log(AuditEventBuilder.expense_recorded(
            owner_id=owner_id,
            expense_id=expense_id,
            envelope_id=envelope_id,
            amount=amount,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))

    async def log_expense_updated(
        self,
        owner_id: UUID,
        expense_id: UUID,
        ledger_changed: bool,
        details: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_updated(
            owner_id=owner_id,
            expense_id=expense_id,
            ledger_changed=ledger_changed,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_expense_deleted(
        self,
        owner_id: UUID,
        expense_id: UUID,
        envelope_id: UUID,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            owner_id=owner_id,
            expense_id=expense_id,
            envelope_id=envelope_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def log_bill_created(
        self,
        owner_id: UUID,
        bill_id: UUID,
        name: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bill_created(
            owner_id=owner_id,
            bill_id=bill_id,
            name=name,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_bill_updated(
        self,
        owner_id: UUID,
        bill_id: UUID,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bill_updated(
            owner_id=owner_id,
            bill_id=bill_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_bill_deleted(
        self,
        owner_id: UUID,
        bill_id: UUID,
        name: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bill_deleted(
            owner_id=owner_id,
            bill_id=bill_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_bill_paid(
        self,
        owner_id: UUID,
        bill_id: UUID,
        amount: Decimal,
        expense_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        """Log a bill payment (and the expense it produced, if any)."""
        await self.log(AuditEventBuilder.bill_paid(
            owner_id=owner_id,
            bill_id=bill_id,
            amount=amount,
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    async def log_ledger_effect_skipped(
        self,
        owner_id: UUID,
        bill_id: UUID,
        envelope_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.ledger_effect_skipped(
            owner_id=owner_id,
            bill_id=bill_id,
            envelope_id=envelope_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Preferences and failures
    # -------------------------------------------------------------------------

    async def log_daily_budget_updated(
        self,
        owner_id: UUID,
        daily_budget: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.daily_budget_updated(
            owner_id=owner_id,
            daily_budget=daily_budget,
            correlation_id=correlation_id,
        ))

    async def log_rollback(
        self,
        owner_id: UUID,
        operation: str,
        error_kind: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a multi-step mutation that failed and was rolled back."""
        await self.log(AuditEventBuilder.mutation_rolled_back(
            owner_id=owner_id,
            operation=operation,
            error_kind=error_kind,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a ledger operation and pass it through
    every event the operation emits.
    """
    return uuid4()
