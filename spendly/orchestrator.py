"""
Main Orchestrator for Spendly

This module ties together all the components and exposes the ledger's
operation surface:
1. Envelopes (create, edit, delete, stats, reconciliation)
2. Expenses (record, edit, delete, list, daily stats)
3. Bills (CRUD, payment, upcoming reminders)
4. Reports (weekly, monthly, document snapshot)
5. Preferences (daily budget)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every operation takes the owner id explicitly
- Every mutation goes through the shared locks and storage transaction
- Every mutation is audited

Authentication, receipt parsing, notifications and the UI live outside
this package and call in through `Ledger`.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from spendly.audit import AuditLogger, create_correlation_id
from spendly.config import get_settings
from spendly.errors import UpstreamUnavailableError
from spendly.models.ledger import (
    Bill,
    BillPayment,
    BillStatus,
    Envelope,
    EnvelopeStat,
    Expense,
    ExpenseOutcome,
    Reconciliation,
)
from spendly.models.reports import DailyStats, DocumentModel, MonthlyReport, WeeklyReport
from spendly.reports import DocumentRenderer, PlainTextRenderer, ReportAggregator
from spendly.services.ledger import (
    UNSET,
    BillProcessor,
    EnvelopeBalanceEngine,
    EnvelopeService,
    ExpenseProcessor,
    MutationGuard,
    RecordLocks,
)
from spendly.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    SQLAuditStorage,
    SQLDatabase,
    SQLLedgerStorage,
    StorageError,
    UserPreferencesInterface,
)
from spendly.validation import InputValidator


logger = structlog.get_logger(__name__)


class Ledger:
    """
    The ledger's public operation surface.

    One instance per process; all services share one storage backend,
    one set of record locks and one audit logger.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        preferences: Optional[UserPreferencesInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        renderer: Optional[DocumentRenderer] = None,
    ):
        if preferences is None:
            if not isinstance(storage, UserPreferencesInterface):
                raise TypeError("A preferences store is required for this storage backend")
            preferences = storage

        self._storage = storage
        self._preferences = preferences
        self._audit_logger = audit_logger or AuditLogger()
        self._renderer = renderer or PlainTextRenderer()

        locks = RecordLocks()
        self.guard = MutationGuard(storage, locks, self._audit_logger)
        self.balance = EnvelopeBalanceEngine(storage, locks)
        self.envelopes = EnvelopeService(storage, self.balance, self.guard)
        self.expenses = ExpenseProcessor(storage, self.balance, self.guard)
        self.bills = BillProcessor(storage, self.expenses, self.guard)
        self.reports = ReportAggregator(storage, preferences)

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    # -------------------------------------------------------------------------
    # Envelopes
    # -------------------------------------------------------------------------

    async def create_envelope(
        self,
        owner_id: UUID,
        name: str,
        allocated_amount: Any,
        month: Any,
        year: Any,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Envelope:
        return await self.envelopes.create_envelope(
            owner_id,
            name,
            allocated_amount,
            month,
            year,
            icon=icon,
            color=color,
            correlation_id=correlation_id,
        )

    async def update_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        allocated_amount: Any = None,
        correlation_id: Optional[UUID] = None,
    ) -> Envelope:
        return await self.envelopes.update_envelope(
            owner_id,
            envelope_id,
            name=name,
            icon=icon,
            color=color,
            allocated_amount=allocated_amount,
            correlation_id=correlation_id,
        )

    async def delete_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.envelopes.delete_envelope(owner_id, envelope_id, correlation_id=correlation_id)

    async def get_envelope(self, owner_id: UUID, envelope_id: UUID) -> Envelope:
        return await self.envelopes.get_envelope(owner_id, envelope_id)

    async def list_envelopes(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Envelope]:
        return await self.envelopes.list_envelopes(owner_id, month=month, year=year)

    async def envelope_stats(self, owner_id: UUID, month: Any, year: Any) -> list[EnvelopeStat]:
        return await self.envelopes.envelope_stats(owner_id, month, year)

    async def reconcile_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Reconciliation:
        return await self.envelopes.reconcile_envelope(
            owner_id,
            envelope_id,
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def create_expense(
        self,
        owner_id: UUID,
        envelope_id: Any,
        amount: Any,
        description: str,
        expense_date: Any,
        shop_name: Optional[str] = None,
        receipt_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        return await self.expenses.create_expense(
            owner_id,
            envelope_id,
            amount,
            description,
            expense_date,
            shop_name=shop_name,
            receipt_url=receipt_url,
            correlation_id=correlation_id,
        )

    async def add_expense(
        self,
        owner_id: UUID,
        envelope_id: Any,
        amount: Any,
        description: str,
        expense_date: Any,
        shop_name: Optional[str] = None,
        receipt_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseOutcome:
        return await self.expenses.add_expense(
            owner_id,
            envelope_id,
            amount,
            description,
            expense_date,
            shop_name=shop_name,
            receipt_url=receipt_url,
            correlation_id=correlation_id,
        )

    async def update_expense(
        self,
        owner_id: UUID,
        expense_id: UUID,
        amount: Any = None,
        description: Optional[str] = None,
        envelope_id: Any = None,
        expense_date: Any = None,
        shop_name: Optional[str] = UNSET,
        receipt_url: Optional[str] = UNSET,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        return await self.expenses.update_expense(
            owner_id,
            expense_id,
            amount=amount,
            description=description,
            envelope_id=envelope_id,
            expense_date=expense_date,
            shop_name=shop_name,
            receipt_url=receipt_url,
            correlation_id=correlation_id,
        )

    async def delete_expense(
        self,
        owner_id: UUID,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.expenses.delete_expense(owner_id, expense_id, correlation_id=correlation_id)

    async def get_expense(self, owner_id: UUID, expense_id: UUID) -> Expense:
        return await self.expenses.get_expense(owner_id, expense_id)

    async def list_expenses(
        self,
        owner_id: UUID,
        start_date: Any = None,
        end_date: Any = None,
        envelope_id: Any = None,
    ) -> list[Expense]:
        return await self.expenses.list_expenses(
            owner_id,
            start_date=start_date,
            end_date=end_date,
            envelope_id=envelope_id,
        )

    async def daily_stats(self, owner_id: UUID, day: Any) -> DailyStats:
        return await self.reports.daily_stats(owner_id, day)

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def create_bill(
        self,
        owner_id: UUID,
        name: str,
        amount: Any,
        due_date: Any,
        month: Any,
        year: Any,
        category: str = "other",
        is_recurring: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> Bill:
        return await self.bills.create_bill(
            owner_id,
            name,
            amount,
            due_date,
            month,
            year,
            category=category,
            is_recurring=is_recurring,
            correlation_id=correlation_id,
        )

    async def update_bill(
        self,
        owner_id: UUID,
        bill_id: UUID,
        name: Optional[str] = None,
        amount: Any = None,
        due_date: Any = None,
        category: Optional[str] = None,
        is_recurring: Optional[bool] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Bill:
        return await self.bills.update_bill(
            owner_id,
            bill_id,
            name=name,
            amount=amount,
            due_date=due_date,
            category=category,
            is_recurring=is_recurring,
            correlation_id=correlation_id,
        )

    async def delete_bill(
        self,
        owner_id: UUID,
        bill_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.bills.delete_bill(owner_id, bill_id, correlation_id=correlation_id)

    async def get_bill(self, owner_id: UUID, bill_id: UUID) -> Bill:
        return await self.bills.get_bill(owner_id, bill_id)

    async def list_bills(
        self,
        owner_id: UUID,
        month: Any = None,
        year: Any = None,
        status: Optional[Union[BillStatus, str]] = None,
    ) -> list[Bill]:
        return await self.bills.list_bills(owner_id, month=month, year=year, status=status)

    async def mark_bill_paid(
        self,
        owner_id: UUID,
        bill_id: UUID,
        envelope_id: Any = None,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BillPayment:
        return await self.bills.mark_paid(
            owner_id,
            bill_id,
            envelope_id=envelope_id,
            today=today,
            correlation_id=correlation_id,
        )

    async def upcoming_bills(
        self,
        owner_id: UUID,
        today: Optional[date] = None,
        within_days: Optional[int] = None,
    ) -> list[Bill]:
        return await self.bills.upcoming_bills(owner_id, today=today, within_days=within_days)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    async def weekly_report(self, owner_id: UUID, reference_date: Any = None) -> WeeklyReport:
        return await self.reports.weekly_report(owner_id, reference_date)

    async def monthly_report(self, owner_id: UUID, month: Any, year: Any) -> MonthlyReport:
        return await self.reports.monthly_report(owner_id, month, year)

    async def pdf_snapshot(self, owner_id: UUID, month: Any, year: Any) -> DocumentModel:
        return await self.reports.pdf_snapshot(owner_id, month, year)

    async def render_monthly_document(
        self,
        owner_id: UUID,
        month: Any,
        year: Any,
        renderer: Optional[DocumentRenderer] = None,
    ) -> tuple[DocumentModel, bytes]:
        """
        Build the monthly snapshot and render it.

        Returns:
            (snapshot, rendered bytes); the snapshot carries the filename
        """
        document = await self.reports.pdf_snapshot(owner_id, month, year)
        return document, (renderer or self._renderer).render(document)

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    async def get_daily_budget(self, owner_id: UUID) -> Decimal:
        return await self.reports.daily_budget(owner_id)

    async def set_daily_budget(
        self,
        owner_id: UUID,
        daily_budget: Any,
        correlation_id: Optional[UUID] = None,
    ) -> Decimal:
        """
        Set the budget a day's spend is classified against.

        Raises:
            ValidationError: Budget is not a positive number
        """
        check = InputValidator()
        budget = check.amount(daily_budget, "daily_budget")
        check.raise_if_invalid("set_daily_budget")

        correlation_id = correlation_id or create_correlation_id()
        async with self.guard.atomic(
            owner_id,
            "set_daily_budget",
            correlation_id=correlation_id,
        ):
            await self._preferences.set_daily_budget(owner_id, budget)

        await self._audit_logger.log_daily_budget_updated(
            owner_id=owner_id,
            daily_budget=budget,
            correlation_id=correlation_id,
        )
        return budget


def create_ledger(
    use_database: bool = True,
    database_url: Optional[str] = None,
    fallback_to_memory: bool = False,
) -> Ledger:
    """
    Factory function to create a fully wired ledger.

    Args:
        use_database: Use the SQLAlchemy store configured by DatabaseSettings.
                      Set to False for tests and single-process use.
        database_url: Overrides the configured database URL
        fallback_to_memory: Continue with in-memory storage when the
                            database cannot be reached

    Returns:
        Ledger

    Raises:
        UpstreamUnavailableError: Database unreachable and no fallback allowed
    """
    storage: LedgerStorageInterface
    audit_storage: AuditStorageInterface

    if use_database:
        try:
            database = SQLDatabase(url=database_url)
            database.connect()
            storage = SQLLedgerStorage(database)
            audit_storage = SQLAuditStorage(database)
        except StorageError as e:
            if not fallback_to_memory:
                raise UpstreamUnavailableError(f"Storage not available: {e}") from e
            # Storage not configured - continue without it
            logger.warning(
                "storage_unavailable_using_memory",
                error=str(e),
                environment=get_settings().app.app_environment,
            )
            storage = InMemoryLedgerStorage()
            audit_storage = InMemoryAuditStorage()
    else:
        storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()

    return Ledger(storage, audit_logger=AuditLogger(audit_storage))
