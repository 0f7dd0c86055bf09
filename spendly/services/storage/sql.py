"""
Relational Storage Implementation (SQLAlchemy)

DESIGN DECISION: Production storage is a relational database reached
through SQLAlchemy because:
1. The ledger needs real transactions (balance + expense writes land together)
2. Row-level locks (SELECT ... FOR UPDATE) serialize balance updates
   across processes on databases that support them
3. SQLite works out of the box; PostgreSQL is a URL change away

The implementation follows the abstract interface, so business logic
never sees a Session.

Each transaction scope owns one Session, tracked in a ContextVar so
concurrent tasks never share a Session. Calls made outside a
transaction run in a short transaction of their own.
"""

from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Engine,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    create_engine,
    func,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from spendly.config import get_settings
from spendly.models.ledger import Bill, Envelope, Expense
from spendly.models.audit import AuditEvent, AuditEventType, AuditSeverity
from spendly.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    RecordNotFoundError,
    StorageError,
    StorageUnavailableError,
    UserPreferencesInterface,
)


logger = structlog.get_logger(__name__)

MONEY = Numeric(12, 2, asdecimal=True)


# =============================================================================
# TABLES
# =============================================================================

class Base(DeclarativeBase):
    pass


class EnvelopeRow(Base):
    __tablename__ = "envelopes"

    __table_args__ = (
        Index("idx_envelopes_owner_period", "owner_id", "year", "month"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True)
    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(10), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(20))
    allocated_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ExpenseRow(Base):
    __tablename__ = "expenses"

    __table_args__ = (
        Index("idx_expenses_owner_date", "owner_id", "date"),
        Index("idx_expenses_envelope", "envelope_id"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True)
    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    envelope_id: Mapped[UUID] = mapped_column(ForeignKey("envelopes.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    expense_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    shop_name: Mapped[Optional[str]] = mapped_column(String(200))
    receipt_url: Mapped[Optional[str]] = mapped_column(String(2000))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class BillRow(Base):
    __tablename__ = "bills"

    __table_args__ = (
        Index("idx_bills_owner_period", "owner_id", "year", "month"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True)
    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_date: Mapped[Optional[date]] = mapped_column(Date)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    # Plain column: the envelope may be deleted after the bill was paid
    envelope_id: Mapped[Optional[UUID]] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserSettingsRow(Base):
    __tablename__ = "user_settings"

    owner_id: Mapped[UUID] = mapped_column(primary_key=True)
    daily_budget: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_correlation", "correlation_id"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    event_id: Mapped[UUID] = mapped_column(primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_id: Mapped[Optional[UUID]] = mapped_column()
    entity_type: Mapped[Optional[str]] = mapped_column(String(30))
    entity_id: Mapped[Optional[UUID]] = mapped_column()
    correlation_id: Mapped[Optional[UUID]] = mapped_column()
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    error_code: Mapped[Optional[str]] = mapped_column(String(50))
    error_message: Mapped[Optional[str]] = mapped_column(String(1000))


def _translate(error: SQLAlchemyError) -> StorageError:
    """Map a SQLAlchemy failure onto the storage error hierarchy."""
    if isinstance(error, OperationalError):
        return StorageUnavailableError(f"Database unavailable: {error}")
    if isinstance(error, IntegrityError):
        return DuplicateError(f"Integrity violation: {error}")
    return StorageError(f"Database error: {error}")


# =============================================================================
# CONNECTION
# =============================================================================

class SQLDatabase:
    """
    Low-level database wrapper.

    Owns the Engine and Session factory and provides retry logic for
    establishing the connection.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        echo: Optional[bool] = None,
    ):
        settings = get_settings().database
        self._url = url or settings.url
        self._echo = settings.echo if echo is None else echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker[Session]] = None

    @property
    def url(self) -> str:
        return self._url

    @retry(
        retry=retry_if_exception_type(StorageUnavailableError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> Engine:
        """
        Create the engine, check connectivity and create missing tables.

        In-memory SQLite gets a single shared connection; otherwise every
        session would see its own empty database.
        """
        if self._engine is None:
            options: dict = {"echo": self._echo}
            if self._url.startswith("sqlite") and ":memory:" in self._url:
                options["connect_args"] = {"check_same_thread": False}
                options["poolclass"] = StaticPool

            try:
                engine = create_engine(self._url, **options)
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                Base.metadata.create_all(engine)
            except SQLAlchemyError as e:
                logger.warning("database_connect_failed", url=self._url, error=str(e))
                raise StorageUnavailableError(f"Failed to connect to database: {e}")

            self._engine = engine
            self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
            logger.info("database_connected", dialect=engine.dialect.name)

        return self._engine

    def session(self) -> Session:
        """New Session bound to the (connected) engine."""
        self.connect()
        return self._session_factory()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class SQLLedgerStorage(LedgerStorageInterface, UserPreferencesInterface):
    """
    SQLAlchemy implementation of ledger storage.

    Rows map one-to-one onto the pydantic records; conversion happens
    only at this boundary.
    """

    def __init__(self, database: Optional[SQLDatabase] = None):
        self._database = database or SQLDatabase()
        self._session: ContextVar[Optional[Session]] = ContextVar(
            f"spendly_sql_tx_{id(self)}",
            default=None,
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._session.get() is not None:
            yield
            return

        try:
            session = self._database.session()
        except SQLAlchemyError as e:
            raise _translate(e) from e

        token = self._session.set(session)
        try:
            with session.begin():
                yield
        except SQLAlchemyError as e:
            raise _translate(e) from e
        finally:
            self._session.reset(token)
            session.close()

    def in_transaction(self) -> bool:
        return self._session.get() is not None

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[Session]:
        """The active Session, opening a one-statement transaction if needed."""
        async with self.transaction():
            yield self._session.get()

    @staticmethod
    def _flush(session: Session) -> None:
        try:
            session.flush()
        except SQLAlchemyError as e:
            raise _translate(e) from e

    # -------------------------------------------------------------------------
    # Envelopes
    # -------------------------------------------------------------------------

    async def insert_envelope(self, envelope: Envelope) -> None:
        async with self._scope() as session:
            session.add(EnvelopeRow(**envelope.model_dump()))
            self._flush(session)

    async def get_envelope(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        for_update: bool = False,
    ) -> Optional[Envelope]:
        async with self._scope() as session:
            row = session.get(EnvelopeRow, envelope_id, with_for_update=for_update)
            if row is None or row.owner_id != owner_id:
                return None
            return Envelope.model_validate(row, from_attributes=True)

    async def update_envelope(self, envelope: Envelope) -> None:
        async with self._scope() as session:
            row = session.get(EnvelopeRow, envelope.id)
            if row is None or row.owner_id != envelope.owner_id:
                raise RecordNotFoundError(f"Envelope not found: {envelope.id}")
            for field, value in envelope.model_dump(exclude={"id", "owner_id"}).items():
                setattr(row, field, value)
            self._flush(session)

    async def delete_envelope(self, owner_id: UUID, envelope_id: UUID) -> bool:
        async with self._scope() as session:
            row = session.get(EnvelopeRow, envelope_id)
            if row is None or row.owner_id != owner_id:
                return False
            session.delete(row)
            self._flush(session)
            return True

    async def list_envelopes(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Envelope]:
        async with self._scope() as session:
            query = select(EnvelopeRow).where(EnvelopeRow.owner_id == owner_id)
            if month is not None:
                query = query.where(EnvelopeRow.month == month)
            if year is not None:
                query = query.where(EnvelopeRow.year == year)
            query = query.order_by(EnvelopeRow.created_at.desc())
            return [
                Envelope.model_validate(row, from_attributes=True)
                for row in session.scalars(query)
            ]

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def insert_expense(self, expense: Expense) -> None:
        async with self._scope() as session:
            session.add(ExpenseRow(**expense.model_dump()))
            self._flush(session)

    async def get_expense(self, owner_id: UUID, expense_id: UUID) -> Optional[Expense]:
        async with self._scope() as session:
            row = session.get(ExpenseRow, expense_id)
            if row is None or row.owner_id != owner_id:
                return None
            return Expense.model_validate(row, from_attributes=True)

    async def update_expense(self, expense: Expense) -> None:
        async with self._scope() as session:
            row = session.get(ExpenseRow, expense.id)
            if row is None or row.owner_id != expense.owner_id:
                raise RecordNotFoundError(f"Expense not found: {expense.id}")
            for field, value in expense.model_dump(exclude={"id", "owner_id"}).items():
                setattr(row, field, value)
            self._flush(session)

    async def delete_expense(self, owner_id: UUID, expense_id: UUID) -> bool:
        async with self._scope() as session:
            row = session.get(ExpenseRow, expense_id)
            if row is None or row.owner_id != owner_id:
                return False
            session.delete(row)
            self._flush(session)
            return True

    async def list_expenses(
        self,
        owner_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        envelope_id: Optional[UUID] = None,
    ) -> list[Expense]:
        async with self._scope() as session:
            query = select(ExpenseRow).where(ExpenseRow.owner_id == owner_id)
            if date_from:
                query = query.where(ExpenseRow.expense_date >= date_from)
            if date_to:
                query = query.where(ExpenseRow.expense_date <= date_to)
            if envelope_id:
                query = query.where(ExpenseRow.envelope_id == envelope_id)
            query = query.order_by(
                ExpenseRow.expense_date.desc(),
                ExpenseRow.created_at.desc(),
            )
            return [
                Expense.model_validate(row, from_attributes=True)
                for row in session.scalars(query)
            ]

    async def count_expenses(self, owner_id: UUID, envelope_id: UUID) -> int:
        async with self._scope() as session:
            query = (
                select(func.count())
                .select_from(ExpenseRow)
                .where(ExpenseRow.owner_id == owner_id)
                .where(ExpenseRow.envelope_id == envelope_id)
            )
            return session.scalar(query) or 0

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def insert_bill(self, bill: Bill) -> None:
        async with self._scope() as session:
            session.add(BillRow(**bill.model_dump()))
            self._flush(session)

    async def get_bill(
        self,
        owner_id: UUID,
        bill_id: UUID,
        for_update: bool = False,
    ) -> Optional[Bill]:
        async with self._scope() as session:
            row = session.get(BillRow, bill_id, with_for_update=for_update)
            if row is None or row.owner_id != owner_id:
                return None
            return Bill.model_validate(row, from_attributes=True)

    async def update_bill(self, bill: Bill) -> None:
        async with self._scope() as session:
            row = session.get(BillRow, bill.id)
            if row is None or row.owner_id != bill.owner_id:
                raise RecordNotFoundError(f"Bill not found: {bill.id}")
            for field, value in bill.model_dump(exclude={"id", "owner_id"}).items():
                setattr(row, field, value)
            self._flush(session)

    async def delete_bill(self, owner_id: UUID, bill_id: UUID) -> bool:
        async with self._scope() as session:
            row = session.get(BillRow, bill_id)
            if row is None or row.owner_id != owner_id:
                return False
            session.delete(row)
            self._flush(session)
            return True

    async def list_bills(
        self,
        owner_id: UUID,
        month: Optional[int] = None,
        year: Optional[int] = None,
        is_paid: Optional[bool] = None,
    ) -> list[Bill]:
        async with self._scope() as session:
            query = select(BillRow).where(BillRow.owner_id == owner_id)
            if month is not None:
                query = query.where(BillRow.month == month)
            if year is not None:
                query = query.where(BillRow.year == year)
            if is_paid is not None:
                query = query.where(BillRow.is_paid == is_paid)
            query = query.order_by(BillRow.due_date.asc(), BillRow.created_at.asc())
            return [
                Bill.model_validate(row, from_attributes=True)
                for row in session.scalars(query)
            ]

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    async def get_daily_budget(self, owner_id: UUID) -> Optional[Decimal]:
        async with self._scope() as session:
            row = session.get(UserSettingsRow, owner_id)
            return row.daily_budget if row else None

    async def set_daily_budget(self, owner_id: UUID, daily_budget: Decimal) -> None:
        async with self._scope() as session:
            row = session.get(UserSettingsRow, owner_id)
            if row is None:
                row = UserSettingsRow(owner_id=owner_id)
                session.add(row)
            row.daily_budget = daily_budget
            row.updated_at = datetime.now().astimezone()
            self._flush(session)


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class SQLAuditStorage(AuditStorageInterface):
    """
    SQLAlchemy implementation of audit log storage.

    Audit events are append-only and written in their own short
    transactions, after the ledger mutation they describe has committed.
    """

    def __init__(self, database: Optional[SQLDatabase] = None):
        self._database = database or SQLDatabase()

    @staticmethod
    def _event_to_row(event: AuditEvent) -> AuditEventRow:
        return AuditEventRow(
            event_id=event.event_id,
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            owner_id=event.owner_id,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=event.correlation_id,
            description=event.description,
            details=event.details,
            error_code=event.error_code,
            error_message=event.error_message,
        )

    @staticmethod
    def _row_to_event(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=row.event_id,
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            owner_id=row.owner_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=row.correlation_id,
            description=row.description,
            details=row.details or {},
            error_code=row.error_code,
            error_message=row.error_message,
        )

    @retry(
        retry=retry_if_exception_type(StorageUnavailableError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._database.session() as session, session.begin():
                session.add(self._event_to_row(event))
            return True
        except SQLAlchemyError as e:
            raise _translate(e) from e

    async def _query(self, query) -> list[AuditEvent]:
        try:
            with self._database.session() as session:
                return [self._row_to_event(row) for row in session.scalars(query)]
        except SQLAlchemyError as e:
            raise _translate(e) from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return await self._query(
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == correlation_id)
            .order_by(AuditEventRow.timestamp.asc())
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return await self._query(
            select(AuditEventRow)
            .where(AuditEventRow.entity_type == entity_type)
            .where(AuditEventRow.entity_id == entity_id)
            .order_by(AuditEventRow.timestamp.asc())
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return await self._query(
            select(AuditEventRow)
            .order_by(AuditEventRow.timestamp.desc())
            .limit(limit)
        )
