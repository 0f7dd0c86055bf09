"""
Core Ledger Models for Spendly

These models define the strict schemas for every record the ledger stores.
They are designed to:
1. Enforce type safety at the storage boundary
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is always a Decimal quantized to cents.
Floats never enter the ledger, so a create followed by a delete restores
a balance exactly.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


CENT = Decimal("0.01")
# Largest amount a NUMERIC(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


def quantize_money(value: Decimal) -> Decimal:
    """Round a Decimal to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


Money = Annotated[Decimal, AfterValidator(quantize_money)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class BillStatus(str, Enum):
    """
    Payment state of a bill.

    UNPAID -> PAID is the only transition and it is terminal.
    There is no "unpay" operation.
    """
    UNPAID = "unpaid"
    PAID = "paid"


# =============================================================================
# BASE RECORD
# =============================================================================

class LedgerRecord(BaseModel):
    """
    Common identity and timestamps for stored records.

    Every record belongs to exactly one owner.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record ID"
    )
    owner_id: UUID = Field(
        ...,
        description="ID of the user who owns this record"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def with_changes(self, **changes: Any):
        """
        Return a re-validated copy with the given fields replaced.

        model_copy() skips validation, so the copy is rebuilt through
        model_validate() to keep every constraint enforced.
        """
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = utc_now()
        return type(self).model_validate(data)


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Envelope(LedgerRecord):
    """
    A monthly budget bucket.

    INVARIANT: current_balance == allocated_amount - sum of the amounts of
    all expenses currently attributed to this envelope.
    The balance may go negative (overspend).
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Envelope name (e.g. Groceries)"
    )
    icon: str = Field(
        default="📦",
        min_length=1,
        max_length=10,
        description="Display icon (usually a single emoji)"
    )
    color: Optional[str] = Field(
        default=None,
        max_length=20,
        description="Display color"
    )
    allocated_amount: Annotated[
        Money,
        Field(ge=0, description="Amount assigned to the envelope for its month")
    ]
    current_balance: Money = Field(
        ...,
        description="Allocation minus recorded spend; may be negative"
    )
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)

    @property
    def spent(self) -> Decimal:
        return self.allocated_amount - self.current_balance

    @property
    def is_overspent(self) -> bool:
        return self.current_balance < 0


class Expense(LedgerRecord):
    """
    A single spend event attributed to exactly one envelope.

    INVARIANT: the amount has been applied exactly once to the balance of
    the envelope named by envelope_id.
    """

    envelope_id: UUID = Field(
        ...,
        description="Envelope this expense is charged to"
    )
    amount: Annotated[
        Money,
        Field(gt=0, description="Amount spent (positive)")
    ]
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    expense_date: date = Field(
        ...,
        description="Calendar date of the spend"
    )
    shop_name: Optional[str] = Field(default=None, max_length=200)
    receipt_url: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Opaque handle owned by the receipt storage service"
    )


class Bill(LedgerRecord):
    """
    A recurring or one-off obligation with a due date.

    Bills are independent of the ledger until paid. Paying a bill may
    materialize exactly one Expense.
    """

    name: str = Field(..., min_length=1, max_length=200)
    amount: Annotated[
        Money,
        Field(gt=0, description="Amount due (positive)")
    ]
    due_date: date
    category: str = Field(
        default="other",
        min_length=1,
        max_length=50,
    )
    is_recurring: bool = False
    is_paid: bool = False
    paid_date: Optional[date] = None
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    envelope_id: Optional[UUID] = Field(
        default=None,
        description="Envelope charged when the bill was paid"
    )

    @model_validator(mode='after')
    def validate_payment_state(self) -> 'Bill':
        """A paid bill has a paid date and an unpaid bill does not."""
        if self.is_paid and self.paid_date is None:
            raise ValueError("A paid bill must have a paid_date")
        if not self.is_paid and self.paid_date is not None:
            raise ValueError("An unpaid bill cannot have a paid_date")
        return self

    @property
    def status(self) -> BillStatus:
        return BillStatus.PAID if self.is_paid else BillStatus.UNPAID


class UserPreferences(BaseModel):
    """Per-user settings read by the report aggregator."""

    owner_id: UUID
    daily_budget: Annotated[Money, Field(gt=0)]
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# OPERATION RESULTS
# =============================================================================

class ExpenseOutcome(BaseModel):
    """
    Result of recording an expense together with its envelope effect.

    Mirrors what the mobile client shows right after logging a spend.
    """

    expense: Expense
    new_balance: Decimal
    daily_spend: Decimal = Field(
        ...,
        description="Owner's total spend on the expense date, including this one"
    )
    is_overspent: bool


class BillPayment(BaseModel):
    """
    Result of marking a bill paid.

    ledger_skipped is the one documented partial success: the bill is
    paid but the requested envelope could not be charged.
    """

    bill: Bill
    expense: Optional[Expense] = None
    ledger_skipped: bool = False
    skip_reason: Optional[str] = None


class EnvelopeStat(BaseModel):
    """Envelope usage for a month."""

    envelope_id: UUID
    name: str
    icon: str
    allocated_amount: Decimal
    current_balance: Decimal
    spent: Decimal
    percentage: Decimal


class Reconciliation(BaseModel):
    """
    Balance check of one envelope against its recorded expenses.

    Reports drift; never corrects it.
    """

    envelope_id: UUID
    allocated_amount: Decimal
    recorded_spend: Decimal
    expense_count: int = Field(ge=0)
    expected_balance: Decimal
    actual_balance: Decimal

    @property
    def drift(self) -> Decimal:
        return self.actual_balance - self.expected_balance

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found in caller input."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
