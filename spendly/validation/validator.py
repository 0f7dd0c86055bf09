"""
Ledger Input Validation

DESIGN DECISION: Every ledger operation validates ALL of its input before
touching storage, collects every issue it finds, and raises a single
ValidationError listing them. A caller fixing a form sees every problem
at once instead of one per round trip.

Checks:
- Amounts are positive finite decimals up to MAX_AMOUNT (allocations may be zero)
- Months are 1-12, years 2000-2100
- Dates are real calendar dates (date objects or YYYY-MM-DD strings)
- Text fields are present when required and within length limits

IMPORTANT: Validation NEVER silently fixes input beyond normalization
(whitespace stripping, rounding to cents). Anything else is reported.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

from spendly.errors import ValidationError
from spendly.models.ledger import MAX_AMOUNT, BillStatus, ValidationIssue, quantize_money


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MIN_YEAR = 2000
MAX_YEAR = 2100


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Convert caller input to Decimal, or None if it is not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class InputValidator:
    """
    Collects validation issues for one operation.

    Usage:
        check = InputValidator()
        amount = check.amount(raw_amount)
        month = check.month(raw_month)
        check.raise_if_invalid("create_expense")
    """

    def __init__(self):
        self.issues: list[ValidationIssue] = []

    def _add(
        self,
        field: str,
        issue_type: str,
        message: str,
        severity: str = "error",
    ) -> None:
        self.issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=message,
            severity=severity,
        ))

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    # -------------------------------------------------------------------------
    # Money
    # -------------------------------------------------------------------------

    def _money(self, value: Any, field: str, allow_zero: bool) -> Optional[Decimal]:
        number = _to_decimal(value)
        if number is None:
            self._add(field, "invalid_format", f"{field} must be a number")
            return None
        if not number.is_finite():
            self._add(field, "invalid_value", f"{field} must be a finite number")
            return None
        if number.copy_abs() > MAX_AMOUNT:
            self._add(field, "out_of_range", f"{field} cannot exceed {MAX_AMOUNT}")
            return None

        number = quantize_money(number)
        if allow_zero and number < 0:
            self._add(field, "out_of_range", f"{field} cannot be negative")
            return None
        if not allow_zero and number <= 0:
            self._add(field, "out_of_range", f"{field} must be greater than zero")
            return None
        return number

    def amount(self, value: Any, field: str = "amount") -> Optional[Decimal]:
        """A positive amount rounded to cents."""
        return self._money(value, field, allow_zero=False)

    def allocation(self, value: Any, field: str = "allocated_amount") -> Optional[Decimal]:
        """A non-negative allocation rounded to cents."""
        return self._money(value, field, allow_zero=True)

    # -------------------------------------------------------------------------
    # Calendar
    # -------------------------------------------------------------------------

    def month(self, value: Any, field: str = "month") -> Optional[int]:
        month = _to_int(value)
        if month is None or not 1 <= month <= 12:
            self._add(field, "out_of_range", "Month must be between 1 and 12")
            return None
        return month

    def year(self, value: Any, field: str = "year") -> Optional[int]:
        year = _to_int(value)
        if year is None or not MIN_YEAR <= year <= MAX_YEAR:
            self._add(
                field,
                "out_of_range",
                f"Year must be between {MIN_YEAR} and {MAX_YEAR}",
            )
            return None
        return year

    def day_count(self, value: Any, field: str = "days") -> Optional[int]:
        days = _to_int(value)
        if days is None or days < 0:
            self._add(field, "out_of_range", f"{field} must be zero or more days")
            return None
        return days

    def calendar_date(self, value: Any, field: str = "date") -> Optional[date]:
        """A date object or a YYYY-MM-DD string."""
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str) and DATE_PATTERN.match(value.strip()):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                pass
        self._add(field, "invalid_format", f"{field} must be a valid YYYY-MM-DD date")
        return None

    def week_reference(self, value: Any, field: str = "reference_date") -> Optional[date]:
        """A date whose whole Monday-to-Sunday week is a valid calendar range."""
        day = self.calendar_date(value, field)
        if day is not None and day.toordinal() + 6 - day.weekday() > date.max.toordinal():
            self._add(field, "out_of_range", f"{field} falls in a week past the last supported date")
            return None
        return day

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def identifier(self, value: Any, field: str) -> Optional[UUID]:
        """A record id, given as a UUID or its string form."""
        if isinstance(value, UUID):
            return value
        if isinstance(value, str):
            try:
                return UUID(value.strip())
            except ValueError:
                pass
        self._add(field, "invalid_format", f"{field} must be a valid id")
        return None

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    def text(
        self,
        value: Any,
        field: str,
        max_length: int = 500,
        required: bool = True,
    ) -> Optional[str]:
        """Stripped text within max_length; None for an absent optional field."""
        if value is None:
            if required:
                self._add(field, "missing", f"{field} is required")
            return None
        if not isinstance(value, str):
            self._add(field, "invalid_format", f"{field} must be text")
            return None

        text = value.strip()
        if not text:
            if required:
                self._add(field, "missing", f"{field} is required")
            return None
        if len(text) > max_length:
            self._add(
                field,
                "too_long",
                f"{field} must be at most {max_length} characters",
            )
            return None
        return text

    def icon(self, value: Any, field: str = "icon") -> Optional[str]:
        """An envelope icon: short, usually a single emoji."""
        return self.text(value, field, max_length=10)

    def bill_status(self, value: Any, field: str = "status") -> Optional[BillStatus]:
        """'paid' or 'unpaid' (or the enum member itself)."""
        try:
            return BillStatus(value.strip().lower() if isinstance(value, str) else value)
        except ValueError:
            self._add(field, "invalid_value", f"{field} must be 'paid' or 'unpaid'")
            return None

    # -------------------------------------------------------------------------
    # Outcome
    # -------------------------------------------------------------------------

    def raise_if_invalid(self, operation: str) -> None:
        """Raise one ValidationError carrying every error collected so far."""
        if not self.has_errors:
            return
        raise ValidationError(
            get_user_friendly_summary(self.issues, operation),
            issues=list(self.issues),
            operation=operation,
        )


def get_user_friendly_summary(
    issues: list[ValidationIssue],
    operation: Optional[str] = None,
) -> str:
    """
    Generate a readable summary of validation issues.

    This is the message surfaced to the caller.
    """
    errors = [issue.message for issue in issues if issue.severity == "error"]
    if not errors:
        return "All checks passed"

    prefix = f"Invalid input for {operation}" if operation else "Invalid input"
    return f"{prefix}: " + "; ".join(errors)
