"""
Ledger Error Taxonomy

Every failure reaches the caller as one of these exceptions, each with a
stable `kind` string and a human-readable message. Callers (an API layer,
a UI) map `kind` to their own transport status.

Validation, not-found and already-paid errors are raised before any write.
Consistency errors are raised after the failed mutation was rolled back.
"""

from typing import Any, Optional
from uuid import UUID

from spendly.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger operations."""

    kind = "ledger_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Structured failure for the caller."""
        return {
            "kind": self.kind,
            "message": self.message,
            "details": {key: str(value) for key, value in self.details.items()},
        }


class ValidationError(LedgerError):
    """Malformed or out-of-range input."""

    kind = "validation_error"

    def __init__(
        self,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
        **details: Any,
    ):
        super().__init__(message, **details)
        self.issues = issues or []

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["issues"] = [issue.model_dump() for issue in self.issues]
        return result


class EnvelopeInUseError(ValidationError):
    """Envelope still has expenses attributed to it."""


class NotFoundError(LedgerError):
    """
    Record absent or owned by someone else.

    Foreign records are reported exactly like missing ones so callers
    cannot discover the existence of other users' data.
    """

    kind = "not_found"

    def __init__(self, entity_type: str, entity_id: UUID):
        super().__init__(
            f"{entity_type.capitalize()} not found",
            entity_type=entity_type,
            entity_id=entity_id,
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class AlreadyPaidError(LedgerError):
    """A bill can only move from unpaid to paid once."""

    kind = "already_paid"

    def __init__(self, bill_id: UUID):
        super().__init__("Bill is already marked as paid", bill_id=bill_id)
        self.bill_id = bill_id


class ConsistencyError(LedgerError):
    """A multi-step ledger mutation failed partway and was rolled back."""

    kind = "consistency_error"


class UpstreamUnavailableError(LedgerError):
    """Storage or another collaborator could not be reached."""

    kind = "upstream_unavailable"
