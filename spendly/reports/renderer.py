"""
Document Renderers

A renderer turns a DocumentModel snapshot into downloadable bytes.
The ledger only builds the snapshot; PDF output lives behind the same
interface in whichever service produces it.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from spendly.models.reports import DocumentModel


class DocumentRenderer(ABC):
    """Abstract interface for monthly document output."""

    @property
    @abstractmethod
    def content_type(self) -> str:
        """MIME type of the rendered bytes."""
        pass

    @abstractmethod
    def render(self, document: DocumentModel) -> bytes:
        pass


class PlainTextRenderer(DocumentRenderer):
    """
    UTF-8 text rendition of the monthly document.

    Used in tests and for logging; lays out the same sections as the
    PDF (summary, envelope breakdown, closing message, footer).
    """

    @property
    def content_type(self) -> str:
        return "text/plain; charset=utf-8"

    def render(self, document: DocumentModel) -> bytes:
        symbol = document.currency_symbol

        def money(value: Decimal) -> str:
            return f"{symbol}{value:.2f}"

        lines = [
            document.title,
            f"Period: {document.period_label}",
            "",
            "Summary",
            f"Total Spent: {money(document.total_spent)}",
            f"Total Transactions: {document.transaction_count}",
            "",
            "Envelope Breakdown",
        ]
        for line in document.lines:
            lines.extend([
                f"{line.icon} {line.name}",
                f"  Allocated: {money(line.allocated)}",
                f"  Spent: {money(line.spent)}",
                f"  Remaining: {money(line.remaining)}",
            ])
        if not document.lines:
            lines.append("No envelopes for this period")

        lines.extend(["", document.closing_message, document.footer])
        return ("\n".join(lines) + "\n").encode("utf-8")
