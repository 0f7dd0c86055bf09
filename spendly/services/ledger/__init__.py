"""
Ledger Services Package

Envelope balances, expenses and bills. Every mutation goes through
MutationGuard, so it is locked, atomic and audited.
"""

from spendly.services.ledger.balance import EnvelopeBalanceEngine
from spendly.services.ledger.bills import BillProcessor
from spendly.services.ledger.envelopes import EnvelopeService
from spendly.services.ledger.expenses import UNSET, ExpenseProcessor
from spendly.services.ledger.guard import MutationGuard
from spendly.services.ledger.locks import RecordLocks

__all__ = [
    "BillProcessor",
    "EnvelopeBalanceEngine",
    "EnvelopeService",
    "ExpenseProcessor",
    "MutationGuard",
    "RecordLocks",
    "UNSET",
]
