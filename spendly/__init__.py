"""
Spendly - Envelope Ledger Package

The budgeting core behind Spendly: users allocate money into envelopes,
record expenses and bills against them, and read weekly/monthly reports.

DESIGN PRINCIPLES:
1. Every balance change is applied exactly once and is reversible
2. Multi-step mutations are atomic - all writes land or none do
3. Fail early, fail visibly (validation before any write)
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Spendly Team"
