"""
Household Ledger - Source Package

Shared household bookkeeping: who advanced money for whom, what was
settled, and where each member stands.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Fail early, fail visibly
3. No silent corrections
4. Every write must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Ledger Team"
