"""
Household Ledger - Source Package

Recurring-obligation engine for a household/project finance application.
Rental contracts (and installment plans) are turned into one payment
obligation per billing month, and that set is kept consistent as the
contract definition changes.

DESIGN PRINCIPLES:
1. Paid history is never rewritten
2. Fail early, fail visibly
3. Update only what changed
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Ledger Team"
