"""
Banking Operations Core

Role-based banking operations: account opening, loan origination and
disbursement, interbank transfers with a conditional approval workflow,
and a hash-chained audit log. All money math uses Decimal.
"""

__version__ = "1.0.0"
