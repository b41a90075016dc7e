"""
Bank Ledger

Account balances and transaction records kept consistent through a single
ledger engine, with Decimal money, atomic storage units and a hash-chained
audit trail.
"""

__version__ = "1.0.0"
