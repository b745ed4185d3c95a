"""
Card Banking System

Card-to-card funds transfers over encrypted-at-rest card numbers,
with Decimal balances, optimistic concurrency and an append-only
transfer ledger.
"""

__version__ = "1.0.0"
