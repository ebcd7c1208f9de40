"""
Customer Ledger

Customer accounts with a chronological debit/credit transaction ledger.
Each account's running balance is kept in lockstep with its transactions
and can always be reconciled against them.
"""

__version__ = "1.0.0"
