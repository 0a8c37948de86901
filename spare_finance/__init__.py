"""
Spare Finance: personal finance backend.

Accounts, transactions, budgets, goals and debts, with Stripe billing and
Plaid / Questrade synchronisation.
"""

__version__ = "1.0.0"
