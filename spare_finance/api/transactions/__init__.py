"""Transactions and transfers."""
