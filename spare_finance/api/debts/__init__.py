"""Debts and amortisation."""
