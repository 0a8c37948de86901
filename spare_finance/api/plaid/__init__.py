"""Plaid bank integration."""
