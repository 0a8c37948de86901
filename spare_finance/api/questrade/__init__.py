"""Questrade brokerage integration."""
