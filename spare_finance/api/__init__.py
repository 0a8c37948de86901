"""Spare Finance REST API."""
