"""Households and membership."""
