"""Financial reports."""
