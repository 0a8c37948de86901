"""Category tree and category suggestions."""
