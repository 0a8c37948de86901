"""Monthly budgets."""
