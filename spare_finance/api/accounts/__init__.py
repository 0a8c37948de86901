"""Financial accounts and balances."""
