"""Services the user tracks as subscriptions."""
