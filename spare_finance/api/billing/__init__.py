"""Plans, subscriptions and Stripe billing."""
