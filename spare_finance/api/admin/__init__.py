"""Admin dashboard and management."""
