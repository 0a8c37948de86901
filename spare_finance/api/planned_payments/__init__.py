"""Scheduled future payments and the cron sync that generates them."""
