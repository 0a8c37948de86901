"""Authentication module."""

from spare_finance.api.auth.service import AuthService
from spare_finance.api.auth.jwt import create_access_token, verify_token

__all__ = ["AuthService", "create_access_token", "verify_token"]
