"""Database module."""

from spare_finance.api.db.session import get_db, init_db, close_db
from spare_finance.api.db.models import Base, User, Account, Transaction

__all__ = ["get_db", "init_db", "close_db", "Base", "User", "Account", "Transaction"]
