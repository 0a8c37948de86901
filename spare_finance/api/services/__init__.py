"""Shared services for the Spare Finance API."""

from spare_finance.api.services.encryption import EncryptionService, get_encryption_service
from spare_finance.api.services.email import EmailMessage, EmailSender, get_email_sender

__all__ = [
    "EncryptionService",
    "get_encryption_service",
    "EmailMessage",
    "EmailSender",
    "get_email_sender",
]
