"""
Encryption Service

AES encryption for sensitive data: integration access tokens and
transaction descriptions. Uses PBKDF2 key derivation and Fernet
symmetric encryption.
"""

import base64
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from spare_finance.api.config import settings


class EncryptionService:
    """
    Service for encrypting and decrypting sensitive data.

    Secrets (Plaid/Questrade tokens) get a unique salt per value. Text
    fields that are read in bulk (transaction descriptions) use a single
    key derived once from a fixed salt, so listing hundreds of rows does
    not pay the key derivation cost per row.
    """

    SALT_SIZE = 16  # 128 bits
    ITERATIONS = 480000  # OWASP recommended
    FIELD_SALT = b"spare-finance-field-key"

    def __init__(self, master_key: Optional[str] = None):
        """
        Initialize encryption service.

        Args:
            master_key: Master encryption key. Uses settings if not provided.
        """
        self._master_key = (master_key or settings.MASTER_ENCRYPTION_KEY).encode()
        self._field_fernet: Optional[Fernet] = None

    def _derive_key(self, salt: bytes) -> bytes:
        """
        Derive a Fernet-compatible key from master key and salt.

        Args:
            salt: Random salt for key derivation

        Returns:
            32-byte key encoded as base64 for Fernet
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.ITERATIONS,
        )
        key = kdf.derive(self._master_key)
        return base64.urlsafe_b64encode(key)

    def encrypt(self, plaintext: str) -> bytes:
        """
        Encrypt a secret.

        Args:
            plaintext: String to encrypt

        Returns:
            Encrypted bytes (salt + ciphertext)
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        salt = os.urandom(self.SALT_SIZE)

        key = self._derive_key(salt)
        fernet = Fernet(key)
        ciphertext = fernet.encrypt(plaintext.encode())

        # Prepend salt to ciphertext
        return salt + ciphertext

    def decrypt(self, encrypted_data: bytes) -> str:
        """
        Decrypt a secret produced by encrypt().

        Raises:
            ValueError: If decryption fails
        """
        if not encrypted_data or len(encrypted_data) <= self.SALT_SIZE:
            raise ValueError("Invalid encrypted data")

        salt = encrypted_data[: self.SALT_SIZE]
        ciphertext = encrypted_data[self.SALT_SIZE :]

        key = self._derive_key(salt)
        fernet = Fernet(key)

        try:
            plaintext = fernet.decrypt(ciphertext)
            return plaintext.decode()
        except InvalidToken:
            raise ValueError("Decryption failed - invalid key or corrupted data")

    def _get_field_fernet(self) -> Fernet:
        if self._field_fernet is None:
            self._field_fernet = Fernet(self._derive_key(self.FIELD_SALT))
        return self._field_fernet

    def encrypt_field(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a text column value. Empty values are stored as-is."""
        if not plaintext:
            return plaintext
        return self._get_field_fernet().encrypt(plaintext.encode()).decode()

    def decrypt_field(self, value: Optional[str]) -> Optional[str]:
        """
        Decrypt a text column value.

        Rows written before encryption was enabled hold plaintext; those
        are returned unchanged.
        """
        if not value:
            return value
        try:
            return self._get_field_fernet().decrypt(value.encode()).decode()
        except (InvalidToken, ValueError):
            return value


# Singleton instance
_encryption_service: Optional[EncryptionService] = None


def get_encryption_service() -> EncryptionService:
    """Get singleton encryption service instance."""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service
