"""Encryption utilities for keeping the operating key encrypted at rest."""

from __future__ import annotations

import base64

from cryptography.fernet import Fernet


class EncryptionService:
    """Service for encrypting/decrypting sensitive data."""

    def __init__(self, key: str | bytes):
        """Initialize with encryption key.

        Args:
        ----
            key: Fernet key as string or bytes.

        """
        key_bytes: bytes = key.encode() if isinstance(key, str) else key
        try:
            self.fernet = Fernet(key_bytes)
        except ValueError as e:
            raise ValueError(f"Invalid encryption key: {e}") from e

    def encrypt(self, data: str) -> str:
        """Encrypt a string and return base64 encoded result."""
        if not data:
            raise ValueError("Cannot encrypt empty data")

        encrypted = self.fernet.encrypt(data.encode())
        return base64.b64encode(encrypted).decode()

    def decrypt(self, encrypted_data: str) -> str:
        """Decrypt base64 encoded data and return original string."""
        if not encrypted_data:
            raise ValueError("Cannot decrypt empty data")

        try:
            decoded = base64.b64decode(encrypted_data.encode())
            decrypted = self.fernet.decrypt(decoded)
            return decrypted.decode()
        except Exception as e:
            raise ValueError(f"Decryption failed: {str(e)}") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key."""
        return Fernet.generate_key().decode()
