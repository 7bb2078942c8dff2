"""Utils module initialization."""

from __future__ import annotations

from .encryption import EncryptionService

__all__ = [
    "EncryptionService",
]
