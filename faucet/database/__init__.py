"""Database module initialization."""

from __future__ import annotations

# Import connection utilities
from .connection import (
    check_database_health,
    close_database_connections,
    get_db,
    init_database,
    initialize_database_engine,
)

# Import models
from .models import (
    Base,
    DisbursementRecord,
    RecordStatus,
)

__all__ = [
    # Models
    "Base",
    "DisbursementRecord",
    "RecordStatus",
    # Connection utilities
    "initialize_database_engine",
    "init_database",
    "get_db",
    "check_database_health",
    "close_database_connections",
]
