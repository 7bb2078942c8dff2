"""SQLAlchemy models for the faucet ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()
# Base class for all models


class RecordStatus(str, Enum):
    """Lifecycle of a disbursement attempt."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DisbursementRecord(Base):
    """One row per accepted faucet request (append-only audit ledger)."""

    __tablename__ = "requests"
    __table_args__ = (Index("idx_address_created_at", "address", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Recipient, stored exactly as supplied
    address = Column(String(42), nullable=False)

    # Decimal string of the amount disbursed or attempted
    amount = Column(String(78), nullable=False)

    # Outcome
    tx_hash = Column(String(66), nullable=True, default=None)
    status = Column(String(20), default=RecordStatus.PENDING.value, nullable=False)
    error_message = Column(Text, nullable=True, default=None)

    # Sole ordering and windowing key
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<DisbursementRecord(id={self.id}, address={self.address}, "
            f"status={self.status}, tx_hash={self.tx_hash})>"
        )


__all__ = [
    "Base",
    "DisbursementRecord",
    "RecordStatus",
]
