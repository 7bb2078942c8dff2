"""Type definitions for services module."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, NotRequired, TypedDict


# Ledger type definitions
class WaitTimeDict(TypedDict):
    """Time left before an address may request again."""

    last_request_at: datetime
    next_allowed_at: datetime
    seconds_remaining: int


class LedgerStatsDict(TypedDict):
    """Aggregate counts across all ledger records."""

    total: int
    success: int
    failed: int


# Verification type definitions
class VerificationResultDict(TypedDict):
    """Accepted verification token."""

    success: Literal[True]
    score: float | None
    action: str | None


# Chain type definitions
class SubmissionResultDict(TypedDict):
    """Confirmed transfer."""

    tx_hash: str
    block_number: int
    gas_used: int
    effective_gas_price: int  # In wei


class TransactionStatusDict(TypedDict):
    """Receipt lookup result."""

    status: Literal["pending", "success", "failed"]
    message: str
    block_number: NotRequired[int]
    gas_used: NotRequired[int]


class NetworkInfoDict(TypedDict):
    """Aggregated network read for observability."""

    chain_id: int
    name: str
    block_number: int
    wallet_balance: Decimal  # In ether
    wallet_address: str

