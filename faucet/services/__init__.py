"""Services module initialization."""

from __future__ import annotations

from .address_lock import AddressLockManager, LeaseUnavailable
from .chain_service import ChainService, classify_submission_error
from .disbursement import (
    DisbursementCoordinator,
    DisbursementOutcome,
    DisbursementResult,
    format_time_remaining,
)
from .fees import DynamicFee, FallbackFee, FeeData, FeeModel, LegacyFee, select_fee_model
from .ledger_store import LedgerStore, utc_now
from .types import (
    LedgerStatsDict,
    NetworkInfoDict,
    SubmissionResultDict,
    TransactionStatusDict,
    VerificationResultDict,
    WaitTimeDict,
)
from .verification_service import RecaptchaVerifier, describe_error_codes

__all__ = [
    # Services
    "AddressLockManager",
    "ChainService",
    "DisbursementCoordinator",
    "LedgerStore",
    "RecaptchaVerifier",
    # Results
    "DisbursementOutcome",
    "DisbursementResult",
    "LeaseUnavailable",
    # Fee models
    "FeeData",
    "FeeModel",
    "LegacyFee",
    "DynamicFee",
    "FallbackFee",
    "select_fee_model",
    # TypedDict types from types.py
    "WaitTimeDict",
    "LedgerStatsDict",
    "VerificationResultDict",
    "SubmissionResultDict",
    "TransactionStatusDict",
    "NetworkInfoDict",
    # Utility functions
    "classify_submission_error",
    "describe_error_codes",
    "format_time_remaining",
    "utc_now",
]
