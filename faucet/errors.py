"""Error taxonomy shared by the faucet services."""

from __future__ import annotations

from enum import Enum


class FaucetError(RuntimeError):
    """Base error for faucet operations."""


class ConfigurationError(FaucetError):
    """Raised when required settings are missing at startup."""


class InputError(FaucetError):
    """Missing or malformed request fields."""


class LedgerError(FaucetError):
    """The disbursement ledger could not be read or written."""


class VerificationErrorKind(str, Enum):
    """Why a verification token was not accepted."""

    INVALID_TOKEN = "invalid_token"
    SERVICE_ERROR = "service_error"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"


class VerificationError(FaucetError):
    def __init__(self, kind: VerificationErrorKind, detail: str) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


class ChainErrorKind(str, Enum):
    """Classification of submission failures reported by the chain client."""

    INVALID_RECIPIENT = "invalid_recipient"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    GAS_ESTIMATION_FAILED = "gas_estimation_failed"
    UNDERPRICED = "underpriced"
    TIMEOUT = "timeout"
    REVERTED = "reverted"
    GENERIC = "generic"


class ChainSubmissionError(FaucetError):
    """A transfer could not be broadcast or confirmed.

    ``tx_hash`` is set when the transaction reached the network before the
    failure, so the hash can be recorded for later reconciliation.
    """

    def __init__(self, kind: ChainErrorKind, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.tx_hash = tx_hash


class ChainQueryError(FaucetError):
    """A read against the chain failed."""
