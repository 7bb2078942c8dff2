"""Disbursement pipeline: throttle, verify, pre-commit, submit, reconcile."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..errors import ChainErrorKind, ChainSubmissionError, LedgerError, VerificationError
from ..utils.monitoring import metrics
from .address_lock import AddressLockManager, LeaseUnavailable
from .chain_service import ChainService
from .ledger_store import Clock, LedgerStore, utc_now
from .verification_service import RecaptchaVerifier

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: address and verificationToken are required"
INVALID_ADDRESS_MESSAGE = "Invalid Ethereum address format"
IN_PROGRESS_MESSAGE = "A request for this address is already being processed"
LEDGER_UNAVAILABLE_MESSAGE = "Service temporarily unavailable"
INTERNAL_ERROR_MESSAGE = "Internal server error"


class DisbursementOutcome(str, Enum):
    """Every way a faucet request can end."""

    SUCCESS = "success"
    MISSING_FIELD = "missing_field"
    INVALID_ADDRESS = "invalid_address"
    RATE_LIMITED = "rate_limited"
    REQUEST_IN_PROGRESS = "request_in_progress"
    VERIFICATION_FAILED = "verification_failed"
    SUBMISSION_FAILED = "submission_failed"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    INTERNAL_ERROR = "internal_error"


STATUS_CODES: dict[DisbursementOutcome, int] = {
    DisbursementOutcome.SUCCESS: 200,
    DisbursementOutcome.MISSING_FIELD: 400,
    DisbursementOutcome.INVALID_ADDRESS: 400,
    DisbursementOutcome.VERIFICATION_FAILED: 400,
    DisbursementOutcome.REQUEST_IN_PROGRESS: 409,
    DisbursementOutcome.RATE_LIMITED: 429,
    DisbursementOutcome.SUBMISSION_FAILED: 500,
    DisbursementOutcome.INTERNAL_ERROR: 500,
    DisbursementOutcome.LEDGER_UNAVAILABLE: 503,
}


def format_time_remaining(seconds: int) -> str:
    """Render seconds as ``Xh Ym Zs``, dropping leading zero units."""
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class DisbursementResult(BaseModel):
    """Outcome of one faucet request."""

    outcome: DisbursementOutcome
    error: str | None = None
    message: str | None = None

    # Success
    tx_hash: str | None = None
    amount: str | None = None
    block_number: int | None = None

    # Rate limited
    time_remaining: int | None = None
    time_string: str | None = None
    next_allowed: datetime | None = None

    @property
    def success(self) -> bool:
        return self.outcome == DisbursementOutcome.SUCCESS

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.outcome]

    def to_response(self) -> dict[str, Any]:
        """Render the public JSON payload for this outcome."""
        if self.success:
            return {
                "success": True,
                "txHash": self.tx_hash,
                "amount": self.amount,
                "blockNumber": self.block_number,
                "message": self.message,
            }

        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.outcome == DisbursementOutcome.RATE_LIMITED:
            body["timeRemaining"] = self.time_remaining
            body["timeString"] = self.time_string
            body["nextAllowed"] = self.next_allowed.isoformat() if self.next_allowed else None
        return body

    @classmethod
    def failure(cls, outcome: DisbursementOutcome, error: str) -> DisbursementResult:
        return cls(outcome=outcome, error=error)


class DisbursementCoordinator:
    """Runs one faucet request end to end.

    Errors before the pending record is written leave no trace and do not
    consume the window. Once the record exists, every outcome is written
    back to it, so a failed submission still blocks the address until the
    window passes.
    """

    def __init__(
        self,
        chain: ChainService,
        verifier: RecaptchaVerifier,
        locks: AddressLockManager,
        amount: Decimal,
        window_hours: int,
        submission_timeout: float,
        currency_symbol: str = "ETH",
        clock: Clock = utc_now,
    ) -> None:
        self.chain = chain
        self.verifier = verifier
        self.locks = locks
        self.amount = amount
        self.window_hours = window_hours
        self.submission_timeout = submission_timeout
        self.currency_symbol = currency_symbol
        self.clock = clock

    async def request_disbursement(
        self,
        db: Session,
        address: str | None,
        verification_token: str | None,
        caller_network_id: str | None = None,
    ) -> DisbursementResult:
        start_time = time.time()
        result = await self._process(db, address, verification_token, caller_network_id)
        metrics.record_disbursement(result.outcome.value, time.time() - start_time)
        return result

    async def _process(
        self,
        db: Session,
        address: str | None,
        verification_token: str | None,
        caller_network_id: str | None,
    ) -> DisbursementResult:
        try:
            if not address or not verification_token:
                return DisbursementResult.failure(
                    DisbursementOutcome.MISSING_FIELD, MISSING_FIELDS_MESSAGE
                )

            if not self.chain.is_valid_address(address):
                return DisbursementResult.failure(
                    DisbursementOutcome.INVALID_ADDRESS, INVALID_ADDRESS_MESSAGE
                )

            ledger = LedgerStore(db, clock=self.clock)

            try:
                async with self.locks.hold(address):
                    rejection = await self._admit(ledger, address, verification_token, caller_network_id)
            except LeaseUnavailable:
                logger.warning(f"Lease for {address} unavailable, rejecting concurrent request")
                return DisbursementResult.failure(
                    DisbursementOutcome.REQUEST_IN_PROGRESS, IN_PROGRESS_MESSAGE
                )

            if rejection is not None:
                return rejection

            return await self._submit(ledger, address)

        except LedgerError as e:
            logger.error(f"Ledger unavailable: {e}")
            return DisbursementResult.failure(
                DisbursementOutcome.LEDGER_UNAVAILABLE, LEDGER_UNAVAILABLE_MESSAGE
            )
        except Exception as e:
            logger.error(f"Faucet request error: {e}", exc_info=True)
            return DisbursementResult.failure(
                DisbursementOutcome.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE
            )

    async def _admit(
        self,
        ledger: LedgerStore,
        address: str,
        verification_token: str,
        caller_network_id: str | None,
    ) -> DisbursementResult | None:
        """Throttle, verify and pre-commit; returns a rejection or None once recorded."""
        if ledger.has_recent_entry(address, self.window_hours):
            wait = ledger.time_until_next_allowed(address, self.window_hours)
            if wait is not None:
                return DisbursementResult(
                    outcome=DisbursementOutcome.RATE_LIMITED,
                    error=(
                        "Rate limit exceeded. You can only request once every "
                        f"{self.window_hours} hours."
                    ),
                    time_remaining=wait["seconds_remaining"],
                    time_string=format_time_remaining(wait["seconds_remaining"]),
                    next_allowed=wait["next_allowed_at"],
                )

        try:
            await self.verifier.verify(verification_token, caller_network_id)
        except VerificationError as e:
            logger.info(f"Verification failed for {address}: {e.kind.value}")
            return DisbursementResult.failure(DisbursementOutcome.VERIFICATION_FAILED, e.detail)

        # From here on the address is inside its window, whatever happens next
        ledger.record_attempt(address, self.amount)
        return None

    async def _submit(self, ledger: LedgerStore, address: str) -> DisbursementResult:
        broadcast: list[str] = []
        try:
            receipt = await asyncio.wait_for(
                self.chain.submit(address, self.amount, on_broadcast=broadcast.append),
                timeout=self.submission_timeout,
            )
        except ChainSubmissionError as e:
            error = e
        except TimeoutError:
            error = ChainSubmissionError(
                ChainErrorKind.TIMEOUT,
                f"Transaction failed: submission timed out after {self.submission_timeout:g}s",
                broadcast[-1] if broadcast else None,
            )
        except Exception as e:
            logger.error(f"Unexpected submission error for {address}: {e}", exc_info=True)
            recorded = INTERNAL_ERROR_MESSAGE
            if broadcast:
                recorded = f"{INTERNAL_ERROR_MESSAGE} (tx {broadcast[-1]})"
            self._reconcile(ledger.mark_failed, address, recorded)
            return DisbursementResult.failure(
                DisbursementOutcome.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE
            )
        else:
            self._reconcile(ledger.mark_completed, address, receipt["tx_hash"])
            logger.info(f"Disbursed {self.amount} to {address} in {receipt['tx_hash']}")
            return DisbursementResult(
                outcome=DisbursementOutcome.SUCCESS,
                tx_hash=receipt["tx_hash"],
                amount=str(self.amount),
                block_number=receipt["block_number"],
                message=f"Successfully sent {self.amount} {self.currency_symbol} to {address}",
            )

        recorded = error.message
        if error.tx_hash:
            recorded = f"{error.message} (tx {error.tx_hash})"
        logger.warning(f"Disbursement to {address} failed ({error.kind.value}): {recorded}")
        self._reconcile(ledger.mark_failed, address, recorded)
        return DisbursementResult.failure(DisbursementOutcome.SUBMISSION_FAILED, error.message)

    @staticmethod
    def _reconcile(mark: Callable[[str, str], int], address: str, value: str) -> None:
        """Write the terminal state; the transfer outcome stands even if this fails."""
        try:
            mark(address, value)
        except LedgerError as e:
            logger.critical(f"Could not record outcome for {address} ({value}): {e}")
