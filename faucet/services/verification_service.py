"""reCAPTCHA verification client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..constants import RECAPTCHA_ERROR_MESSAGES, RECAPTCHA_VERIFY_URL, VERIFICATION_TIMEOUT_SECONDS
from ..errors import VerificationError, VerificationErrorKind
from .types import VerificationResultDict

logger = logging.getLogger(__name__)


def describe_error_codes(error_codes: list[str]) -> str:
    """Map upstream reason codes to readable text; unknown codes pass through."""
    if not error_codes:
        return "Unknown error"
    return ", ".join(RECAPTCHA_ERROR_MESSAGES.get(code, code) for code in error_codes)


class RecaptchaVerifier:
    """Checks that a faucet request came from a human.

    Stateless apart from its configuration; every call opens its own HTTP
    client unless a transport is injected (tests do this).
    """

    def __init__(
        self,
        secret_key: str,
        verify_url: str = RECAPTCHA_VERIFY_URL,
        timeout: float = VERIFICATION_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout
        self._transport = transport

    async def verify(self, token: str, remote_ip: str | None = None) -> VerificationResultDict:
        """Verify a token with the upstream service.

        Args:
        ----
            token: The client-side verification token
            remote_ip: Optional address of the caller, forwarded as ``remoteip``

        Returns:
        -------
            VerificationResultDict with the optional score and action

        Raises:
        ------
            VerificationError: If the token is rejected or the service is unusable

        """
        form = {"secret": self.secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.verify_url, data=form)
        except httpx.TimeoutException as e:
            logger.warning(f"reCAPTCHA verification timed out: {e}")
            raise VerificationError(
                VerificationErrorKind.TIMEOUT, "reCAPTCHA verification timeout"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"reCAPTCHA transport failure: {e}")
            raise VerificationError(
                VerificationErrorKind.TRANSPORT_ERROR, f"reCAPTCHA verification error: {e}"
            ) from e

        if not response.is_success:
            logger.error(f"reCAPTCHA API returned {response.status_code}")
            raise VerificationError(
                VerificationErrorKind.SERVICE_ERROR,
                f"reCAPTCHA API error: {response.status_code} {response.reason_phrase}",
            )

        try:
            data: Any = response.json()
        except ValueError as e:
            raise VerificationError(
                VerificationErrorKind.SERVICE_ERROR, "reCAPTCHA API error: malformed response"
            ) from e

        if not isinstance(data, dict):
            raise VerificationError(
                VerificationErrorKind.SERVICE_ERROR, "reCAPTCHA API error: malformed response"
            )

        if not data.get("success"):
            reason = describe_error_codes(data.get("error-codes") or [])
            logger.info(f"reCAPTCHA rejected token: {reason}")
            raise VerificationError(
                VerificationErrorKind.INVALID_TOKEN, f"reCAPTCHA verification failed: {reason}"
            )

        return {
            "success": True,
            "score": data.get("score"),
            "action": data.get("action"),
        }
