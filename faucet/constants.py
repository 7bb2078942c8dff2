"""Shared constants for faucet disbursements."""

from __future__ import annotations

import re
from decimal import Decimal

# Verification service
RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"
VERIFICATION_TIMEOUT_SECONDS = 10.0

RECAPTCHA_ERROR_MESSAGES: dict[str, str] = {
    "missing-input-secret": "The secret parameter is missing",
    "invalid-input-secret": "The secret parameter is invalid or malformed",
    "missing-input-response": "The response parameter is missing",
    "invalid-input-response": "The response parameter is invalid or malformed",
    "bad-request": "The request is invalid or malformed",
    "timeout-or-duplicate": (
        "The response is no longer valid: either is too old or has been used previously"
    ),
}

# Fee model
FALLBACK_GAS_PRICE_GWEI = Decimal("1.5")
DEFAULT_PRIORITY_FEE_GWEI = Decimal("1")

# Formats
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
TX_HASH_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")

KNOWN_NETWORKS: dict[int, str] = {
    1: "mainnet",
    8453: "base",
    17000: "holesky",
    84532: "base-sepolia",
    11155111: "sepolia",
}

# Redis key pattern for address leases
LOCK_ADDRESS = "faucet:lock:address:{address}"
