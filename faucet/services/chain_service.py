"""EVM chain integration service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from ..constants import ADDRESS_PATTERN, DEFAULT_PRIORITY_FEE_GWEI, KNOWN_NETWORKS
from ..errors import ChainErrorKind, ChainQueryError, ChainSubmissionError, ConfigurationError
from ..utils.monitoring import monitor_performance
from .fees import FeeData, select_fee_model
from .types import NetworkInfoDict, SubmissionResultDict, TransactionStatusDict

logger = logging.getLogger(__name__)

INSUFFICIENT_FUNDS_MESSAGE = "Insufficient funds in faucet wallet"
GAS_ESTIMATION_MESSAGE = "Transaction failed: unable to estimate gas"
UNDERPRICED_MESSAGE = "Transaction failed: replacement transaction underpriced"


def _error_message(exc: BaseException) -> str:
    """Pull the provider's message out of a JSON-RPC error."""
    for arg in exc.args:
        if isinstance(arg, dict) and arg.get("message"):
            return str(arg["message"])

    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])

    return str(exc) or type(exc).__name__


def classify_submission_error(exc: BaseException, tx_hash: str | None = None) -> ChainSubmissionError:
    """Map a provider failure onto the submission error taxonomy."""
    message = _error_message(exc)
    lowered = message.lower()

    if "insufficient funds" in lowered:
        return ChainSubmissionError(ChainErrorKind.INSUFFICIENT_FUNDS, INSUFFICIENT_FUNDS_MESSAGE, tx_hash)
    if "underpriced" in lowered:
        return ChainSubmissionError(ChainErrorKind.UNDERPRICED, UNDERPRICED_MESSAGE, tx_hash)
    if (
        isinstance(exc, ContractLogicError)
        or "execution reverted" in lowered
        or "gas required exceeds" in lowered
    ):
        return ChainSubmissionError(ChainErrorKind.GAS_ESTIMATION_FAILED, GAS_ESTIMATION_MESSAGE, tx_hash)

    return ChainSubmissionError(ChainErrorKind.GENERIC, f"Transaction failed: {message}", tx_hash)


class ChainService:
    """Service for sending value transfers from the operating account."""

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        receipt_timeout: float = 90.0,
        web3: AsyncWeb3 | None = None,
    ):
        """Initialize the RPC client and the operating account."""
        self.rpc_url = rpc_url
        self.receipt_timeout = receipt_timeout
        self.w3 = web3 if web3 is not None else AsyncWeb3(AsyncHTTPProvider(rpc_url))

        try:
            self.account = Account.from_key(private_key)
        except Exception as e:
            # Never log the key itself
            raise ConfigurationError("PRIVATE_KEY is not a valid private key") from e

        # Nonce allocation, signing and broadcast must not interleave
        self._send_lock = asyncio.Lock()
        self._chain_id: int | None = None
        logger.info(f"Initialized chain service for operating account {self.account.address}")

    @property
    def address(self) -> str:
        return self.account.address

    async def close(self) -> None:
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    def is_valid_address(self, candidate: Any) -> bool:
        """Validate a 0x-prefixed, 40-hex-digit address (EIP-55 checked when mixed case)."""
        try:
            if not isinstance(candidate, str) or not ADDRESS_PATTERN.fullmatch(candidate):
                return False
            return bool(Web3.is_address(candidate))
        except Exception as e:
            logger.debug(f"Address validation error for {candidate!r}: {e}")
            return False

    async def get_balance(self) -> Decimal:
        """Get the operating account's balance in ether."""
        try:
            balance_wei = await self.w3.eth.get_balance(self.address)
        except Exception as e:
            raise ChainQueryError(f"Failed to get wallet balance: {_error_message(e)}") from e
        return Decimal(Web3.from_wei(balance_wei, "ether"))

    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self.w3.eth.chain_id)
        return self._chain_id

    async def get_fee_data(self) -> FeeData:
        """Read the network's fee data; unsupported fields come back as None."""
        gas_price: int | None = None
        max_fee: int | None = None
        priority_fee: int | None = None

        try:
            gas_price = int(await self.w3.eth.gas_price)
        except Exception as e:
            logger.debug(f"eth_gasPrice unavailable: {e}")

        try:
            block = await self.w3.eth.get_block("latest")
            base_fee = block.get("baseFeePerGas")
        except Exception as e:
            logger.debug(f"Latest block unavailable for fee data: {e}")
            base_fee = None

        if base_fee is not None:
            try:
                priority_fee = int(await self.w3.eth.max_priority_fee)
            except Exception:
                priority_fee = Web3.to_wei(DEFAULT_PRIORITY_FEE_GWEI, "gwei")
            max_fee = int(base_fee) * 2 + priority_fee

        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    @staticmethod
    def _to_wei(amount: Decimal | str | float) -> int:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError) as e:
            raise ChainSubmissionError(ChainErrorKind.INVALID_AMOUNT, "Invalid amount") from e

        if not value.is_finite() or value <= 0:
            raise ChainSubmissionError(ChainErrorKind.INVALID_AMOUNT, "Invalid amount")

        value_wei = int(Web3.to_wei(value, "ether"))
        if value_wei <= 0:
            raise ChainSubmissionError(ChainErrorKind.INVALID_AMOUNT, "Invalid amount")
        return value_wei

    async def _estimate_gas(self, recipient: str, value_wei: int) -> int:
        try:
            return int(
                await self.w3.eth.estimate_gas(
                    {"from": self.address, "to": recipient, "value": value_wei}
                )
            )
        except Exception as e:
            error = classify_submission_error(e)
            if error.kind == ChainErrorKind.INSUFFICIENT_FUNDS:
                raise error from e
            logger.warning(f"Gas estimation failed for {recipient}: {_error_message(e)}")
            raise ChainSubmissionError(
                ChainErrorKind.GAS_ESTIMATION_FAILED, GAS_ESTIMATION_MESSAGE
            ) from e

    @monitor_performance("chain.submit")
    async def submit(
        self,
        to_address: str,
        amount: Decimal | str,
        on_broadcast: Callable[[str], None] | None = None,
    ) -> SubmissionResultDict:
        """Send ``amount`` ether to ``to_address`` and wait for one confirmation.

        Args:
        ----
            to_address: Recipient address
            amount: Amount in ether
            on_broadcast: Called with the hash once the transaction may be on the network

        Returns:
        -------
            SubmissionResultDict for the confirmed transaction

        Raises:
        ------
            ChainSubmissionError: Classified failure; never retried here

        """
        if not self.is_valid_address(to_address):
            raise ChainSubmissionError(ChainErrorKind.INVALID_RECIPIENT, "Invalid recipient address")

        value_wei = self._to_wei(amount)
        recipient = Web3.to_checksum_address(to_address)
        tx_hash: str | None = None

        try:
            async with self._send_lock:
                fee = select_fee_model(await self.get_fee_data())
                gas_limit = await self._estimate_gas(recipient, value_wei)
                nonce = await self.w3.eth.get_transaction_count(self.address, "pending")

                tx: dict[str, Any] = {
                    "to": recipient,
                    "value": value_wei,
                    "gas": gas_limit,
                    "nonce": nonce,
                    "chainId": await self.get_chain_id(),
                    **fee.tx_fields(),
                }
                signed = self.account.sign_transaction(tx)
                try:
                    sent = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
                except asyncio.CancelledError:
                    # The node may have accepted it before the cancellation landed
                    if on_broadcast is not None:
                        on_broadcast(Web3.to_hex(signed.hash))
                    raise
                tx_hash = Web3.to_hex(sent)
                if on_broadcast is not None:
                    on_broadcast(tx_hash)

            logger.info(
                f"Broadcast {tx_hash} to {recipient} ({fee.kind} fee, nonce {nonce}, gas {gas_limit})"
            )

            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except ChainSubmissionError:
            raise
        except TimeExhausted as e:
            raise ChainSubmissionError(
                ChainErrorKind.TIMEOUT,
                f"Transaction failed: not confirmed within {int(self.receipt_timeout)}s",
                tx_hash,
            ) from e
        except Exception as e:
            logger.error(f"Transfer to {recipient} failed: {_error_message(e)}")
            raise classify_submission_error(e, tx_hash) from e

        block_number = int(receipt["blockNumber"])
        if receipt.get("status") == 0:
            raise ChainSubmissionError(
                ChainErrorKind.REVERTED,
                f"Transaction failed: reverted in block {block_number}",
                tx_hash,
            )

        return {
            "tx_hash": tx_hash,
            "block_number": block_number,
            "gas_used": int(receipt.get("gasUsed") or 0),
            "effective_gas_price": int(receipt.get("effectiveGasPrice") or 0),
        }

    async def get_transaction_status(self, tx_hash: str) -> TransactionStatusDict:
        """Look up a receipt; ``pending`` when the network has none yet."""
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            receipt = None
        except Exception as e:
            raise ChainQueryError(f"Failed to get transaction status: {_error_message(e)}") from e

        if receipt is None:
            return {"status": "pending", "message": "Transaction is pending"}

        if receipt.get("status") == 1:
            return {
                "status": "success",
                "message": "Transaction successful",
                "block_number": int(receipt["blockNumber"]),
                "gas_used": int(receipt.get("gasUsed") or 0),
            }

        return {
            "status": "failed",
            "message": "Transaction failed",
            "block_number": int(receipt["blockNumber"]),
        }

    async def get_network_info(self) -> NetworkInfoDict:
        """Aggregate chain id, head block and operating balance."""
        try:
            chain_id = await self.get_chain_id()
            block_number = int(await self.w3.eth.block_number)
        except Exception as e:
            raise ChainQueryError(f"Failed to get network info: {_error_message(e)}") from e

        return {
            "chain_id": chain_id,
            "name": KNOWN_NETWORKS.get(chain_id, "unknown"),
            "block_number": block_number,
            "wallet_balance": await self.get_balance(),
            "wallet_address": self.address,
        }
