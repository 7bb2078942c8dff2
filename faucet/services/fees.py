"""Fee models for outbound transfers.

Exactly one variant is attached to every transaction. Legacy and fallback
pricing set ``gasPrice``; dynamic pricing sets the EIP-1559 pair.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from web3 import Web3

from ..constants import FALLBACK_GAS_PRICE_GWEI


class FeeData(BaseModel):
    """What the network reported; any field may be missing."""

    model_config = ConfigDict(frozen=True)

    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None


class LegacyFee(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["legacy"] = "legacy"
    gas_price: int = Field(gt=0)

    def tx_fields(self) -> dict[str, int]:
        return {"gasPrice": self.gas_price}


class DynamicFee(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["dynamic"] = "dynamic"
    max_fee_per_gas: int = Field(gt=0)
    max_priority_fee_per_gas: int = Field(ge=0)

    @model_validator(mode="after")
    def check_cap(self) -> "DynamicFee":
        if self.max_priority_fee_per_gas > self.max_fee_per_gas:
            raise ValueError("Priority fee cannot exceed max fee")
        return self

    def tx_fields(self) -> dict[str, int]:
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }


class FallbackFee(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["fallback"] = "fallback"
    gas_price: int = Field(default_factory=lambda: Web3.to_wei(FALLBACK_GAS_PRICE_GWEI, "gwei"))

    def tx_fields(self) -> dict[str, int]:
        return {"gasPrice": self.gas_price}


FeeModel = LegacyFee | DynamicFee | FallbackFee


def select_fee_model(fee_data: FeeData) -> FeeModel:
    """Pick the fee model: legacy price first, then the EIP-1559 pair, else fallback."""
    if fee_data.gas_price:
        return LegacyFee(gas_price=fee_data.gas_price)

    if fee_data.max_fee_per_gas and fee_data.max_priority_fee_per_gas is not None:
        return DynamicFee(
            max_fee_per_gas=fee_data.max_fee_per_gas,
            max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
        )

    return FallbackFee()
