"""API schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class FaucetRequest(BaseModel):
    """Inbound faucet request.

    Both fields are optional at the schema level so that a missing value is
    reported as a faucet error rather than a generic validation failure.
    """

    address: str | None = None
    verification_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("verificationToken", "captchaToken", "verification_token"),
    )


# Response schemas render camelCase keys
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BaseResponse(CamelModel):
    """Base response model."""

    success: bool = True


class ErrorResponse(BaseResponse):
    success: bool = False
    error: str


class TransactionStatusResponse(BaseResponse):
    tx_hash: str
    status: str
    message: str | None = None
    block_number: int | None = None
    gas_used: int | None = None


class LedgerStats(CamelModel):
    total: int
    success: int
    failed: int


class StatsResponse(BaseResponse):
    stats: LedgerStats


class NetworkInfo(CamelModel):
    chain_id: int
    name: str
    block_number: int
    wallet_balance: Decimal
    wallet_address: str

    @field_serializer("wallet_balance")
    def serialize_balance(self, value: Decimal) -> str:
        return format(value.normalize(), "f")


class HealthResponse(BaseResponse):
    status: str
    network: NetworkInfo
    stats: LedgerStats
    timestamp: datetime
