"""API routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..constants import TX_HASH_PATTERN
from ..database.connection import get_db
from ..errors import InputError
from ..services import ChainService, DisbursementCoordinator, LedgerStore
from .schemas import (
    ErrorResponse,
    FaucetRequest,
    LedgerStats,
    StatsResponse,
    TransactionStatusResponse,
)

logger = logging.getLogger(__name__)

INVALID_TX_HASH_MESSAGE = "Invalid transaction hash format"

# Create router; the prefix is applied when the app includes it
router = APIRouter(tags=["Faucet"])


def get_coordinator(request: Request) -> DisbursementCoordinator:
    """Disbursement coordinator built at startup."""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Faucet is not initialized"
        )
    return coordinator


def get_chain_service(request: Request) -> ChainService:
    chain = getattr(request.app.state, "chain", None)
    if chain is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Chain client is not initialized"
        )
    return chain


@router.post(
    "/request",
    responses={
        200: {"description": "Funds sent"},
        400: {"model": ErrorResponse, "description": "Invalid request or verification failed"},
        409: {"model": ErrorResponse, "description": "Request for this address already in flight"},
        429: {"description": "Address is inside its throttling window"},
        500: {"model": ErrorResponse, "description": "Submission failed"},
        503: {"model": ErrorResponse, "description": "Ledger unavailable"},
    },
)
async def request_funds(
    payload: FaucetRequest,
    request: Request,
    db: Session = Depends(get_db),
    coordinator: DisbursementCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    """Send the configured amount to an address, at most once per window."""
    client_ip = request.client.host if request.client else None
    result = await coordinator.request_disbursement(
        db, payload.address, payload.verification_token, client_ip
    )
    return JSONResponse(status_code=result.status_code, content=result.to_response())


@router.get(
    "/transaction/{tx_hash}",
    response_model=TransactionStatusResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}},
)
async def get_transaction_status(
    tx_hash: str = Path(description="0x-prefixed 32-byte transaction hash"),
    chain: ChainService = Depends(get_chain_service),
) -> TransactionStatusResponse:
    """Look up a transaction's receipt; a pure read."""
    if not TX_HASH_PATTERN.fullmatch(tx_hash):
        raise InputError(INVALID_TX_HASH_MESSAGE)

    receipt_status = await chain.get_transaction_status(tx_hash)
    return TransactionStatusResponse(tx_hash=tx_hash, **receipt_status)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(db: Session = Depends(get_db)) -> StatsResponse:
    """Aggregate ledger counts."""
    return StatsResponse(stats=LedgerStats(**LedgerStore(db).stats()))
