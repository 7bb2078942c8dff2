"""Main FastAPI application for the testnet faucet."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn  # type: ignore
from fastapi import Depends, FastAPI, Request  # type: ignore
from fastapi.exceptions import RequestValidationError  # type: ignore
from fastapi.responses import JSONResponse  # type: ignore
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.routes import get_chain_service, router
from .api.schemas import HealthResponse, LedgerStats, NetworkInfo
from .config import initialize_settings, settings
from .database.connection import (
    close_database_connections,
    get_db,
    init_database,
    initialize_database_engine,
)
from .errors import ChainQueryError, FaucetError, InputError, LedgerError
from .services import (
    AddressLockManager,
    ChainService,
    DisbursementCoordinator,
    LedgerStore,
    RecaptchaVerifier,
)
from .utils.monitoring import HealthChecker, metrics

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    # Initialize settings first; missing RPC_URL or PRIVATE_KEY is fatal
    initialize_settings()
    settings.validate_required()

    # Initialize Sentry for error tracking (production)
    if settings.SENTRY_DSN and settings.ENVIRONMENT == "production":
        try:
            from .utils.monitoring import init_sentry

            init_sentry(
                settings.SENTRY_DSN,
                settings.SENTRY_ENVIRONMENT or settings.ENVIRONMENT,
            )
            logger.info("✅ Sentry error tracking initialized")
        except Exception as e:
            logger.error(f"⚠️ Sentry initialization failed: {e}")

    # Startup
    logger.info(f"🚀 Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"🌍 Environment: {settings.ENVIRONMENT}")
    logger.info(f"🐛 Debug mode: {settings.DEBUG}")
    logger.info(f"💾 Database: {settings.DATABASE_URL[:30]}...")
    logger.info(f"💧 Disbursing {settings.FAUCET_AMOUNT} {settings.CURRENCY_SYMBOL} every {settings.RATE_LIMIT_HOURS}h")
    if settings.REDIS_URL:
        logger.info(f"🔴 Redis: {settings.REDIS_URL[:30]}...")
    if settings.SENTRY_DSN:
        logger.info("🐛 Sentry: Configured for error tracking")

    # Initialize database engine and schema
    try:
        initialize_database_engine(settings.DATABASE_URL, settings.DEBUG)
        init_database()
        logger.info("✅ Database initialized successfully")
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}")
        if settings.ENVIRONMENT == "production":
            raise

    chain = ChainService(
        settings.RPC_URL,
        settings.signing_key(),
        receipt_timeout=settings.RECEIPT_TIMEOUT_SECONDS,
    )
    locks = AddressLockManager.from_url(
        settings.REDIS_URL,
        wait_timeout=settings.ADDRESS_LOCK_WAIT_SECONDS,
        lease_ttl=settings.ADDRESS_LOCK_TTL_SECONDS,
    )
    app.state.chain = chain
    app.state.locks = locks
    app.state.coordinator = DisbursementCoordinator(
        chain=chain,
        verifier=RecaptchaVerifier(settings.RECAPTCHA_SECRET_KEY),
        locks=locks,
        amount=settings.faucet_amount,
        window_hours=settings.RATE_LIMIT_HOURS,
        submission_timeout=settings.SUBMISSION_TIMEOUT_SECONDS,
        currency_symbol=settings.CURRENCY_SYMBOL,
    )

    # Test chain connection
    try:
        network = await chain.get_network_info()
        logger.info(
            f"✅ Connected to {settings.NETWORK_NAME} ({network['name']}, chain {network['chain_id']}); "
            f"wallet {network['wallet_address']} holds {network['wallet_balance']} {settings.CURRENCY_SYMBOL}"
        )
    except ChainQueryError as e:
        logger.error(f"⚠️ Chain connection warning: {e}")
        if settings.ENVIRONMENT == "production":
            raise

    yield

    # Shutdown
    logger.info("👋 Shutting down application...")
    await locks.close()
    await chain.close()
    close_database_connections()
    logger.info("✅ Application shutdown completed")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)


# Add monitoring middleware
@app.middleware("http")
async def monitoring_middleware(request: Request, call_next):
    """Middleware for monitoring and metrics collection."""
    start_time = time.time()

    try:
        response = await call_next(request)
        duration = time.time() - start_time

        # Record request metrics
        metrics.record_request(
            endpoint=str(request.url.path),
            method=request.method,
            status_code=response.status_code,
            duration=duration,
        )

        # Add performance headers for monitoring
        response.headers["X-Process-Time"] = str(duration)
        response.headers["X-Service-Version"] = settings.APP_VERSION

        return response

    except Exception as e:
        # Record error metrics
        metrics.record_error(error_type=type(e).__name__, endpoint=str(request.url.path))

        # Re-raise the exception
        raise


# Include API routes
app.include_router(router, prefix=settings.API_PREFIX)


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):  # noqa: ARG001
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
    return _error(400, "Invalid request body")


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError):  # noqa: ARG001
    return _error(400, str(exc))


@app.exception_handler(ChainQueryError)
async def chain_query_error_handler(request: Request, exc: ChainQueryError):  # noqa: ARG001
    logger.error(f"Chain query failed: {exc}")
    return _error(500, str(exc))


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):  # noqa: ARG001
    logger.error(f"Ledger query failed: {exc}")
    return _error(503, "Service temporarily unavailable")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):  # noqa: ARG001
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error(500, str(exc) if settings.DEBUG else "Internal server error")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/health",
        "environment": settings.ENVIRONMENT,
        "network": settings.NETWORK_NAME,
    }


# Health check endpoint
@app.get("/health", response_model=HealthResponse)
async def health(
    db: Session = Depends(get_db),
    chain: ChainService = Depends(get_chain_service),
):
    """Health check with network info and ledger counts."""
    try:
        network = await chain.get_network_info()
        stats = LedgerStore(db).stats()
    except FaucetError as e:
        logger.error(f"Health check failed: {e}")
        return _error(500, "Health check failed", details=str(e))

    return HealthResponse(
        status="healthy",
        network=NetworkInfo(**network),
        stats=LedgerStats(**stats),
        timestamp=datetime.now(timezone.utc),
    )


# Comprehensive health check endpoint
@app.get(f"{settings.API_PREFIX}/health")
async def detailed_health(
    db: Session = Depends(get_db),
    chain: ChainService = Depends(get_chain_service),
):
    """Detailed health check endpoint."""
    health_status = await HealthChecker.get_full_health_status(db, chain)

    # Add Sentry status
    health_status["services"]["sentry"] = {
        "configured": bool(settings.SENTRY_DSN),
        "environment": settings.SENTRY_ENVIRONMENT,
    }

    # Determine overall status
    services = health_status["services"]
    overall_status = "healthy"
    if services["database"]["status"] == "unhealthy":
        overall_status = "unhealthy"
    elif services["chain"]["status"] == "unhealthy":
        overall_status = "degraded"

    health_status["overall_status"] = overall_status
    return health_status


# Run application
if __name__ == "__main__":
    logger.info("🏠 Running in local development mode")
    uvicorn.run(
        "faucet.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level="info" if not settings.DEBUG else "debug",
    )
