"""Monitoring, logging, and observability utilities."""

from __future__ import annotations

import inspect
import json
import logging
import time
import traceback
from collections.abc import Callable
from datetime import datetime, timezone
from functools import wraps
from typing import TYPE_CHECKING, Any, TypeVar

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

if TYPE_CHECKING:
    from ..services.chain_service import ChainService

# Type variable for decorator
F = TypeVar("F", bound=Callable[..., Any])


# Configure structured logging
class StructuredLogger:
    """Structured logging for better observability."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Only add handler if not already present
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(self.JsonFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False

    class JsonFormatter(logging.Formatter):
        """JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_data: dict[str, Any] = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }

            if record.exc_info:
                log_data["exception"] = traceback.format_exception(*record.exc_info)

            extra_fields = getattr(record, "extra_fields", None)
            if extra_fields:
                log_data.update(extra_fields)

            return json.dumps(log_data, default=str)

    def log(self, level: str, message: str, **kwargs: Any) -> None:
        """Log with extra fields."""
        log_level = getattr(logging, level.upper(), logging.INFO)
        if kwargs:
            self.logger.log(log_level, message, extra={"extra_fields": kwargs})
        else:
            self.logger.log(log_level, message)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("info", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("warning", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("error", message, **kwargs)


# Create default logger
logger = StructuredLogger(__name__)


# Metrics collection
class MetricsCollector:
    """Collect and track application metrics."""

    def __init__(self):
        self.metrics: dict[str, dict[str, Any]] = {
            "requests": {},
            "disbursements": {},
            "errors": {},
        }

    def record_request(self, endpoint: str, method: str, status_code: int, duration: float) -> None:
        """Record API request metrics."""
        key = f"{method}_{endpoint}"
        if key not in self.metrics["requests"]:
            self.metrics["requests"][key] = {
                "count": 0,
                "total_duration": 0,
                "status_codes": {},
            }

        self.metrics["requests"][key]["count"] += 1
        self.metrics["requests"][key]["total_duration"] += duration

        status_key = str(status_code)
        if status_key not in self.metrics["requests"][key]["status_codes"]:
            self.metrics["requests"][key]["status_codes"][status_key] = 0
        self.metrics["requests"][key]["status_codes"][status_key] += 1

    def record_disbursement(self, outcome: str, duration: float) -> None:
        """Record the outcome of one faucet request."""
        date_key = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        daily = self.metrics["disbursements"].setdefault(
            date_key, {"count": 0, "outcomes": {}, "total_duration": 0}
        )
        daily["count"] += 1
        daily["outcomes"][outcome] = daily["outcomes"].get(outcome, 0) + 1
        daily["total_duration"] += duration

    def record_error(self, error_type: str, endpoint: str | None = None) -> None:
        """Record error metrics."""
        if error_type not in self.metrics["errors"]:
            self.metrics["errors"][error_type] = {"count": 0, "endpoints": {}}

        self.metrics["errors"][error_type]["count"] += 1

        if endpoint:
            if endpoint not in self.metrics["errors"][error_type]["endpoints"]:
                self.metrics["errors"][error_type]["endpoints"][endpoint] = 0
            self.metrics["errors"][error_type]["endpoints"][endpoint] += 1

    def get_metrics(self) -> dict[str, Any]:
        """Get current metrics snapshot."""
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": self.metrics,
        }

    def reset_metrics(self) -> None:
        """Reset metrics (useful for periodic reporting)."""
        self.metrics = {
            "requests": {},
            "disbursements": {},
            "errors": {},
        }


# Global metrics collector
metrics = MetricsCollector()


# Performance monitoring decorator
def monitor_performance(operation_name: str) -> Callable[[F], F]:
    """Monitor function performance."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    logger.error(
                        f"Operation failed: {operation_name}",
                        operation=operation_name,
                        duration=time.time() - start_time,
                        success=False,
                        error=str(e),
                    )
                    metrics.record_error(type(e).__name__, operation_name)
                    raise

                logger.info(
                    f"Operation completed: {operation_name}",
                    operation=operation_name,
                    duration=time.time() - start_time,
                    success=True,
                )
                return result

            return async_wrapper  # type: ignore

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Operation failed: {operation_name}",
                    operation=operation_name,
                    duration=time.time() - start_time,
                    success=False,
                    error=str(e),
                )
                metrics.record_error(type(e).__name__, operation_name)
                raise

            logger.info(
                f"Operation completed: {operation_name}",
                operation=operation_name,
                duration=time.time() - start_time,
                success=True,
            )
            return result

        return sync_wrapper  # type: ignore

    return decorator


SENSITIVE_FIELDS = (
    "password",
    "secret",
    "token",
    "api_key",
    "private_key",
    "encryption_key",
)


def filter_sensitive_data(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:  # noqa: ARG001
    """Filter sensitive data from Sentry events."""

    def remove_sensitive(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: (
                    "***REDACTED***"
                    if any(s in str(k).lower() for s in SENSITIVE_FIELDS)
                    else remove_sensitive(v)
                )
                for k, v in data.items()
            }
        elif isinstance(data, list):
            return [remove_sensitive(item) for item in data]
        else:
            return data

    for section in ("request", "extra", "contexts"):
        if section in event:
            event[section] = remove_sensitive(event[section])

    return event


def init_sentry(dsn: str | None = None, environment: str = "production") -> None:
    """Initialize Sentry error tracking."""
    if not dsn:
        logger.warning("No Sentry DSN provided, skipping initialization")
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        attach_stacktrace=True,
        send_default_pii=False,
        before_send=filter_sensitive_data,
    )
    logger.info("Sentry initialized successfully", environment=environment)


# Health check utilities
class HealthChecker:
    """System health checking."""

    @staticmethod
    async def check_database(db_session: Any) -> dict[str, Any]:
        """Check database health."""
        from sqlalchemy import text

        try:
            start_time = time.time()
            db_session.execute(text("SELECT 1"))
            return {"status": "healthy", "response_time": time.time() - start_time}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}

    @staticmethod
    async def check_chain(chain_service: ChainService) -> dict[str, Any]:
        """Check the RPC endpoint by reading the head block."""
        try:
            start_time = time.time()
            block_number = await chain_service.w3.eth.block_number
            return {
                "status": "healthy",
                "block_number": int(block_number),
                "response_time": time.time() - start_time,
            }
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}

    @staticmethod
    async def get_full_health_status(db_session: Any, chain_service: ChainService) -> dict[str, Any]:
        """Get comprehensive health status."""
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": {
                "database": await HealthChecker.check_database(db_session),
                "chain": await HealthChecker.check_chain(chain_service),
            },
            "metrics": metrics.get_metrics(),
        }


# Export utilities
__all__ = [
    "logger",
    "metrics",
    "monitor_performance",
    "init_sentry",
    "filter_sensitive_data",
    "HealthChecker",
    "MetricsCollector",
    "StructuredLogger",
]
