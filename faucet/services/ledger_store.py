"""Disbursement ledger: throttling queries and attempt bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.models import DisbursementRecord, RecordStatus
from ..errors import LedgerError
from ..utils.monitoring import monitor_performance
from .types import LedgerStatsDict, WaitTimeDict

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LedgerStore:
    """Persistence for disbursement attempts, bound to one database session.

    The "most recent record" for an address is always resolved by
    ``MAX(created_at)`` scoped to that address, never by the id returned from
    :meth:`record_attempt`.
    """

    def __init__(self, db: Session, clock: Clock = utc_now) -> None:
        self.db = db
        self.clock = clock

    def _window_start(self, window_hours: int) -> datetime:
        return self.clock() - timedelta(hours=window_hours)

    def has_recent_entry(self, address: str, window_hours: int) -> bool:
        """Return True if ``address`` has any record newer than the window start."""
        query = (
            select(func.count(DisbursementRecord.id))
            .where(DisbursementRecord.address == address)
            .where(DisbursementRecord.created_at > self._window_start(window_hours))
        )
        try:
            count = self.db.execute(query).scalar_one()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to query recent requests: {e}") from e
        return count > 0

    def time_until_next_allowed(self, address: str, window_hours: int) -> WaitTimeDict | None:
        """Compute when ``address`` may request again, or None if it already may."""
        query = (
            select(func.max(DisbursementRecord.created_at))
            .where(DisbursementRecord.address == address)
            .where(DisbursementRecord.created_at > self._window_start(window_hours))
        )
        try:
            last_request_at = self.db.execute(query).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to query request window: {e}") from e

        if last_request_at is None:
            return None

        last_request_at = _as_utc(last_request_at)
        next_allowed_at = last_request_at + timedelta(hours=window_hours)
        remaining = int((next_allowed_at - self.clock()).total_seconds())

        return {
            "last_request_at": last_request_at,
            "next_allowed_at": next_allowed_at,
            "seconds_remaining": max(0, remaining),
        }

    @monitor_performance("ledger.record_attempt")
    def record_attempt(self, address: str, amount: Decimal | str) -> int:
        """Insert a pending record and return its id."""
        record = DisbursementRecord(
            address=address,
            amount=str(amount),
            status=RecordStatus.PENDING.value,
            created_at=self.clock(),
        )
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to record request: {e}") from e

        logger.info(f"Recorded pending disbursement {record.id} for {address}")
        return int(record.id)

    def _update_latest_pending(self, address: str, values: dict[str, str]) -> int:
        latest = (
            select(func.max(DisbursementRecord.created_at))
            .where(DisbursementRecord.address == address)
            .scalar_subquery()
        )
        statement = (
            update(DisbursementRecord)
            .where(DisbursementRecord.address == address)
            .where(DisbursementRecord.created_at == latest)
            .where(DisbursementRecord.status == RecordStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(statement)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to update request for {address}: {e}") from e

        if result.rowcount == 0:
            logger.warning(
                f"Ledger inconsistency: no pending record to mark {values['status']} for {address}"
            )
        return result.rowcount

    def mark_completed(self, address: str, tx_hash: str) -> int:
        """Mark the latest pending record for ``address`` as completed."""
        return self._update_latest_pending(
            address, {"status": RecordStatus.COMPLETED.value, "tx_hash": tx_hash}
        )

    def mark_failed(self, address: str, error_message: str) -> int:
        """Mark the latest pending record for ``address`` as failed."""
        return self._update_latest_pending(
            address, {"status": RecordStatus.FAILED.value, "error_message": error_message}
        )

    def latest_record(self, address: str) -> DisbursementRecord | None:
        query = (
            select(DisbursementRecord)
            .where(DisbursementRecord.address == address)
            .order_by(DisbursementRecord.created_at.desc(), DisbursementRecord.id.desc())
            .limit(1)
        )
        try:
            return self.db.execute(query).scalars().first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to load latest request: {e}") from e

    def stats(self) -> LedgerStatsDict:
        """Aggregate counts for observability."""
        query = select(
            func.count(DisbursementRecord.id),
            func.coalesce(
                func.sum(case((DisbursementRecord.status == RecordStatus.COMPLETED.value, 1), else_=0)),
                0,
            ),
            func.coalesce(
                func.sum(case((DisbursementRecord.status == RecordStatus.FAILED.value, 1), else_=0)),
                0,
            ),
        )
        try:
            total, success, failed = self.db.execute(query).one()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerError(f"Failed to load statistics: {e}") from e

        return {"total": int(total), "success": int(success), "failed": int(failed)}
