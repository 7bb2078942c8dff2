"""Tests for the disbursement ledger."""

from datetime import timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from faucet.database.models import DisbursementRecord, RecordStatus
from faucet.errors import LedgerError
from faucet.services.ledger_store import LedgerStore

ADDRESS = "0xABCDEF0123456789ABCDEF0123456789ABCDEF01"
OTHER_ADDRESS = "0x1111111111111111111111111111111111111111"
TX_HASH = "0x" + "ab" * 32


class TestLedgerStore:
    """Test throttling queries and attempt bookkeeping."""

    @pytest.fixture
    def ledger(self, test_db, clock):
        return LedgerStore(test_db, clock=clock)

    def _records(self, test_db, address=ADDRESS):
        return (
            test_db.execute(
                select(DisbursementRecord)
                .where(DisbursementRecord.address == address)
                .order_by(DisbursementRecord.id)
            )
            .scalars()
            .all()
        )

    def test_record_attempt_creates_pending_record(self, ledger, test_db, clock):
        """A new attempt is pending with no hash and the clock's timestamp."""
        record_id = ledger.record_attempt(ADDRESS, "0.001")

        records = self._records(test_db)
        assert len(records) == 1
        assert records[0].id == record_id
        assert records[0].status == RecordStatus.PENDING.value
        assert records[0].amount == "0.001"
        assert records[0].tx_hash is None
        assert records[0].error_message is None
        assert records[0].created_at.replace(tzinfo=timezone.utc) == clock.now

    def test_no_recent_entry_for_unknown_address(self, ledger):
        assert ledger.has_recent_entry(ADDRESS, 24) is False
        assert ledger.time_until_next_allowed(ADDRESS, 24) is None

    def test_recent_entry_within_window(self, ledger, clock):
        ledger.record_attempt(ADDRESS, "0.001")
        clock.advance(hours=23, minutes=59)

        assert ledger.has_recent_entry(ADDRESS, 24) is True
        assert ledger.has_recent_entry(OTHER_ADDRESS, 24) is False

    def test_window_boundary_allows_request(self, ledger, clock):
        """A record exactly one window old no longer throttles."""
        ledger.record_attempt(ADDRESS, "0.001")
        clock.advance(hours=24)

        assert ledger.has_recent_entry(ADDRESS, 24) is False
        assert ledger.time_until_next_allowed(ADDRESS, 24) is None

    def test_time_until_next_allowed(self, ledger, clock):
        """One second after a request, a 24h window has 86399s left."""
        requested_at = clock.now
        ledger.record_attempt(ADDRESS, "0.001")
        clock.advance(seconds=1)

        wait = ledger.time_until_next_allowed(ADDRESS, 24)

        assert wait is not None
        assert wait["seconds_remaining"] == 86399
        assert wait["last_request_at"] == requested_at
        assert wait["next_allowed_at"] == requested_at + timedelta(hours=24)

    def test_time_until_next_allowed_uses_latest_record(self, ledger, clock):
        ledger.record_attempt(ADDRESS, "0.001")
        ledger.mark_failed(ADDRESS, "Insufficient funds in faucet wallet")
        clock.advance(hours=2)
        second_at = clock.now
        ledger.record_attempt(ADDRESS, "0.001")
        clock.advance(hours=1)

        wait = ledger.time_until_next_allowed(ADDRESS, 24)

        assert wait["last_request_at"] == second_at
        assert wait["seconds_remaining"] == 23 * 3600

    def test_remaining_time_strictly_decreases(self, ledger, clock):
        ledger.record_attempt(ADDRESS, "0.001")
        previous = None
        for _ in range(5):
            clock.advance(minutes=30)
            remaining = ledger.time_until_next_allowed(ADDRESS, 24)["seconds_remaining"]
            if previous is not None:
                assert remaining < previous
            previous = remaining

    def test_mark_completed(self, ledger, test_db):
        ledger.record_attempt(ADDRESS, "0.001")

        assert ledger.mark_completed(ADDRESS, TX_HASH) == 1

        record = self._records(test_db)[0]
        test_db.refresh(record)
        assert record.status == RecordStatus.COMPLETED.value
        assert record.tx_hash == TX_HASH
        assert record.error_message is None

    def test_mark_failed(self, ledger, test_db):
        ledger.record_attempt(ADDRESS, "0.001")

        assert ledger.mark_failed(ADDRESS, "Insufficient funds in faucet wallet") == 1

        record = self._records(test_db)[0]
        test_db.refresh(record)
        assert record.status == RecordStatus.FAILED.value
        assert record.tx_hash is None
        assert record.error_message == "Insufficient funds in faucet wallet"

    def test_terminal_record_is_not_updated_again(self, ledger, test_db):
        """Completed and failed are terminal."""
        ledger.record_attempt(ADDRESS, "0.001")
        ledger.mark_completed(ADDRESS, TX_HASH)

        assert ledger.mark_failed(ADDRESS, "late failure") == 0

        record = self._records(test_db)[0]
        test_db.refresh(record)
        assert record.status == RecordStatus.COMPLETED.value
        assert record.error_message is None

    def test_update_targets_latest_record_only(self, ledger, test_db, clock):
        """Updates resolve the record by most recent timestamp for the address."""
        ledger.record_attempt(ADDRESS, "0.001")
        clock.advance(days=2)
        ledger.record_attempt(ADDRESS, "0.001")
        ledger.record_attempt(OTHER_ADDRESS, "0.001")

        ledger.mark_completed(ADDRESS, TX_HASH)

        older, newer = self._records(test_db)
        test_db.refresh(older)
        test_db.refresh(newer)
        assert older.status == RecordStatus.PENDING.value
        assert newer.status == RecordStatus.COMPLETED.value
        other = self._records(test_db, OTHER_ADDRESS)[0]
        test_db.refresh(other)
        assert other.status == RecordStatus.PENDING.value

    def test_mark_without_record_is_noop(self, ledger):
        assert ledger.mark_completed(ADDRESS, TX_HASH) == 0

    def test_latest_record(self, ledger, clock):
        assert ledger.latest_record(ADDRESS) is None

        ledger.record_attempt(ADDRESS, "0.001")
        clock.advance(days=1, seconds=1)
        second_id = ledger.record_attempt(ADDRESS, "0.002")

        latest = ledger.latest_record(ADDRESS)
        assert latest.id == second_id
        assert latest.amount == "0.002"

    def test_stats(self, ledger, clock):
        assert ledger.stats() == {"total": 0, "success": 0, "failed": 0}

        ledger.record_attempt(ADDRESS, "0.001")
        ledger.mark_completed(ADDRESS, TX_HASH)
        ledger.record_attempt(OTHER_ADDRESS, "0.001")
        ledger.mark_failed(OTHER_ADDRESS, "Transaction failed: boom")
        clock.advance(seconds=1)
        ledger.record_attempt("0x2222222222222222222222222222222222222222", "0.001")

        assert ledger.stats() == {"total": 3, "success": 1, "failed": 1}

    def test_database_errors_raise_ledger_error(self):
        """Store failures surface as LedgerError after a rollback."""
        db = MagicMock()
        db.execute.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
        ledger = LedgerStore(db)

        with pytest.raises(LedgerError, match="database is locked"):
            ledger.has_recent_entry(ADDRESS, 24)
        with pytest.raises(LedgerError):
            ledger.mark_completed(ADDRESS, TX_HASH)
        with pytest.raises(LedgerError):
            ledger.stats()

        assert db.rollback.call_count == 3

    def test_record_attempt_error_raises_ledger_error(self):
        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))
        ledger = LedgerStore(db)

        with pytest.raises(LedgerError, match="Failed to record request"):
            ledger.record_attempt(ADDRESS, "0.001")
        db.rollback.assert_called_once()
