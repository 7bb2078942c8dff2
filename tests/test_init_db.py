"""Tests for the ledger initialization script."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

import init_db
from faucet.errors import ConfigurationError
from faucet.services.ledger_store import LedgerStore

ADDRESS = "0xABCDEF0123456789ABCDEF0123456789ABCDEF01"
OTHER_ADDRESS = "0x0123456789ABCDEF0123456789ABCDEF01234567"
TX_HASH = "0x" + "ab" * 32


class TestLedgerReport:
    """Test the summary of interrupted attempts."""

    @pytest.fixture
    def ledger(self, test_db, clock):
        return LedgerStore(test_db, clock=clock)

    def test_pending_records_oldest_first(self, ledger, test_db, clock):
        ledger.record_attempt(ADDRESS, "0.001")
        ledger.mark_completed(ADDRESS, TX_HASH)
        clock.advance(minutes=5)
        ledger.record_attempt(OTHER_ADDRESS, "0.001")
        clock.advance(minutes=5)
        ledger.record_attempt(ADDRESS, "0.001")

        pending = init_db.pending_records(test_db)

        assert [record.address for record in pending] == [OTHER_ADDRESS, ADDRESS]

    def test_report_counts_pending(self, ledger, test_db):
        ledger.record_attempt(ADDRESS, "0.001")
        ledger.mark_failed(ADDRESS, "Insufficient funds in faucet wallet")
        ledger.record_attempt(OTHER_ADDRESS, "0.001")

        assert init_db.report_ledger(test_db) == 1

    def test_empty_ledger(self, test_db):
        assert init_db.report_ledger(test_db) == 0


class TestMain:
    """Test the script's exit codes with the database layer mocked out."""

    @pytest.fixture
    def settings(self):
        settings = MagicMock()
        settings.ENVIRONMENT = "development"
        settings.DATABASE_URL = "sqlite:///./faucet.db"
        settings.DEBUG = False
        return settings

    @pytest.fixture
    def connection(self, test_db):
        return SimpleNamespace(
            init_database=MagicMock(),
            check_database_health=MagicMock(return_value=True),
            SessionLocal=MagicMock(return_value=test_db),
            close_database_connections=MagicMock(),
        )

    def run(self, argv, settings, connection):
        with (
            patch.object(init_db, "initialize_settings", return_value=settings),
            patch.object(init_db, "connection", connection),
        ):
            return init_db.main(argv)

    def test_success(self, settings, connection):
        assert self.run([], settings, connection) == 0

        connection.init_database.assert_called_once_with("sqlite:///./faucet.db", False)
        settings.validate_required.assert_not_called()
        connection.close_database_connections.assert_called_once()

    def test_strict_fails_on_pending(self, settings, connection, test_db):
        LedgerStore(test_db).record_attempt(ADDRESS, "0.001")

        assert self.run([], settings, connection) == 0
        assert self.run(["--strict"], settings, connection) == 1

    def test_unhealthy_database(self, settings, connection):
        connection.check_database_health.return_value = False

        assert self.run([], settings, connection) == 1
        connection.SessionLocal.assert_not_called()

    def test_check_config(self, settings, connection):
        settings.validate_required.side_effect = ConfigurationError("Missing required settings: RPC_URL")

        assert self.run(["--check-config"], settings, connection) == 1
        connection.init_database.assert_not_called()
        connection.close_database_connections.assert_called_once()
