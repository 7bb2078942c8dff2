#!/usr/bin/env python
"""Prepare the disbursement ledger on deploy.

Applies migrations, then reports what the ledger already holds. Records still
``pending`` belong to requests that were interrupted mid-submission; their
transfers may or may not have reached the chain and need manual review.

Usage:
    python init_db.py [--check-config] [--strict]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

# Add project root to path to import faucet modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy import select  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from faucet.config import initialize_settings  # noqa: E402
from faucet.database import connection  # noqa: E402
from faucet.database.models import DisbursementRecord, RecordStatus  # noqa: E402
from faucet.errors import FaucetError  # noqa: E402
from faucet.services.ledger_store import LedgerStore  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def pending_records(db: Session) -> list[DisbursementRecord]:
    """Attempts that never reached a terminal state, oldest first."""
    query = (
        select(DisbursementRecord)
        .where(DisbursementRecord.status == RecordStatus.PENDING.value)
        .order_by(DisbursementRecord.created_at)
    )
    return list(db.execute(query).scalars())


def report_ledger(db: Session) -> int:
    """Log ledger totals and interrupted attempts; returns the pending count."""
    stats = LedgerStore(db).stats()
    pending = pending_records(db)

    logger.info(
        f"📒 Ledger: {stats['total']} requests, {stats['success']} completed, "
        f"{stats['failed']} failed, {len(pending)} pending"
    )
    for record in pending:
        logger.warning(
            f"⚠️ Pending since {record.created_at}: {record.amount} to {record.address} (id {record.id})"
        )
    return len(pending)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the faucet ledger")
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Also fail when the RPC endpoint, signing key or reCAPTCHA secret are missing",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when interrupted (pending) attempts are found",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Create or upgrade the ledger schema and report its contents."""
    args = parse_args(argv)
    try:
        logger.info("🚀 Starting ledger initialization...")

        settings = initialize_settings()
        if args.check_config:
            settings.validate_required()
            logger.info("✅ Required settings present")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Database URL: {settings.DATABASE_URL[:30]}...")

        connection.init_database(settings.DATABASE_URL, settings.DEBUG)
        logger.info("✅ Ledger schema initialized")

        if not connection.check_database_health():
            logger.error("❌ Database health check failed")
            return 1

        db = connection.SessionLocal()
        try:
            pending = report_ledger(db)
        finally:
            db.close()

        if pending and args.strict:
            logger.error("❌ Interrupted attempts need reconciliation before serving requests")
            return 1

        logger.info("🎉 Ledger initialization completed successfully!")
        return 0

    except FaucetError as e:
        logger.error(f"❌ Ledger initialization failed: {e}")
        return 1
    finally:
        connection.close_database_connections()


if __name__ == "__main__":
    sys.exit(main())
