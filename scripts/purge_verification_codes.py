#!/usr/bin/env python3
"""
Delete used or expired verification codes and expired sessions.

Usage:
    python scripts/purge_verification_codes.py [--days 7] [--dry-run]

Environment Variables:
    DATABASE_URL: database connection string (optional, can use .env file)
"""

import argparse
import os
import sys
from datetime import timedelta

# Add parent directory to path so we can import from the project
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func, or_

from config import Settings
from database import build_engine, build_session_factory
from models.verification_code import VerificationCode
from services.verification_service import purge_verification_codes
from utils.clock import utcnow
from utils.logger_factory import new_logger
from utils.session_store import SessionStore

logger = new_logger("purge_verification_codes")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Purge stale verification codes and sessions.")
    parser.add_argument("--days", type=int, default=7, help="Keep codes created in the last N days (default: 7)")
    parser.add_argument("--dry-run", action="store_true", help="Only count what would be deleted")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    db = build_session_factory(build_engine(settings.database_url))()
    now = utcnow()
    cutoff = now - timedelta(days=args.days)
    try:
        if args.dry_run:
            count = db.query(func.count(VerificationCode.id)).filter(
                VerificationCode.created_at < cutoff,
                or_(VerificationCode.used.is_(True), VerificationCode.expires_at <= now),
            ).scalar()
            logger.info(f"[dry-run] {count} verification code(s) would be purged")
            return 0
        codes = purge_verification_codes(db, cutoff, now=now)
        sessions = SessionStore(db, settings).purge_expired(now=now)
        print(f"Purged {codes} verification code(s) and {sessions} session(s)")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
