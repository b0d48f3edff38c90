#!/usr/bin/env python3
"""
Create a portal user out-of-band. The code login only signs in existing users.

Usage:
    python scripts/create_user.py --name "Maria Silva" --email maria@nextest.com.br --department Suporte
    python scripts/create_user.py --email maria@nextest.com.br --deactivate

Environment Variables:
    DATABASE_URL: database connection string (optional, can use .env file)
"""

import argparse
import os
import sys

# Add parent directory to path so we can import from the project
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings
from database import Base, build_engine, build_session_factory
from services.user_service import create_user, set_user_active
from utils.errors import ValidationError
from utils.logger_factory import new_logger

logger = new_logger("create_user")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create or deactivate a portal user.")
    parser.add_argument("--email", required=True, help="Corporate email (@nextest.com.br)")
    parser.add_argument("--name", help="Full name")
    parser.add_argument("--department", help="Department")
    parser.add_argument("--deactivate", action="store_true", help="Deactivate an existing user instead")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first (local SQLite)")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    engine = build_engine(settings.database_url)
    if args.create_tables:
        import models  # noqa: F401  registers the tables on Base
        Base.metadata.create_all(bind=engine)
    db = build_session_factory(engine)()
    try:
        if args.deactivate:
            user = set_user_active(db, args.email, False)
            if not user:
                logger.error(f"No user with email {args.email}")
                return 1
            print(f"Deactivated {user.email} ({user.id})")
            return 0

        if not args.name or not args.department:
            parser.error("--name and --department are required when creating a user")
        try:
            user = create_user(db, args.name, args.email, args.department)
        except ValidationError as e:
            logger.error(e.message)
            return 1
        print(f"Created {user.email} ({user.id})")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
