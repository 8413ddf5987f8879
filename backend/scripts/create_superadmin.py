#!/usr/bin/env python3
"""
Create (or promote) the portal superadmin.

Usage:
  python3 backend/scripts/create_superadmin.py --email root@example.com --password 'S3cret!'
  SUPERADMIN_EMAIL=... SUPERADMIN_PASSWORD=... python3 backend/scripts/create_superadmin.py
"""

import argparse
import getpass
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

load_dotenv(ROOT / ".env")

from bootstrap import create_tables, ensure_superadmin  # noqa: E402
from database import SessionLocal  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or promote the superadmin account.")
    parser.add_argument("--email", default=os.environ.get("SUPERADMIN_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("SUPERADMIN_PASSWORD"))
    parser.add_argument("--name", default="Super Admin")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if not args.email:
        logger.error("An email is required (--email or SUPERADMIN_EMAIL).")
        return 1
    password = args.password or getpass.getpass("Superadmin password: ")
    if len(password) < 6:
        logger.error("Password must be at least 6 characters.")
        return 1

    create_tables()
    db = SessionLocal()
    try:
        user = ensure_superadmin(db, email=args.email, password=password, name=args.name)
        logger.info("Superadmin ready: %s (id=%s)", user.email, user.id)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
