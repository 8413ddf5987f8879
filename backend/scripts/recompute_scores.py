#!/usr/bin/env python3
"""
Rebuild cached participant totals from graded submissions.

Usage:
  python3 backend/scripts/recompute_scores.py
  python3 backend/scripts/recompute_scores.py --user-id 42
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

load_dotenv(ROOT / ".env")

from database import SessionLocal  # noqa: E402
from errors import NotFound  # noqa: E402
from score_aggregator import recompute_all_scores, recompute_total_score  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recompute users.total_score from graded submissions.")
    parser.add_argument("--user-id", type=int, help="Only recompute this user.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    db = SessionLocal()
    try:
        if args.user_id is not None:
            try:
                total = recompute_total_score(db, args.user_id)
            except NotFound as exc:
                logger.error(exc.message)
                return 1
            logger.info("User %s total score: %s", args.user_id, total)
        else:
            totals = recompute_all_scores(db)
            logger.info("Recomputed %s users.", len(totals))
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
