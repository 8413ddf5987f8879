"""Recomputes ``users.total_score`` from the graded submission set.

The stored total is a cache. It is always rebuilt from scratch and never
adjusted by a delta, so a retried or half-failed grading call cannot make it
drift. This module is the only writer of ``total_score``.
"""
import logging
from typing import Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import NotFound
from models import Submission, SubmissionStatus, User

logger = logging.getLogger(__name__)


def graded_score_sum(db: Session, user_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(Submission.score), 0))
        .filter(
            Submission.user_id == user_id,
            Submission.status == SubmissionStatus.GRADED,
            Submission.score.isnot(None),
        )
        .scalar()
    )
    return int(total or 0)


def recompute_total_score(db: Session, user_id: int) -> int:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User")

    total = graded_score_sum(db, user_id)
    user.total_score = total
    db.commit()
    logger.info("Recomputed total score for user %s: %s", user_id, total)
    return total


def recompute_all_scores(db: Session) -> Dict[int, int]:
    totals = dict(
        db.query(Submission.user_id, func.sum(Submission.score))
        .filter(
            Submission.status == SubmissionStatus.GRADED,
            Submission.score.isnot(None),
        )
        .group_by(Submission.user_id)
        .all()
    )
    results: Dict[int, int] = {}
    changed = 0
    for user in db.query(User).order_by(User.id.asc()).all():
        total = int(totals.get(user.id) or 0)
        if user.total_score != total:
            changed += 1
        user.total_score = total
        results[user.id] = total
    db.commit()
    logger.info("Recomputed total scores for %s users (%s corrected)", len(results), changed)
    return results
