import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import AggregationInconsistency, InvalidScore, NotFound
from models import Submission, SubmissionStatus
from score_aggregator import recompute_total_score
from time_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class GradingOutcome:
    submission: Submission
    total_score: Optional[int]
    aggregation_error: Optional[AggregationInconsistency] = None

    @property
    def score_synced(self) -> bool:
        return self.aggregation_error is None


def validate_score(score: int, max_score: int) -> None:
    if score < 0 or score > max_score:
        raise InvalidScore(score, max_score)


def sync_total_score(db: Session, user_id: int) -> Tuple[Optional[int], Optional[AggregationInconsistency]]:
    """Run the aggregator after a committed grading change.

    A failure here leaves the grade in place; it is logged and handed back so
    the caller can report a stale total instead of a failed grade.
    """
    try:
        return recompute_total_score(db, user_id), None
    except (SQLAlchemyError, NotFound) as exc:
        db.rollback()
        error = AggregationInconsistency(user_id, exc)
        logger.error("AggregationInconsistency: %s", error.message, exc_info=exc)
        return None, error


def _get_submission_or_404(db: Session, submission_id: int) -> Submission:
    submission = db.query(Submission).filter(Submission.id == submission_id).first()
    if not submission:
        raise NotFound("Submission")
    return submission


def _apply_grade(
    db: Session,
    submission: Submission,
    score: int,
    feedback: Optional[str],
    grader_id: int,
) -> GradingOutcome:
    validate_score(score, submission.task.max_score)

    submission.score = score
    submission.feedback = feedback
    submission.status = SubmissionStatus.GRADED
    submission.graded_by_id = grader_id
    submission.graded_at = utc_now()
    db.commit()
    logger.info("Submission %s graded %s by user %s", submission.id, score, grader_id)

    total, error = sync_total_score(db, submission.user_id)
    return GradingOutcome(submission=submission, total_score=total, aggregation_error=error)


def grade_submission(
    db: Session,
    submission_id: int,
    score: int,
    feedback: Optional[str],
    grader_id: int,
) -> GradingOutcome:
    submission = _get_submission_or_404(db, submission_id)
    return _apply_grade(db, submission, score, feedback, grader_id)


def update_grade(
    db: Session,
    submission_id: int,
    score: int,
    feedback: Optional[str],
    grader_id: int,
) -> GradingOutcome:
    submission = _get_submission_or_404(db, submission_id)
    if feedback is None:
        feedback = submission.feedback
    return _apply_grade(db, submission, score, feedback, grader_id)


def return_submission(
    db: Session,
    submission_id: int,
    feedback: Optional[str],
    grader_id: int,
) -> GradingOutcome:
    """Send work back to its owner. A returned submission carries no score."""
    submission = _get_submission_or_404(db, submission_id)
    submission.score = None
    submission.feedback = feedback
    submission.status = SubmissionStatus.RETURNED
    submission.graded_by_id = grader_id
    submission.graded_at = utc_now()
    db.commit()
    logger.info("Submission %s returned by user %s", submission.id, grader_id)

    total, error = sync_total_score(db, submission.user_id)
    return GradingOutcome(submission=submission, total_score=total, aggregation_error=error)
