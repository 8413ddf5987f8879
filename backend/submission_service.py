import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from errors import AggregationInconsistency, Forbidden, InvalidOperation, NotFound
from grading import sync_total_score
from guards import insert_unique
from identity import Caller, require_participant_caller
from models import Submission, SubmissionStatus, SubmissionType, Task
from schemas import content_payload
from time_utils import as_utc, utc_now
from utils import paginate, sort_column

logger = logging.getLogger(__name__)

SUBMISSION_SORT_COLUMNS = {
    "submitted_at": Submission.submitted_at,
    "graded_at": Submission.graded_at,
    "score": Submission.score,
    "status": Submission.status,
}


@dataclass
class DeletionOutcome:
    submission_id: int
    user_id: int
    rescored: bool
    total_score: Optional[int] = None
    aggregation_error: Optional[AggregationInconsistency] = None

    @property
    def score_synced(self) -> bool:
        return self.aggregation_error is None


def _with_relations(query):
    return query.options(
        joinedload(Submission.user),
        joinedload(Submission.task),
        joinedload(Submission.grader),
    )


def submit_task(db: Session, caller: Caller, task_id: int, content) -> Submission:
    require_participant_caller(caller)

    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task")
    if not task.is_active:
        raise InvalidOperation("Task is not active")

    submitted_at = utc_now()
    submission = Submission(
        user_id=caller.user_id,
        task_id=task.id,
        submission_type=SubmissionType(content.submission_type),
        content=content_payload(content),
        submitted_at=submitted_at,
        status=SubmissionStatus.SUBMITTED,
        is_late=submitted_at > as_utc(task.deadline),
    )
    existing = db.query(Submission).filter(
        Submission.user_id == caller.user_id,
        Submission.task_id == task.id,
    )
    insert_unique(db, submission, existing, "user_id+task_id", "You have already submitted for this task")
    logger.info("User %s submitted task %s (late=%s)", caller.user_id, task.id, submission.is_late)
    return submission


def get_submission(db: Session, caller: Caller, submission_id: int) -> Submission:
    submission = _with_relations(db.query(Submission)).filter(Submission.id == submission_id).first()
    if not submission:
        raise NotFound("Submission")
    if not caller.is_admin and submission.user_id != caller.user_id:
        raise Forbidden()
    return submission


def get_user_submission_for_task(db: Session, user_id: int, task_id: int) -> Optional[Submission]:
    return db.query(Submission).filter(
        Submission.user_id == user_id,
        Submission.task_id == task_id,
    ).first()


def list_submissions(
    db: Session,
    caller: Caller,
    status: Optional[SubmissionStatus] = None,
    task_id: Optional[int] = None,
    user_id: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "submitted_at",
    sort_order: str = "desc",
) -> Tuple[List[Submission], Dict[str, Any]]:
    query = _with_relations(db.query(Submission))
    if caller.is_admin:
        if user_id is not None:
            query = query.filter(Submission.user_id == user_id)
    else:
        query = query.filter(Submission.user_id == caller.user_id)
    if status is not None:
        query = query.filter(Submission.status == status)
    if task_id is not None:
        query = query.filter(Submission.task_id == task_id)

    query = query.order_by(
        sort_column(SUBMISSION_SORT_COLUMNS, sort_by, sort_order, "submitted_at"),
        Submission.id.desc(),
    )
    return paginate(query, page, limit)


def pending_submissions(db: Session, limit: int = 10) -> List[Submission]:
    return (
        _with_relations(db.query(Submission))
        .filter(Submission.status == SubmissionStatus.SUBMITTED)
        .order_by(Submission.submitted_at.asc(), Submission.id.asc())
        .limit(limit)
        .all()
    )


def delete_submission(db: Session, caller: Caller, submission_id: int) -> DeletionOutcome:
    submission = db.query(Submission).filter(Submission.id == submission_id).first()
    if not submission:
        raise NotFound("Submission")

    is_owner = submission.user_id == caller.user_id
    if not caller.is_admin:
        if not is_owner:
            raise Forbidden()
        if submission.status == SubmissionStatus.GRADED or submission.score is not None:
            raise Forbidden("Cannot delete graded submission")

    owner_id = submission.user_id
    rescore = submission.status == SubmissionStatus.GRADED or submission.score is not None
    db.delete(submission)
    db.commit()
    logger.info("Submission %s deleted by user %s", submission_id, caller.user_id)

    outcome = DeletionOutcome(submission_id=submission_id, user_id=owner_id, rescored=rescore)
    if rescore:
        outcome.total_score, outcome.aggregation_error = sync_total_score(db, owner_id)
    return outcome
