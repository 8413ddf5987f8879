import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from errors import InvalidOperation, NotFound
from identity import Caller
from models import Submission, Task, TaskType
from time_utils import as_utc, utc_now
from utils import paginate, sort_column

logger = logging.getLogger(__name__)

TASK_SORT_COLUMNS = {
    "deadline": Task.deadline,
    "created_at": Task.created_at,
    "title": Task.title,
    "max_score": Task.max_score,
}


def is_overdue(task: Task, now: Optional[datetime] = None) -> bool:
    return as_utc(now or utc_now()) > as_utc(task.deadline)


def get_task_or_404(db: Session, task_id: int) -> Task:
    task = db.query(Task).options(joinedload(Task.creator)).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task")
    return task


def create_task(db: Session, creator_id: int, data) -> Task:
    task = Task(
        title=data.title.strip(),
        description=data.description,
        instructions=data.instructions,
        type=data.type,
        max_score=data.max_score,
        deadline=as_utc(data.deadline),
        is_active=True,
        created_by_id=creator_id,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("Task %s created by user %s", task.id, creator_id)
    return task


def update_task(db: Session, task_id: int, data) -> Task:
    task = get_task_or_404(db, task_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if field == "deadline":
            value = as_utc(value)
        setattr(task, field, value)
    db.commit()
    db.refresh(task)
    return task


def toggle_task(db: Session, task_id: int) -> Task:
    task = get_task_or_404(db, task_id)
    task.is_active = not task.is_active
    db.commit()
    db.refresh(task)
    logger.info("Task %s %s", task.id, "activated" if task.is_active else "deactivated")
    return task


def delete_task(db: Session, task_id: int) -> None:
    task = get_task_or_404(db, task_id)
    has_submissions = db.query(Submission.id).filter(Submission.task_id == task_id).first()
    if has_submissions:
        raise InvalidOperation("Cannot delete task with existing submissions. Deactivate instead.")
    db.delete(task)
    db.commit()
    logger.info("Task %s deleted", task_id)


def submission_status_map(db: Session, user_id: int, task_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
    ids = list(task_ids)
    if not ids:
        return {}
    rows = (
        db.query(Submission)
        .filter(Submission.user_id == user_id, Submission.task_id.in_(ids))
        .all()
    )
    return {
        row.task_id: {
            "has_submitted": True,
            "status": row.status,
            "score": row.score,
            "submitted_at": row.submitted_at,
        }
        for row in rows
    }


def list_tasks(
    db: Session,
    caller: Caller,
    task_type: Optional[TaskType] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "deadline",
    sort_order: str = "asc",
) -> Tuple[List[Task], Dict[str, Any], Optional[Dict[int, Dict[str, Any]]]]:
    """Page through tasks; participants also get their own submission status per task."""
    query = db.query(Task).options(joinedload(Task.creator))
    if task_type is not None:
        query = query.filter(Task.type == task_type)
    if is_active is not None:
        query = query.filter(Task.is_active == is_active)
    query = query.order_by(sort_column(TASK_SORT_COLUMNS, sort_by, sort_order, "deadline"), Task.id.asc())
    tasks, meta = paginate(query, page, limit)

    statuses = None
    if caller.is_participant:
        statuses = submission_status_map(db, caller.user_id, [task.id for task in tasks])
    return tasks, meta, statuses


def active_tasks(db: Session, caller: Caller) -> Tuple[List[Task], Optional[Dict[int, Dict[str, Any]]]]:
    tasks = (
        db.query(Task)
        .options(joinedload(Task.creator))
        .filter(Task.is_active == True)
        .order_by(Task.deadline.asc(), Task.id.asc())
        .all()
    )
    statuses = None
    if caller.is_participant:
        statuses = submission_status_map(db, caller.user_id, [task.id for task in tasks])
    return tasks, statuses


def get_task_with_stats(db: Session, caller: Caller, task_id: int) -> Tuple[Task, Dict[str, Dict[str, Any]], Optional[Submission]]:
    task = get_task_or_404(db, task_id)
    stats = {
        status.value: {"count": int(count), "avg_score": float(avg or 0)}
        for status, count, avg in (
            db.query(Submission.status, func.count(Submission.id), func.avg(Submission.score))
            .filter(Submission.task_id == task_id)
            .group_by(Submission.status)
            .all()
        )
    }

    own = None
    if caller.is_participant:
        own = (
            db.query(Submission)
            .options(joinedload(Submission.task))
            .filter(Submission.user_id == caller.user_id, Submission.task_id == task_id)
            .first()
        )
    return task, stats, own
