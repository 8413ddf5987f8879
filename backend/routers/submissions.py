from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from database import get_db
from grading import GradingOutcome, grade_submission, return_submission, update_grade
from identity import Caller
from models import SubmissionStatus, User
from routers.shared import audit, submission_response
from schemas import (
    GradeRequest,
    GradeResponse,
    PresignResponse,
    ReturnRequest,
    SubmissionCreate,
    SubmissionDeleteResponse,
    SubmissionListResponse,
    SubmissionPresignRequest,
    SubmissionResponse,
)
from security import get_caller, require_admin, require_participant
from storage import presign_submission_upload
from submission_service import (
    delete_submission,
    get_submission,
    get_user_submission_for_task,
    list_submissions,
    pending_submissions,
    submit_task,
)
from task_service import get_task_or_404

router = APIRouter()


def _grade_response(outcome: GradingOutcome) -> GradeResponse:
    return GradeResponse(
        submission=submission_response(outcome.submission),
        total_score=outcome.total_score,
        score_synced=outcome.score_synced,
    )


@router.post("/submissions", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
def create_submission(
    payload: SubmissionCreate,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    submission = submit_task(db, caller, payload.task_id, payload.content)
    return submission_response(submission)


@router.post("/submissions/presign", response_model=PresignResponse)
def presign_submission_file(
    payload: SubmissionPresignRequest,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    task = get_task_or_404(db, payload.task_id)
    return presign_submission_upload(user.id, task.id, payload.filename, payload.content_type)


@router.get("/submissions", response_model=SubmissionListResponse)
def get_submissions(
    status: Optional[SubmissionStatus] = None,
    task_id: Optional[int] = None,
    user_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "submitted_at",
    sort_order: str = "desc",
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    submissions, meta = list_submissions(
        db, caller, status=status, task_id=task_id, user_id=user_id,
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )
    return SubmissionListResponse(submissions=[submission_response(s) for s in submissions], pagination=meta)


@router.get("/submissions/pending", response_model=List[SubmissionResponse])
def get_pending_submissions(
    limit: int = Query(10, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [submission_response(s) for s in pending_submissions(db, limit)]


@router.get("/submissions/task/{task_id}/mine", response_model=Optional[SubmissionResponse])
def get_my_submission_for_task(
    task_id: int,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    get_task_or_404(db, task_id)
    submission = get_user_submission_for_task(db, user.id, task_id)
    return submission_response(submission) if submission else None


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
def get_submission_by_id(submission_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return submission_response(get_submission(db, caller, submission_id))


@router.put("/submissions/{submission_id}/grade", response_model=GradeResponse)
def grade(
    submission_id: int,
    payload: GradeRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    outcome = grade_submission(db, submission_id, payload.score, payload.feedback, admin.id)
    audit(db, admin, request, "Grade submission", {"submission_id": submission_id, "score": payload.score})
    return _grade_response(outcome)


@router.put("/submissions/{submission_id}/update-grade", response_model=GradeResponse)
def regrade(
    submission_id: int,
    payload: GradeRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    outcome = update_grade(db, submission_id, payload.score, payload.feedback, admin.id)
    audit(db, admin, request, "Update grade", {"submission_id": submission_id, "score": payload.score})
    return _grade_response(outcome)


@router.put("/submissions/{submission_id}/return", response_model=GradeResponse)
def send_back(
    submission_id: int,
    payload: ReturnRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    outcome = return_submission(db, submission_id, payload.feedback, admin.id)
    audit(db, admin, request, "Return submission", {"submission_id": submission_id})
    return _grade_response(outcome)


@router.delete("/submissions/{submission_id}", response_model=SubmissionDeleteResponse)
def remove_submission(submission_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    outcome = delete_submission(db, caller, submission_id)
    return SubmissionDeleteResponse(
        message="Submission deleted successfully",
        total_score=outcome.total_score,
        score_synced=outcome.score_synced,
    )
