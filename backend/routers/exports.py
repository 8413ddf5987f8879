from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from export_service import attendance_export, participant_report, scores_export, submissions_export
from models import AttendanceSession, AttendanceStatus, SubmissionStatus, User
from routers.shared import export_response
from security import require_admin

router = APIRouter()

FORMAT_PATTERN = "^(csv|xlsx|json)$"


@router.get("/exports/attendance")
def export_attendance(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: Optional[AttendanceSession] = None,
    status: Optional[AttendanceStatus] = None,
    format: str = Query("csv", pattern=FORMAT_PATTERN),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return export_response(attendance_export(db, start=start_date, end=end_date, session=session, status=status), format)


@router.get("/exports/submissions")
def export_submissions(
    task_id: Optional[int] = None,
    status: Optional[SubmissionStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    format: str = Query("csv", pattern=FORMAT_PATTERN),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return export_response(submissions_export(db, task_id=task_id, status=status, start=start_date, end=end_date), format)


@router.get("/exports/scores")
def export_scores(
    limit: Optional[int] = Query(None, ge=1),
    format: str = Query("csv", pattern=FORMAT_PATTERN),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return export_response(scores_export(db, limit=limit), format)


@router.get("/exports/participants/{participant_id}/report")
def export_participant_report(
    participant_id: int,
    format: str = Query("csv", pattern=FORMAT_PATTERN),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return export_response(participant_report(db, participant_id), format)
