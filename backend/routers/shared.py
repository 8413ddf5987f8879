from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.encoders import jsonable_encoder
import io

from announcement_service import is_expired
from models import Announcement, Attendance, Submission, Task, User
from schemas import (
    AnnouncementResponse,
    AttachmentResponse,
    AttendanceResponse,
    SubmissionResponse,
    TaskBrief,
    TaskResponse,
    UserBrief,
    UserSubmissionStatus,
    content_from_row,
)
from task_service import is_overdue
from export_service import ExportTable, json_payload, render
from utils import log_admin_action


def user_brief(user: Optional[User]) -> Optional[UserBrief]:
    return UserBrief.model_validate(user) if user else None


def submission_response(submission: Submission) -> SubmissionResponse:
    return SubmissionResponse(
        id=submission.id,
        user_id=submission.user_id,
        task_id=submission.task_id,
        submission_type=submission.submission_type,
        content=content_from_row(submission.submission_type, submission.content),
        submitted_at=submission.submitted_at,
        score=submission.score,
        feedback=submission.feedback,
        status=submission.status,
        graded_by_id=submission.graded_by_id,
        graded_at=submission.graded_at,
        is_late=bool(submission.is_late),
        user=user_brief(submission.user),
        task=TaskBrief.model_validate(submission.task) if submission.task else None,
        grader=user_brief(submission.grader),
    )


def task_response(task: Task, submission_status: Optional[Dict[str, Any]] = None, include_status: bool = False) -> TaskResponse:
    user_submission = None
    if include_status:
        user_submission = UserSubmissionStatus(**(submission_status or {"has_submitted": False}))
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        instructions=task.instructions,
        type=task.type,
        max_score=task.max_score,
        deadline=task.deadline,
        is_active=task.is_active,
        is_overdue=is_overdue(task),
        created_by=user_brief(task.creator),
        created_at=task.created_at,
        user_submission=user_submission,
    )


def attendance_response(record: Attendance) -> AttendanceResponse:
    return AttendanceResponse.model_validate(record)


def announcement_response(announcement: Announcement) -> AnnouncementResponse:
    return AnnouncementResponse(
        id=announcement.id,
        title=announcement.title,
        content=announcement.content,
        priority=announcement.priority,
        is_active=announcement.is_active,
        target_audience=announcement.target_audience,
        created_by=user_brief(announcement.creator),
        expires_at=announcement.expires_at,
        is_expired=is_expired(announcement),
        created_at=announcement.created_at,
        attachments=[AttachmentResponse.model_validate(item) for item in announcement.attachments],
    )


def audit(db, admin: User, request: Optional[Request], action: str, meta: Optional[dict] = None) -> None:
    log_admin_action(
        db,
        admin,
        action,
        request.method if request else None,
        request.url.path if request else None,
        meta,
    )


def export_response(table: ExportTable, fmt: str):
    if (fmt or "csv").lower() == "json":
        return JSONResponse(content=jsonable_encoder(json_payload(table)))
    content, media_type, filename = render(table, fmt)
    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
