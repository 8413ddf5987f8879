import csv
import io
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from openpyxl import Workbook
from sqlalchemy.orm import Session, joinedload

from errors import InvalidOperation, NotFound
from models import (
    Attendance,
    AttendanceSession,
    AttendanceStatus,
    Submission,
    SubmissionStatus,
    User,
    UserRole,
)
from time_utils import as_utc, ensure_timezone

EXPORT_FORMATS = ("csv", "xlsx", "json")
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class ExportTable:
    name: str
    columns: List[Tuple[str, str]]
    records: List[Dict[str, Any]] = field(default_factory=list)
    document: Optional[Dict[str, Any]] = None

    @property
    def headers(self) -> List[str]:
        return [title for _, title in self.columns]

    def rows(self) -> List[List[Any]]:
        return [[record.get(key) for key, _ in self.columns] for record in self.records]


def _iso(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def _average(total: int, count: int) -> float:
    return round(total / count, 2) if count else 0


def attendance_export(
    db: Session,
    start: Optional[date] = None,
    end: Optional[date] = None,
    session: Optional[AttendanceSession] = None,
    status: Optional[AttendanceStatus] = None,
) -> ExportTable:
    query = db.query(Attendance).options(joinedload(Attendance.user))
    if start is not None:
        query = query.filter(Attendance.date >= start)
    if end is not None:
        query = query.filter(Attendance.date <= end)
    if session is not None:
        query = query.filter(Attendance.session == session)
    if status is not None:
        query = query.filter(Attendance.status == status)
    records = query.order_by(Attendance.date.desc(), Attendance.user_id.asc()).all()
    if not records:
        raise NotFound("Attendance record", "No attendance records found for the specified criteria")

    return ExportTable(
        name="attendance",
        columns=[
            ("name", "Name"),
            ("email", "Email"),
            ("date", "Date"),
            ("session", "Session"),
            ("status", "Status"),
            ("marked_at", "Marked At"),
            ("remarks", "Remarks"),
        ],
        records=[
            {
                "name": record.user.name,
                "email": record.user.email,
                "date": _iso(record.date),
                "session": record.session.value,
                "status": record.status.value,
                "marked_at": _iso(record.marked_at),
                "remarks": record.remarks or "",
            }
            for record in records
        ],
    )


def submissions_export(
    db: Session,
    task_id: Optional[int] = None,
    status: Optional[SubmissionStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> ExportTable:
    query = db.query(Submission).options(
        joinedload(Submission.user),
        joinedload(Submission.task),
        joinedload(Submission.grader),
    )
    if task_id is not None:
        query = query.filter(Submission.task_id == task_id)
    if status is not None:
        query = query.filter(Submission.status == status)
    if start is not None:
        query = query.filter(Submission.submitted_at >= as_utc(start))
    if end is not None:
        query = query.filter(Submission.submitted_at <= as_utc(end))
    submissions = query.order_by(Submission.submitted_at.desc(), Submission.id.desc()).all()
    if not submissions:
        raise NotFound("Submission", "No submissions found for the specified criteria")

    records = []
    for submission in submissions:
        content = submission.content or {}
        records.append({
            "participant_name": submission.user.name,
            "participant_email": submission.user.email,
            "task_title": submission.task.title,
            "task_type": submission.task.type.value,
            "max_score": submission.task.max_score,
            "submission_type": submission.submission_type.value,
            "submitted_at": _iso(submission.submitted_at),
            "status": submission.status.value,
            "score": submission.score or 0,
            "feedback": submission.feedback or "",
            "graded_by": submission.grader.name if submission.grader else "",
            "graded_at": _iso(submission.graded_at),
            "is_late": _yes_no(submission.is_late),
            "file_url": content.get("file_url", ""),
            "file_name": content.get("file_name", ""),
            "link": content.get("link", ""),
            "text": content.get("text", ""),
        })

    return ExportTable(
        name="submissions",
        columns=[
            ("participant_name", "Participant Name"),
            ("participant_email", "Participant Email"),
            ("task_title", "Task Title"),
            ("task_type", "Task Type"),
            ("max_score", "Max Score"),
            ("submission_type", "Submission Type"),
            ("submitted_at", "Submitted At"),
            ("status", "Status"),
            ("score", "Score"),
            ("feedback", "Feedback"),
            ("graded_by", "Graded By"),
            ("graded_at", "Graded At"),
            ("is_late", "Late Submission"),
            ("file_url", "File URL"),
            ("file_name", "File Name"),
            ("link", "Link"),
            ("text", "Text Content"),
        ],
        records=records,
    )


def scores_export(db: Session, limit: Optional[int] = None) -> ExportTable:
    query = (
        db.query(User)
        .filter(User.role == UserRole.PARTICIPANT, User.is_active == True)
        .order_by(User.total_score.desc(), User.id.asc())
    )
    if limit:
        query = query.limit(limit)
    participants = query.all()
    if not participants:
        raise NotFound("Participant", "No participants found")

    graded_by_user: Dict[int, List[Submission]] = {}
    for submission in (
        db.query(Submission)
        .options(joinedload(Submission.task))
        .filter(
            Submission.user_id.in_([user.id for user in participants]),
            Submission.status == SubmissionStatus.GRADED,
        )
        .order_by(Submission.id.asc())
        .all()
    ):
        graded_by_user.setdefault(submission.user_id, []).append(submission)

    records = []
    for position, user in enumerate(participants, start=1):
        graded = graded_by_user.get(user.id, [])
        task_scores = [
            {"task_title": sub.task.title, "task_type": sub.task.type.value, "score": sub.score or 0}
            for sub in graded
        ]
        records.append({
            "rank": position,
            "name": user.name,
            "email": user.email,
            "total_score": user.total_score,
            "registration_date": _iso(as_utc(user.created_at).date()) if user.created_at else "",
            "graded_submissions": len(graded),
            "average_score": _average(user.total_score, len(graded)),
            "task_scores": json.dumps(task_scores),
        })

    return ExportTable(
        name="scores",
        columns=[
            ("rank", "Rank"),
            ("name", "Name"),
            ("email", "Email"),
            ("total_score", "Total Score"),
            ("registration_date", "Registration Date"),
            ("graded_submissions", "Graded Submissions"),
            ("average_score", "Average Score"),
            ("task_scores", "Individual Task Scores (JSON)"),
        ],
        records=records,
    )


def participant_report(db: Session, participant_id: int) -> ExportTable:
    """Everything recorded for one participant.

    The JSON form is a nested document; the tabular forms flatten it to one
    row per submission with the attendance status on the submission date.
    """
    participant = db.query(User).filter(User.id == participant_id).first()
    if not participant:
        raise NotFound("Participant")

    attendance = (
        db.query(Attendance)
        .filter(Attendance.user_id == participant_id)
        .order_by(Attendance.date.desc(), Attendance.id.asc())
        .all()
    )
    submissions = (
        db.query(Submission)
        .options(joinedload(Submission.task), joinedload(Submission.grader))
        .filter(Submission.user_id == participant_id)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .all()
    )
    graded_count = sum(1 for sub in submissions if sub.status == SubmissionStatus.GRADED)
    status_by_day: Dict[date, str] = {}
    for record in attendance:
        status_by_day.setdefault(record.date, record.status.value)

    document = {
        "participant": {
            "name": participant.name,
            "email": participant.email,
            "total_score": participant.total_score,
            "registration_date": _iso(as_utc(participant.created_at).date()) if participant.created_at else "",
        },
        "attendance_summary": {
            "total_sessions": len(attendance),
            "present": sum(1 for a in attendance if a.status == AttendanceStatus.PRESENT),
            "absent": sum(1 for a in attendance if a.status == AttendanceStatus.ABSENT),
            "late": sum(1 for a in attendance if a.status == AttendanceStatus.LATE),
        },
        "submissions_summary": {
            "total_submissions": len(submissions),
            "graded_submissions": graded_count,
            "average_score": _average(participant.total_score, graded_count),
        },
        "detailed_records": {
            "attendance": [
                {
                    "date": _iso(a.date),
                    "session": a.session.value,
                    "status": a.status.value,
                    "remarks": a.remarks or "",
                }
                for a in attendance
            ],
            "submissions": [
                {
                    "task_title": s.task.title,
                    "task_type": s.task.type.value,
                    "max_score": s.task.max_score,
                    "submitted_at": _iso(s.submitted_at),
                    "score": s.score or 0,
                    "feedback": s.feedback or "",
                    "graded_by": s.grader.name if s.grader else "",
                    "is_late": _yes_no(s.is_late),
                }
                for s in submissions
            ],
        },
    }

    records = [
        {
            "name": participant.name,
            "email": participant.email,
            "total_score": participant.total_score,
            "task_title": s.task.title,
            "task_type": s.task.type.value,
            "max_score": s.task.max_score,
            "submitted_at": _iso(s.submitted_at),
            "score": s.score or 0,
            "feedback": s.feedback or "",
            "is_late": _yes_no(s.is_late),
            "attendance_on_submission_date": status_by_day.get(ensure_timezone(as_utc(s.submitted_at)).date(), "Not marked"),
        }
        for s in submissions
    ]

    return ExportTable(
        name=f"participant_report_{participant.id}",
        columns=[
            ("name", "Name"),
            ("email", "Email"),
            ("total_score", "Total Score"),
            ("task_title", "Task Title"),
            ("task_type", "Task Type"),
            ("max_score", "Max Score"),
            ("submitted_at", "Submitted At"),
            ("score", "Score"),
            ("feedback", "Feedback"),
            ("is_late", "Late Submission"),
            ("attendance_on_submission_date", "Attendance On Submission Date"),
        ],
        records=records,
        document=document,
    )


def export_to_csv(headers: List[str], rows: List[List[object]]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    writer.writerows(rows)
    return output.getvalue().encode("utf-8")


def export_to_xlsx(headers: List[str], rows: List[List[object]], title: Optional[str] = None) -> bytes:
    wb = Workbook()
    ws = wb.active
    if title:
        ws.title = title[:31]
    ws.append(headers)
    for row in rows:
        ws.append(row)
    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out.read()


def render(table: ExportTable, fmt: str) -> Tuple[bytes, str, str]:
    """Return ``(content, media_type, filename)`` for a csv or xlsx download."""
    fmt = (fmt or "csv").lower()
    if fmt == "csv":
        return export_to_csv(table.headers, table.rows()), "text/csv", f"{table.name}.csv"
    if fmt == "xlsx":
        return export_to_xlsx(table.headers, table.rows(), title=table.name), XLSX_MEDIA_TYPE, f"{table.name}.xlsx"
    raise InvalidOperation(f"Unsupported export format: {fmt}")


def json_payload(table: ExportTable) -> Any:
    return table.document if table.document is not None else table.records
