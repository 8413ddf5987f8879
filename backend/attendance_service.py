import logging
from collections import OrderedDict
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from errors import DuplicateEntry, NotFound
from guards import insert_unique
from identity import Caller, require_participant_caller
from models import Attendance, AttendanceSession, AttendanceStatus, User
from time_utils import today_tz, trailing_window, utc_now
from utils import paginate, sort_column

logger = logging.getLogger(__name__)

ATTENDANCE_SORT_COLUMNS = {
    "date": Attendance.date,
    "marked_at": Attendance.marked_at,
    "status": Attendance.status,
}
DUPLICATE_ATTENDANCE_MESSAGE = "Attendance already marked for this session"


def empty_breakdown() -> Dict[str, Any]:
    return {"present": 0, "absent": 0, "late": 0, "total": 0, "rate": 0.0}


def finalize_breakdown(counts: Dict[str, Any]) -> Dict[str, Any]:
    total = counts["present"] + counts["absent"] + counts["late"]
    counts["total"] = total
    counts["rate"] = (counts["present"] / total) if total > 0 else 0.0
    return counts


def breakdown_from_rows(rows: Iterable[Tuple[AttendanceStatus, int]]) -> Dict[str, Any]:
    counts = empty_breakdown()
    for status_value, count in rows:
        counts[status_value.value] += int(count)
    return finalize_breakdown(counts)


def _existing_record_query(db: Session, user_id: int, day: date, session: AttendanceSession):
    return db.query(Attendance).filter(
        Attendance.user_id == user_id,
        Attendance.date == day,
        Attendance.session == session,
    )


def mark_attendance(
    db: Session,
    caller: Caller,
    day: date,
    session: AttendanceSession,
    status: AttendanceStatus = AttendanceStatus.PRESENT,
    remarks: Optional[str] = None,
) -> Attendance:
    require_participant_caller(caller)
    record = Attendance(
        user_id=caller.user_id,
        date=day,
        session=session,
        status=status,
        marked_at=utc_now(),
        remarks=remarks,
    )
    existing = _existing_record_query(db, caller.user_id, day, session)
    insert_unique(db, record, existing, "user_id+date+session", DUPLICATE_ATTENDANCE_MESSAGE)
    logger.info("User %s marked %s for %s/%s", caller.user_id, status.value, day, session.value)
    return record


def mark_attendance_for_users(
    db: Session,
    admin_id: int,
    user_ids: Iterable[int],
    day: date,
    session: AttendanceSession,
    status: AttendanceStatus = AttendanceStatus.PRESENT,
    remarks: Optional[str] = None,
) -> Dict[str, List[Any]]:
    """Mark one session for many users; each user succeeds or fails on its own.

    Every user is written in its own transaction, so a duplicate for one
    user neither aborts nor rolls back the others.
    """
    succeeded: List[Attendance] = []
    failed: List[Dict[str, Any]] = []

    for user_id in OrderedDict.fromkeys(user_ids):
        try:
            user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
            if not user:
                raise NotFound("User")
            record = Attendance(
                user_id=user_id,
                date=day,
                session=session,
                status=status,
                marked_at=utc_now(),
                marked_by_id=admin_id,
                remarks=remarks,
            )
            existing = _existing_record_query(db, user_id, day, session)
            succeeded.append(insert_unique(db, record, existing, "user_id+date+session", DUPLICATE_ATTENDANCE_MESSAGE))
        except (DuplicateEntry, NotFound) as exc:
            logger.warning("Bulk attendance skipped user %s: %s", user_id, exc.message)
            failed.append({"user_id": user_id, "error": exc.kind, "reason": exc.message})

    logger.info(
        "Bulk attendance for %s/%s by admin %s: %s succeeded, %s failed",
        day, session.value, admin_id, len(succeeded), len(failed),
    )
    return {"succeeded": succeeded, "failed": failed}


def can_mark_attendance(db: Session, user_id: int, day: date, session: AttendanceSession) -> Optional[Attendance]:
    """Return the existing record for the slot, or None when it is still free."""
    return _existing_record_query(db, user_id, day, session).first()


def list_attendance(
    db: Session,
    user_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    session: Optional[AttendanceSession] = None,
    status: Optional[AttendanceStatus] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "date",
    sort_order: str = "desc",
):
    query = db.query(Attendance).options(joinedload(Attendance.user))
    if user_id is not None:
        query = query.filter(Attendance.user_id == user_id)
    if start is not None:
        query = query.filter(Attendance.date >= start)
    if end is not None:
        query = query.filter(Attendance.date <= end)
    if session is not None:
        query = query.filter(Attendance.session == session)
    if status is not None:
        query = query.filter(Attendance.status == status)
    query = query.order_by(
        sort_column(ATTENDANCE_SORT_COLUMNS, sort_by, sort_order, "date"),
        Attendance.session.asc(),
        Attendance.id.asc(),
    )
    return paginate(query, page, limit)


def get_attendance_or_404(db: Session, attendance_id: int) -> Attendance:
    record = db.query(Attendance).filter(Attendance.id == attendance_id).first()
    if not record:
        raise NotFound("Attendance record")
    return record


def update_attendance(
    db: Session,
    attendance_id: int,
    status: Optional[AttendanceStatus] = None,
    remarks: Optional[str] = None,
) -> Attendance:
    record = get_attendance_or_404(db, attendance_id)
    if status is not None:
        record.status = status
    if remarks is not None:
        record.remarks = remarks
    db.commit()
    db.refresh(record)
    return record


def delete_attendance(db: Session, attendance_id: int) -> None:
    record = get_attendance_or_404(db, attendance_id)
    db.delete(record)
    db.commit()


def attendance_breakdown(
    db: Session,
    user_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Dict[str, Any]:
    query = db.query(Attendance.status, func.count(Attendance.id))
    if user_id is not None:
        query = query.filter(Attendance.user_id == user_id)
    if start is not None:
        query = query.filter(Attendance.date >= start)
    if end is not None:
        query = query.filter(Attendance.date <= end)
    return breakdown_from_rows(query.group_by(Attendance.status).all())


def windowed_breakdown(
    db: Session,
    user_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Breakdown over the trailing window when no bounds are given."""
    start_date, end_date = trailing_window(start, end, today=today)
    return attendance_breakdown(db, user_id=user_id, start=start_date, end=end_date)


def attendance_stats(
    db: Session,
    user_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    start_date, end_date = trailing_window(start, end, today=today)

    base = db.query(Attendance).filter(Attendance.date >= start_date, Attendance.date <= end_date)
    if user_id is not None:
        base = base.filter(Attendance.user_id == user_id)
    window = base.subquery()

    overall = breakdown_from_rows(
        db.query(window.c.status, func.count(window.c.id)).group_by(window.c.status).all()
    )

    by_day: Dict[date, Dict[str, Any]] = {}
    for day, status_value, count in (
        db.query(window.c.date, window.c.status, func.count(window.c.id))
        .group_by(window.c.date, window.c.status)
        .all()
    ):
        by_day.setdefault(day, empty_breakdown())[status_value.value] += int(count)
    daily_trends = [
        {"date": day, "breakdown": finalize_breakdown(by_day[day])}
        for day in sorted(by_day)
    ]

    per_user: Dict[int, Dict[str, Any]] = {}
    if user_id is None:
        for row_user_id, status_value, count in (
            db.query(window.c.user_id, window.c.status, func.count(window.c.id))
            .group_by(window.c.user_id, window.c.status)
            .all()
        ):
            per_user.setdefault(row_user_id, empty_breakdown())[status_value.value] += int(count)
        per_user = {key: finalize_breakdown(value) for key, value in sorted(per_user.items())}

    return {
        "start_date": start_date,
        "end_date": end_date,
        "overall": overall,
        "daily_trends": daily_trends,
        "per_user": per_user,
    }


def today_attendance(db: Session, today: Optional[date] = None) -> Dict[str, Any]:
    day = today or today_tz()
    records = (
        db.query(Attendance)
        .options(joinedload(Attendance.user))
        .filter(Attendance.date == day)
        .order_by(Attendance.session.asc(), Attendance.marked_at.desc())
        .all()
    )
    return {
        "date": day,
        "attendance": records,
        "stats": attendance_breakdown(db, start=day, end=day),
    }
