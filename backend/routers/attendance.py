from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from attendance_service import (
    attendance_stats,
    can_mark_attendance,
    delete_attendance,
    list_attendance,
    mark_attendance,
    mark_attendance_for_users,
    today_attendance,
    update_attendance,
    windowed_breakdown,
)
from database import get_db
from identity import Caller
from models import AttendanceSession, AttendanceStatus, User
from routers.shared import attendance_response, audit
from schemas import (
    AttendanceBulkMark,
    AttendanceListResponse,
    AttendanceMark,
    AttendanceResponse,
    AttendanceStatsResponse,
    AttendanceUpdate,
    BulkAttendanceResponse,
    CanMarkAttendanceResponse,
    TodayAttendanceResponse,
)
from security import get_caller, require_admin, require_participant

router = APIRouter()


@router.post("/attendance/mark", response_model=AttendanceResponse, status_code=status.HTTP_201_CREATED)
def mark_own_attendance(
    payload: AttendanceMark,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    record = mark_attendance(db, caller, payload.date, payload.session, payload.status, payload.remarks)
    return attendance_response(record)


@router.post("/attendance/bulk", response_model=BulkAttendanceResponse)
def mark_bulk_attendance(
    payload: AttendanceBulkMark,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = mark_attendance_for_users(
        db, admin.id, payload.user_ids, payload.date, payload.session, payload.status, payload.remarks
    )
    audit(db, admin, request, "Bulk mark attendance", {
        "date": payload.date.isoformat(),
        "session": payload.session.value,
        "succeeded": len(result["succeeded"]),
        "failed": len(result["failed"]),
    })
    return BulkAttendanceResponse(
        succeeded=[attendance_response(r) for r in result["succeeded"]],
        failed=result["failed"],
    )


@router.get("/attendance/can-mark", response_model=CanMarkAttendanceResponse)
def check_can_mark(
    date: date,
    session: AttendanceSession,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    existing = can_mark_attendance(db, user.id, date, session)
    return CanMarkAttendanceResponse(
        can_mark=existing is None,
        already_marked=existing is not None,
        existing_record=attendance_response(existing) if existing else None,
    )


@router.get("/attendance", response_model=AttendanceListResponse)
def get_attendance(
    user_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: Optional[AttendanceSession] = None,
    status: Optional[AttendanceStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "date",
    sort_order: str = "desc",
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    if not caller.is_admin:
        user_id = caller.user_id
    records, meta = list_attendance(
        db, user_id=user_id, start=start_date, end=end_date, session=session, status=status,
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )
    stats = windowed_breakdown(db, user_id=user_id, start=start_date, end=end_date) if user_id is not None else None
    return AttendanceListResponse(
        attendance=[attendance_response(r) for r in records],
        pagination=meta,
        stats=stats,
    )


@router.get("/attendance/stats", response_model=AttendanceStatsResponse)
def get_attendance_stats(
    user_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    if not caller.is_admin:
        user_id = caller.user_id
    return AttendanceStatsResponse(**attendance_stats(db, user_id=user_id, start=start_date, end=end_date))


@router.get("/attendance/today", response_model=TodayAttendanceResponse)
def get_today_attendance(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    result = today_attendance(db)
    return TodayAttendanceResponse(
        date=result["date"],
        attendance=[attendance_response(r) for r in result["attendance"]],
        stats=result["stats"],
    )


@router.put("/attendance/{attendance_id}", response_model=AttendanceResponse)
def edit_attendance(
    attendance_id: int,
    payload: AttendanceUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    record = update_attendance(db, attendance_id, status=payload.status, remarks=payload.remarks)
    audit(db, admin, request, "Update attendance", {"attendance_id": attendance_id})
    return attendance_response(record)


@router.delete("/attendance/{attendance_id}")
def remove_attendance(
    attendance_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    delete_attendance(db, attendance_id)
    audit(db, admin, request, "Delete attendance", {"attendance_id": attendance_id})
    return {"message": "Attendance record deleted successfully"}
