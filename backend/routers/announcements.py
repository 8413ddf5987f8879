from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from announcement_service import (
    create_announcement,
    delete_announcement,
    get_for_caller,
    list_all_announcements,
    list_for_caller,
    mark_read_for_caller,
    read_statistics,
    toggle_announcement,
    unread_count,
    update_announcement,
)
from database import get_db
from identity import Caller
from models import AnnouncementPriority, TargetAudience, User
from routers.shared import announcement_response, audit
from schemas import (
    AnnouncementCreate,
    AnnouncementListResponse,
    AnnouncementResponse,
    AnnouncementUpdate,
    PresignRequest,
    PresignResponse,
    ReadStatisticsResponse,
    UnreadCountResponse,
)
from security import get_caller, require_admin
from storage import presign_attachment_upload

router = APIRouter()


@router.get("/announcements/active", response_model=AnnouncementListResponse)
def get_active_announcements(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    announcements, _ = list_for_caller(db, caller)
    return AnnouncementListResponse(announcements=[announcement_response(a) for a in announcements])


@router.get("/announcements/unread-count", response_model=UnreadCountResponse)
def get_unread_count(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return UnreadCountResponse(unread_count=unread_count(db, caller.role, caller.user_id))


@router.get("/announcements", response_model=AnnouncementListResponse)
def get_announcements(
    priority: Optional[AnnouncementPriority] = None,
    target_audience: Optional[TargetAudience] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    if caller.is_admin:
        announcements, meta = list_all_announcements(
            db, priority=priority, target_audience=target_audience, is_active=is_active,
            page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
        )
    else:
        announcements, meta = list_for_caller(db, caller, page=page, limit=limit)
    return AnnouncementListResponse(announcements=[announcement_response(a) for a in announcements], pagination=meta)


@router.post("/announcements", response_model=AnnouncementResponse, status_code=status.HTTP_201_CREATED)
def add_announcement(
    payload: AnnouncementCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    announcement = create_announcement(db, admin.id, payload)
    audit(db, admin, request, "Create announcement", {"announcement_id": announcement.id})
    return announcement_response(announcement)


@router.post("/announcements/attachments/presign", response_model=PresignResponse)
def presign_attachment(payload: PresignRequest, admin: User = Depends(require_admin)):
    return presign_attachment_upload(payload.filename, payload.content_type)


@router.get("/announcements/{announcement_id}/read-stats", response_model=ReadStatisticsResponse)
def get_read_stats(announcement_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return ReadStatisticsResponse(**read_statistics(db, announcement_id))


@router.post("/announcements/{announcement_id}/mark-read")
def mark_announcement_read(announcement_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    mark_read_for_caller(db, caller, announcement_id)
    return {"message": "Announcement marked as read"}


@router.patch("/announcements/{announcement_id}/toggle-status", response_model=AnnouncementResponse)
def toggle_announcement_status(
    announcement_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    announcement = toggle_announcement(db, announcement_id)
    audit(db, admin, request, "Toggle announcement", {"announcement_id": announcement_id, "is_active": announcement.is_active})
    return announcement_response(announcement)


@router.get("/announcements/{announcement_id}", response_model=AnnouncementResponse)
def get_announcement(announcement_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    return announcement_response(get_for_caller(db, caller, announcement_id))


@router.put("/announcements/{announcement_id}", response_model=AnnouncementResponse)
def edit_announcement(
    announcement_id: int,
    payload: AnnouncementUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    announcement = update_announcement(db, announcement_id, payload)
    audit(db, admin, request, "Update announcement", {"announcement_id": announcement_id})
    return announcement_response(announcement)


@router.delete("/announcements/{announcement_id}")
def remove_announcement(
    announcement_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    delete_announcement(db, announcement_id)
    audit(db, admin, request, "Delete announcement", {"announcement_id": announcement_id})
    return {"message": "Announcement deleted successfully"}
