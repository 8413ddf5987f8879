"""Announcement visibility, read receipts and admin CRUD.

Visibility is computed against an explicit ``now`` so callers and tests can
pin the clock. Receipts are written for participants only; admins may read
any announcement without leaving a trace.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from errors import Forbidden, NotFound
from identity import ADMIN_ROLES, Caller, audience_bucket
from models import (
    Announcement,
    AnnouncementAttachment,
    AnnouncementPriority,
    AnnouncementRead,
    TargetAudience,
    User,
    UserRole,
)
from time_utils import as_utc, utc_now
from utils import paginate, sort_column

logger = logging.getLogger(__name__)

PRIORITY_RANK = {
    AnnouncementPriority.URGENT: 4,
    AnnouncementPriority.HIGH: 3,
    AnnouncementPriority.MEDIUM: 2,
    AnnouncementPriority.LOW: 1,
}
ANNOUNCEMENT_SORT_COLUMNS = {
    "created_at": Announcement.created_at,
    "expires_at": Announcement.expires_at,
    "title": Announcement.title,
}

_priority_rank = case(
    *[(Announcement.priority == priority, rank) for priority, rank in PRIORITY_RANK.items()],
    else_=0,
)


def is_expired(announcement: Announcement, now: Optional[datetime] = None) -> bool:
    if announcement.expires_at is None:
        return False
    return as_utc(announcement.expires_at) <= as_utc(now or utc_now())


def _visible_filter(query, role: UserRole, now: datetime):
    bucket = audience_bucket(role)
    return query.filter(
        Announcement.is_active == True,
        (Announcement.expires_at.is_(None)) | (Announcement.expires_at > as_utc(now)),
        Announcement.target_audience.in_([TargetAudience.ALL, bucket]),
    )


def _with_relations(query):
    return query.options(
        joinedload(Announcement.creator),
        selectinload(Announcement.attachments),
    )


def visible_to(db: Session, role: UserRole, now: Optional[datetime] = None):
    """Query for the announcements ``role`` may currently see, most pressing first."""
    query = _visible_filter(db.query(Announcement), role, now or utc_now())
    return query.order_by(
        _priority_rank.desc(),
        Announcement.created_at.desc(),
        Announcement.id.desc(),
    )


def is_visible_to(announcement: Announcement, role: UserRole, now: Optional[datetime] = None) -> bool:
    bucket = audience_bucket(role)
    return (
        bool(announcement.is_active)
        and not is_expired(announcement, now)
        and announcement.target_audience in (TargetAudience.ALL, bucket)
    )


def mark_read(db: Session, announcement_id: int, user_id: int) -> AnnouncementRead:
    """Record that ``user_id`` read the announcement; repeated calls keep one receipt."""
    if not db.query(Announcement.id).filter(Announcement.id == announcement_id).first():
        raise NotFound("Announcement")

    existing = (
        db.query(AnnouncementRead)
        .filter(AnnouncementRead.announcement_id == announcement_id, AnnouncementRead.user_id == user_id)
        .first()
    )
    if existing:
        return existing

    receipt = AnnouncementRead(announcement_id=announcement_id, user_id=user_id, read_at=utc_now())
    db.add(receipt)
    try:
        db.commit()
    except IntegrityError:
        # another request recorded the same receipt first
        db.rollback()
        return (
            db.query(AnnouncementRead)
            .filter(AnnouncementRead.announcement_id == announcement_id, AnnouncementRead.user_id == user_id)
            .one()
        )
    db.refresh(receipt)
    return receipt


def mark_read_for_caller(
    db: Session, caller: Caller, announcement_id: int, now: Optional[datetime] = None
) -> Optional[AnnouncementRead]:
    """Explicit mark-read; participants may only mark what they can see, admins leave no receipt."""
    announcement = _get_announcement_or_404(db, announcement_id)
    if not caller.is_participant:
        return None
    if not is_visible_to(announcement, caller.role, now):
        raise Forbidden()
    return mark_read(db, announcement.id, caller.user_id)


def _record_receipts(db: Session, caller: Caller, announcements: Iterable[Announcement]) -> None:
    if not caller.is_participant:
        return
    for announcement in announcements:
        mark_read(db, announcement.id, caller.user_id)


def list_for_caller(
    db: Session,
    caller: Caller,
    now: Optional[datetime] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> Tuple[List[Announcement], Optional[Dict[str, Any]]]:
    query = _with_relations(visible_to(db, caller.role, now))
    if page is None:
        announcements, meta = query.all(), None
    else:
        announcements, meta = paginate(query, page, limit or 10)
    _record_receipts(db, caller, announcements)
    return announcements, meta


def get_for_caller(db: Session, caller: Caller, announcement_id: int, now: Optional[datetime] = None) -> Announcement:
    announcement = (
        _with_relations(db.query(Announcement))
        .options(selectinload(Announcement.reads).joinedload(AnnouncementRead.user))
        .filter(Announcement.id == announcement_id)
        .first()
    )
    if not announcement:
        raise NotFound("Announcement")
    if caller.is_participant:
        if not is_visible_to(announcement, caller.role, now):
            raise Forbidden()
        mark_read(db, announcement.id, caller.user_id)
    return announcement


def unread_count(db: Session, role: UserRole, user_id: int, now: Optional[datetime] = None) -> int:
    read_ids = db.query(AnnouncementRead.announcement_id).filter(AnnouncementRead.user_id == user_id)
    query = _visible_filter(db.query(func.count(Announcement.id)), role, now or utc_now())
    return int(query.filter(~Announcement.id.in_(read_ids)).scalar() or 0)


def _in_target_audience(query, audience: TargetAudience):
    query = query.filter(User.is_active == True)
    if audience == TargetAudience.PARTICIPANTS:
        return query.filter(User.role == UserRole.PARTICIPANT)
    if audience == TargetAudience.ADMINS:
        return query.filter(User.role.in_(ADMIN_ROLES))
    return query


def _target_user_count(db: Session, audience: TargetAudience) -> int:
    return int(_in_target_audience(db.query(func.count(User.id)), audience).scalar() or 0)


def read_percentage(read_count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    ratio = Decimal(read_count) * 100 / Decimal(total)
    return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def read_statistics(db: Session, announcement_id: int) -> Dict[str, Any]:
    announcement = db.query(Announcement).filter(Announcement.id == announcement_id).first()
    if not announcement:
        raise NotFound("Announcement")

    total = _target_user_count(db, announcement.target_audience)
    # readers outside the target audience do not count towards the percentage
    receipts = (
        _in_target_audience(
            db.query(AnnouncementRead).join(User, AnnouncementRead.user_id == User.id),
            announcement.target_audience,
        )
        .options(joinedload(AnnouncementRead.user))
        .filter(AnnouncementRead.announcement_id == announcement_id)
        .order_by(AnnouncementRead.read_at.asc(), AnnouncementRead.id.asc())
        .all()
    )
    read_count = len({receipt.user_id for receipt in receipts})
    return {
        "announcement_id": announcement.id,
        "title": announcement.title,
        "target_audience": announcement.target_audience,
        "total_target_users": total,
        "read_count": read_count,
        "unread_count": max(total - read_count, 0),
        "read_percentage": read_percentage(read_count, total),
        "read_by": [
            {
                "user_id": receipt.user_id,
                "name": receipt.user.name if receipt.user else None,
                "email": receipt.user.email if receipt.user else None,
                "read_at": receipt.read_at,
            }
            for receipt in receipts
        ],
    }


def _get_announcement_or_404(db: Session, announcement_id: int) -> Announcement:
    announcement = db.query(Announcement).filter(Announcement.id == announcement_id).first()
    if not announcement:
        raise NotFound("Announcement")
    return announcement


def _attachment_rows(attachments) -> List[AnnouncementAttachment]:
    return [AnnouncementAttachment(filename=item.filename, url=item.url) for item in attachments or []]


def create_announcement(db: Session, creator_id: int, data) -> Announcement:
    announcement = Announcement(
        title=data.title,
        content=data.content,
        priority=data.priority,
        target_audience=data.target_audience,
        expires_at=as_utc(data.expires_at),
        created_by_id=creator_id,
        created_at=utc_now(),
    )
    announcement.attachments = _attachment_rows(data.attachments)
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    logger.info("Announcement %s created by user %s", announcement.id, creator_id)
    return announcement


def update_announcement(db: Session, announcement_id: int, data) -> Announcement:
    announcement = _get_announcement_or_404(db, announcement_id)
    updates = data.model_dump(exclude_unset=True, exclude={"attachments"})
    for field, value in updates.items():
        if field == "expires_at":
            value = as_utc(value)
        elif value is None:
            # only expires_at may be cleared
            continue
        setattr(announcement, field, value)
    announcement.attachments.extend(_attachment_rows(data.attachments))
    db.commit()
    db.refresh(announcement)
    return announcement


def toggle_announcement(db: Session, announcement_id: int) -> Announcement:
    announcement = _get_announcement_or_404(db, announcement_id)
    announcement.is_active = not announcement.is_active
    db.commit()
    db.refresh(announcement)
    logger.info("Announcement %s %s", announcement.id, "activated" if announcement.is_active else "deactivated")
    return announcement


def delete_announcement(db: Session, announcement_id: int) -> None:
    announcement = _get_announcement_or_404(db, announcement_id)
    db.delete(announcement)
    db.commit()
    logger.info("Announcement %s deleted", announcement_id)


def list_all_announcements(
    db: Session,
    priority: Optional[AnnouncementPriority] = None,
    target_audience: Optional[TargetAudience] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
):
    query = _with_relations(db.query(Announcement))
    if priority is not None:
        query = query.filter(Announcement.priority == priority)
    if target_audience is not None:
        query = query.filter(Announcement.target_audience == target_audience)
    if is_active is not None:
        query = query.filter(Announcement.is_active == is_active)
    query = query.order_by(
        sort_column(ANNOUNCEMENT_SORT_COLUMNS, sort_by, sort_order, "created_at"),
        Announcement.id.desc(),
    )
    return paginate(query, page, limit)
