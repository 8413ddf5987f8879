import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attendance_service import attendance_breakdown
from auth import get_password_hash, verify_password
from errors import DuplicateEntry, Forbidden, InvalidOperation, NotFound
from identity import ADMIN_ROLES
from models import Attendance, Submission, SubmissionStatus, User, UserRole
from time_utils import today_tz, utc_now
from utils import paginate, sort_column

logger = logging.getLogger(__name__)

USER_SORT_COLUMNS = {
    "created_at": User.created_at,
    "name": User.name,
    "email": User.email,
    "total_score": User.total_score,
}
ASSIGNABLE_ROLES = (UserRole.PARTICIPANT, UserRole.ADMIN)


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User")
    return user


def register_user(db: Session, name: str, email: str, password: str, role: UserRole = UserRole.PARTICIPANT) -> User:
    email = normalize_email(email)
    if get_user_by_email(db, email):
        raise DuplicateEntry("email", "User already exists with this email")

    user = User(
        name=name.strip(),
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        is_active=True,
        total_score=0,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateEntry("email", "User already exists with this email") from exc
    db.refresh(user)
    logger.info("Registered %s %s", role.value, user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    """Return the user for valid credentials; inactive accounts never authenticate."""
    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def update_profile(db: Session, user: User, name: Optional[str] = None) -> User:
    if name:
        user.name = name.strip()
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.hashed_password):
        raise InvalidOperation("Current password is incorrect")
    user.hashed_password = get_password_hash(new_password)
    db.commit()


def get_user_with_stats(db: Session, user_id: int) -> Tuple[User, Dict[str, Any]]:
    user = get_user_or_404(db, user_id)
    total_submissions = db.query(func.count(Submission.id)).filter(Submission.user_id == user_id).scalar() or 0
    graded_submissions = (
        db.query(func.count(Submission.id))
        .filter(Submission.user_id == user_id, Submission.status == SubmissionStatus.GRADED)
        .scalar()
        or 0
    )
    stats = {
        "total_submissions": int(total_submissions),
        "graded_submissions": int(graded_submissions),
        "attendance": attendance_breakdown(db, user_id=user_id),
    }
    return user, stats


def list_users(
    db: Session,
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Tuple[List[User], Dict[str, Any]]:
    query = db.query(User)
    if role is not None:
        query = query.filter(User.role == role)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    query = query.order_by(sort_column(USER_SORT_COLUMNS, sort_by, sort_order, "created_at"), User.id.desc())
    return paginate(query, page, limit)


def set_user_active(db: Session, actor: User, user_id: int, is_active: bool) -> User:
    user = get_user_or_404(db, user_id)
    if user.id == actor.id and not is_active:
        raise InvalidOperation("Cannot deactivate your own account")
    if user.role == UserRole.SUPERADMIN and actor.role != UserRole.SUPERADMIN:
        raise Forbidden("Superadmin access required")
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    logger.info("User %s %s by user %s", user.id, "activated" if is_active else "deactivated", actor.id)
    return user


def deactivate_user(db: Session, actor: User, user_id: int) -> User:
    """Soft delete: the account is disabled so its submissions and attendance survive."""
    return set_user_active(db, actor, user_id, False)


def set_user_role(db: Session, actor: User, user_id: int, role: UserRole) -> User:
    if role not in ASSIGNABLE_ROLES:
        raise InvalidOperation("Invalid role. Must be either participant or admin")
    user = get_user_or_404(db, user_id)
    if user.id == actor.id:
        raise InvalidOperation("Cannot change your own role")
    if user.role == UserRole.SUPERADMIN:
        raise Forbidden("Cannot change the role of a superadmin")
    if (role == UserRole.ADMIN or user.role in ADMIN_ROLES) and actor.role != UserRole.SUPERADMIN:
        raise Forbidden("Superadmin access required")
    user.role = role
    db.commit()
    db.refresh(user)
    logger.info("User %s role set to %s by user %s", user.id, role.value, actor.id)
    return user


def dashboard_stats(db: Session, today: Optional[date] = None) -> Dict[str, Dict[str, int]]:
    day = today or today_tz()
    by_role = {role: 0 for role in UserRole}
    for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all():
        by_role[role] = int(count)
    recent = (
        db.query(func.count(User.id))
        .filter(User.created_at >= utc_now() - timedelta(days=30))
        .scalar()
        or 0
    )

    by_status = {status: 0 for status in SubmissionStatus}
    for status, count in db.query(Submission.status, func.count(Submission.id)).group_by(Submission.status).all():
        by_status[status] = int(count)

    today_count = db.query(func.count(Attendance.id)).filter(Attendance.date == day).scalar() or 0

    return {
        "users": {
            "total": sum(by_role.values()),
            "participants": by_role[UserRole.PARTICIPANT],
            "admins": by_role[UserRole.ADMIN] + by_role[UserRole.SUPERADMIN],
            "recent_registrations": int(recent),
        },
        "submissions": {
            "total": sum(by_status.values()),
            "pending": by_status[SubmissionStatus.SUBMITTED],
            "graded": by_status[SubmissionStatus.GRADED],
            "returned": by_status[SubmissionStatus.RETURNED],
        },
        "attendance": {
            "today": int(today_count),
        },
    }
