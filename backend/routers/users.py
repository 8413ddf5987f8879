from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models import User, UserRole
from routers.shared import audit
from schemas import (
    DashboardStats,
    UserDetailResponse,
    UserListResponse,
    UserResponse,
    UserRoleUpdate,
    UserStats,
    UserStatusUpdate,
)
from security import require_admin
from user_service import dashboard_stats, deactivate_user, get_user_with_stats, list_users, set_user_active, set_user_role

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
def get_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    users, meta = list_users(db, role=role, search=search, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], pagination=meta)


@router.get("/users/dashboard-stats", response_model=DashboardStats)
def get_dashboard_stats(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return DashboardStats(**dashboard_stats(db))


@router.get("/users/{user_id}", response_model=UserDetailResponse)
def get_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user, stats = get_user_with_stats(db, user_id)
    return UserDetailResponse(user=UserResponse.model_validate(user), stats=UserStats(**stats))


@router.put("/users/{user_id}/status", response_model=UserResponse)
def update_user_status(
    user_id: int,
    payload: UserStatusUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = set_user_active(db, admin, user_id, payload.is_active)
    audit(db, admin, request, "Update user status", {"user_id": user_id, "is_active": payload.is_active})
    return UserResponse.model_validate(user)


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: int,
    payload: UserRoleUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = set_user_role(db, admin, user_id, payload.role)
    audit(db, admin, request, "Update user role", {"user_id": user_id, "role": payload.role.value})
    return UserResponse.model_validate(user)


@router.delete("/users/{user_id}")
def delete_user(user_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    deactivate_user(db, admin, user_id)
    audit(db, admin, request, "Deactivate user", {"user_id": user_id})
    return {"message": "User deactivated successfully"}
