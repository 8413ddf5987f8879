from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from auth import create_access_token, create_refresh_token, decode_token, token_claims, user_from_payload
from database import get_db
from models import User, UserRole
from routers.shared import audit
from schemas import (
    AdminRegister,
    PasswordChangeRequest,
    RefreshTokenRequest,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
    UserUpdate,
)
from security import require_superadmin, require_user
from user_service import authenticate, change_password, get_user_by_email, register_user, update_profile

router = APIRouter()


def _token_response(user: User) -> TokenResponse:
    claims = token_claims(user)
    return TokenResponse(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
        user=UserResponse.model_validate(user),
    )


@router.post("/auth/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserRegister, db: Session = Depends(get_db)):
    user = register_user(db, user_data.name, user_data.email, user_data.password)
    return _token_response(user)


@router.post("/auth/login", response_model=TokenResponse)
def login(login_data: UserLogin, db: Session = Depends(get_db)):
    user = authenticate(db, login_data.email, login_data.password)
    if not user:
        existing = get_user_by_email(db, login_data.email)
        if existing and not existing.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is inactive. Please contact administrator.",
            )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return _token_response(user)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    payload = decode_token(request.refresh_token)
    user = user_from_payload(db, payload, token_type="refresh")
    return _token_response(user)


@router.get("/auth/me", response_model=UserResponse)
def get_me(user: User = Depends(require_user)):
    return UserResponse.model_validate(user)


@router.put("/auth/me", response_model=UserResponse)
def update_me(user_data: UserUpdate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    return UserResponse.model_validate(update_profile(db, user, name=user_data.name))


@router.post("/auth/change-password")
def change_my_password(
    payload: PasswordChangeRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    change_password(db, user, payload.current_password, payload.new_password)
    return {"message": "Password changed successfully"}


@router.post("/auth/register-admin", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register_admin(
    user_data: AdminRegister,
    request: Request,
    admin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    if user_data.role not in (UserRole.ADMIN, UserRole.PARTICIPANT):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
    user = register_user(db, user_data.name, user_data.email, user_data.password, role=user_data.role)
    audit(db, admin, request, "Register admin", {"user_id": user.id, "role": user.role.value})
    return UserResponse.model_validate(user)
