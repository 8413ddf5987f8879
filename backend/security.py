from fastapi import Depends, HTTPException, status

from auth import get_current_user
from identity import ADMIN_ROLES, Caller
from models import User, UserRole


def require_user(user: User = Depends(get_current_user)) -> User:
    return user


def require_role(*roles: UserRole):
    def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return _checker


def require_admin(user: User = Depends(require_role(*ADMIN_ROLES))) -> User:
    return user


def require_participant(user: User = Depends(require_role(UserRole.PARTICIPANT))) -> User:
    return user


def require_superadmin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.SUPERADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Superadmin access required")
    return user


def get_caller(user: User = Depends(get_current_user)) -> Caller:
    return Caller.from_user(user)
