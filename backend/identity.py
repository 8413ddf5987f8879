from dataclasses import dataclass

from errors import Forbidden
from models import TargetAudience, User, UserRole

ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPERADMIN)


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_participant(self) -> bool:
        return self.role == UserRole.PARTICIPANT

    @classmethod
    def from_user(cls, user: User) -> "Caller":
        return cls(user_id=user.id, role=user.role)


def audience_bucket(role: UserRole) -> TargetAudience:
    if role == UserRole.PARTICIPANT:
        return TargetAudience.PARTICIPANTS
    if role in ADMIN_ROLES:
        return TargetAudience.ADMINS
    raise Forbidden("Role is not allowed to view announcements")


def require_admin_caller(caller: Caller) -> None:
    if not caller.is_admin:
        raise Forbidden("Admin access required")


def require_participant_caller(caller: Caller) -> None:
    if not caller.is_participant:
        raise Forbidden("Participant access required")
