import os
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from models import User, UserRole

DEFAULT_LIMIT = int(os.environ.get("LEADERBOARD_DEFAULT_LIMIT", "10"))


def leaderboard(db: Session, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Active participants by total score; equal scores keep registration order.

    Ranks are plain 1-based positions, so tied users get consecutive ranks.
    """
    users = (
        db.query(User)
        .filter(User.role == UserRole.PARTICIPANT, User.is_active == True)
        .order_by(User.total_score.desc(), User.id.asc())
        .limit(limit or DEFAULT_LIMIT)
        .all()
    )
    return [
        {
            "rank": position,
            "user_id": user.id,
            "name": user.name,
            "email": user.email,
            "total_score": user.total_score or 0,
        }
        for position, user in enumerate(users, start=1)
    ]
