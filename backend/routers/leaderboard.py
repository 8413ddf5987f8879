from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from leaderboard import leaderboard
from models import User
from schemas import LeaderboardEntry
from security import require_user

router = APIRouter()


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def get_leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=500),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    return [LeaderboardEntry(**row) for row in leaderboard(db, limit)]
