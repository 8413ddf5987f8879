from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import List

from database import get_db
from models import AdminLog, User
from routers.shared import audit
from schemas import AdminLogResponse, RecomputeAllResponse, RecomputeResponse
from score_aggregator import recompute_all_scores, recompute_total_score
from security import require_superadmin

router = APIRouter()


@router.post("/superadmin/scores/recompute", response_model=RecomputeAllResponse)
def recompute_scores(
    request: Request,
    admin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    totals = recompute_all_scores(db)
    audit(db, admin, request, "Recompute all scores", {"users_processed": len(totals)})
    return RecomputeAllResponse(users_processed=len(totals), totals=totals)


@router.post("/superadmin/scores/recompute/{user_id}", response_model=RecomputeResponse)
def recompute_user_score(
    user_id: int,
    request: Request,
    admin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
):
    total = recompute_total_score(db, user_id)
    audit(db, admin, request, "Recompute score", {"user_id": user_id, "total_score": total})
    return RecomputeResponse(user_id=user_id, total_score=total)


@router.get("/superadmin/logs", response_model=List[AdminLogResponse])
def get_admin_logs(
    _: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
    limit: int = 50
):
    logs = (
        db.query(AdminLog)
        .filter(AdminLog.path.like("/api/%"))
        .order_by(AdminLog.id.desc())
        .limit(limit)
        .all()
    )
    return [AdminLogResponse.model_validate(log) for log in logs]
