import math
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Query, Session

from models import AdminLog, User


def log_admin_action(db: Session, admin: User, action: str, method: Optional[str] = None, path: Optional[str] = None, meta: Optional[dict] = None):
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        admin_email=admin.email if admin else "",
        admin_name=admin.name if admin else "",
        action=action,
        method=method,
        path=path,
        meta=meta
    ))
    db.commit()


def page_meta(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total": total,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def paginate(query: Query, page: int, limit: int) -> Tuple[List[Any], Dict[str, Any]]:
    page = max(int(page or 1), 1)
    limit = max(int(limit or 1), 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, page_meta(page, limit, total)


def sort_column(columns: Dict[str, Any], sort_by: Optional[str], sort_order: Optional[str], default: str):
    column = columns.get(sort_by or default, columns[default])
    return column.asc() if str(sort_order or "").lower() == "asc" else column.desc()
