from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy.orm import Session

from auth import get_password_hash
from database import Base, engine, get_db
from models import User, UserRole

logger = logging.getLogger(__name__)


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)


def ensure_superadmin(
    db: Session,
    email: Optional[str] = None,
    password: Optional[str] = None,
    name: str = "Super Admin",
) -> Optional[User]:
    """Create or promote the configured superadmin account.

    Does nothing when no credentials are configured, so a fresh install
    never ships a default password.
    """
    email = (email or os.environ.get("SUPERADMIN_EMAIL") or "").strip().lower()
    password = password or os.environ.get("SUPERADMIN_PASSWORD")
    if not email or not password:
        logger.info("SUPERADMIN_EMAIL/SUPERADMIN_PASSWORD not set; skipping superadmin bootstrap.")
        return None

    user = db.query(User).filter(User.email == email).first()
    if user:
        if user.role != UserRole.SUPERADMIN or not user.is_active:
            user.role = UserRole.SUPERADMIN
            user.is_active = True
            db.commit()
            logger.info("Promoted %s to superadmin.", email)
        return user

    user = User(
        email=email,
        name=name,
        hashed_password=get_password_hash(password),
        role=UserRole.SUPERADMIN,
        is_active=True,
        total_score=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created superadmin %s.", email)
    return user


def run_bootstrap() -> None:
    create_tables()
    db = next(get_db())
    try:
        ensure_superadmin(db)
    finally:
        db.close()
