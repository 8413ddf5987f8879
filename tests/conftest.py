from datetime import datetime, timedelta, timezone
from pathlib import Path
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "portal-test-secret-0123456789abcdefghijklmnop")

import pytest
from sqlalchemy.orm import sessionmaker

import models  # noqa: F401
from database import Base, build_engine
from identity import Caller
from models import Task, TaskType, User, UserRole
from schemas import TextContent
from submission_service import submit_task


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name=None, role=UserRole.PARTICIPANT, is_active=True, email=None):
        counter["n"] += 1
        user = User(
            name=name or f"User {counter['n']}",
            email=email or f"user{counter['n']}@example.com",
            hashed_password="not-a-real-hash",
            role=role,
            is_active=is_active,
            total_score=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin", role=UserRole.ADMIN)


@pytest.fixture
def make_task(db, admin):
    def _make(max_score=100, deadline=None, is_active=True, title="Build a thing"):
        task = Task(
            title=title,
            description="Task description",
            type=TaskType.ASSIGNMENT,
            max_score=max_score,
            deadline=deadline or datetime.now(timezone.utc) + timedelta(days=1),
            is_active=is_active,
            created_by_id=admin.id,
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make


@pytest.fixture
def submit(db):
    def _submit(user, task, text="My answer"):
        return submit_task(db, Caller.from_user(user), task.id, TextContent(text=text))

    return _submit
