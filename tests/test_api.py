from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from attendance_service import mark_attendance_for_users
from auth import create_access_token, token_claims
from database import get_db
from models import AttendanceSession
from server import app
from time_utils import today_tz


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(user):
    return {"Authorization": f"Bearer {create_access_token(token_claims(user))}"}


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_duplicate_registration_maps_to_conflict(client):
    body = {"name": "Hedy Lamarr", "email": "hedy@hackers.dev", "password": "frequency"}
    assert client.post("/api/auth/register", json=body).status_code == 201

    response = client.post("/api/auth/register", json={**body, "email": "HEDY@hackers.dev"})

    assert response.status_code == 409
    assert response.json()["kind"] == "DuplicateEntry"


def test_submit_and_grade_over_http(client, admin, make_user, make_task):
    participant = make_user()
    task = make_task(max_score=100)

    created = client.post(
        "/api/submissions",
        json={"task_id": task.id, "content": {"submission_type": "text", "text": "done"}},
        headers=_auth(participant),
    )
    assert created.status_code == 201
    submission_id = created.json()["id"]

    duplicate = client.post(
        "/api/submissions",
        json={"task_id": task.id, "content": {"submission_type": "text", "text": "again"}},
        headers=_auth(participant),
    )
    assert duplicate.status_code == 409

    too_high = client.put(f"/api/submissions/{submission_id}/grade", json={"score": 150}, headers=_auth(admin))
    assert too_high.status_code == 400
    assert too_high.json()["kind"] == "InvalidScore"

    graded = client.put(f"/api/submissions/{submission_id}/grade", json={"score": 85}, headers=_auth(admin))
    assert graded.status_code == 200
    assert graded.json()["total_score"] == 85

    board = client.get("/api/leaderboard", headers=_auth(participant)).json()
    assert board[0]["user_id"] == participant.id


def test_participants_cannot_grade(client, make_user, make_task, submit):
    participant = make_user()
    submission = submit(participant, make_task())

    response = client.put(f"/api/submissions/{submission.id}/grade", json={"score": 1}, headers=_auth(participant))

    assert response.status_code == 403


def test_missing_submission_is_not_found(client, admin):
    response = client.get("/api/submissions/12345", headers=_auth(admin))
    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"

def test_attendance_listing_stats_cover_trailing_window(client, db, admin, make_user):
    participant = make_user()
    today = today_tz()
    mark_attendance_for_users(db, admin.id, [participant.id], today - timedelta(days=200), AttendanceSession.MORNING)
    mark_attendance_for_users(db, admin.id, [participant.id], today, AttendanceSession.MORNING)

    body = client.get("/api/attendance", headers=_auth(participant)).json()

    assert len(body["attendance"]) == 2
    assert body["stats"]["total"] == 1
    assert body["stats"]["present"] == 1
