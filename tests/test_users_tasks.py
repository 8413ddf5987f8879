from datetime import date, datetime, timedelta, timezone

import pytest

from errors import DuplicateEntry, Forbidden, InvalidOperation
from grading import grade_submission
from identity import Caller
from models import SubmissionStatus, Task, TaskType, UserRole
from schemas import TaskCreate, TaskUpdate
from task_service import (
    create_task,
    delete_task,
    get_task_with_stats,
    is_overdue,
    list_tasks,
    toggle_task,
    update_task,
)
from user_service import (
    authenticate,
    change_password,
    dashboard_stats,
    deactivate_user,
    list_users,
    register_user,
    set_user_role,
)


def test_register_rejects_email_in_any_case(db):
    user = register_user(db, "Ada Lovelace", "Ada@Example.com", "secret-pass")
    assert user.email == "ada@example.com"

    with pytest.raises(DuplicateEntry) as excinfo:
        register_user(db, "Ada Again", "ADA@example.COM", "other-pass")

    assert excinfo.value.dimension == "email"


def test_authenticate_checks_password_and_active_flag(db, admin):
    user = register_user(db, "Grace Hopper", "grace@example.com", "cobol-rules")

    assert authenticate(db, "GRACE@example.com", "cobol-rules").id == user.id
    assert authenticate(db, "grace@example.com", "wrong") is None

    deactivate_user(db, admin, user.id)
    assert authenticate(db, "grace@example.com", "cobol-rules") is None


def test_change_password_requires_current_password(db):
    user = register_user(db, "Alan Turing", "alan@example.com", "enigma-1")

    with pytest.raises(InvalidOperation):
        change_password(db, user, "nope", "enigma-2")

    change_password(db, user, "enigma-1", "enigma-2")
    assert authenticate(db, "alan@example.com", "enigma-2") is not None


def test_admin_cannot_deactivate_self(db, admin):
    with pytest.raises(InvalidOperation):
        deactivate_user(db, admin, admin.id)


def test_only_superadmin_touches_superadmins_and_admin_grants(db, admin, make_user):
    superadmin = make_user(role=UserRole.SUPERADMIN)
    other_superadmin = make_user(role=UserRole.SUPERADMIN)
    participant = make_user()

    with pytest.raises(Forbidden):
        deactivate_user(db, admin, superadmin.id)
    with pytest.raises(Forbidden):
        set_user_role(db, admin, participant.id, UserRole.ADMIN)
    with pytest.raises(Forbidden):
        set_user_role(db, superadmin, other_superadmin.id, UserRole.ADMIN)

    promoted = set_user_role(db, superadmin, participant.id, UserRole.ADMIN)
    assert promoted.role == UserRole.ADMIN


def test_role_changes_reject_invalid_targets(db, make_user):
    superadmin = make_user(role=UserRole.SUPERADMIN)
    participant = make_user()

    with pytest.raises(InvalidOperation):
        set_user_role(db, superadmin, participant.id, UserRole.SUPERADMIN)
    with pytest.raises(InvalidOperation):
        set_user_role(db, superadmin, superadmin.id, UserRole.ADMIN)


def test_list_users_filters_by_role_and_search(db, admin, make_user):
    make_user(name="Linus", email="linus@kernel.org")
    make_user(name="Guido", email="guido@python.org")

    users, meta = list_users(db, role=UserRole.PARTICIPANT, search="PYTHON")

    assert [u.name for u in users] == ["Guido"]
    assert meta["total"] == 1


def test_task_lifecycle_and_delete_guard(db, admin, make_user, submit):
    deadline = datetime(2030, 6, 1, 9, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    task = create_task(
        db,
        admin.id,
        TaskCreate(title="  Build API ", description="REST", type=TaskType.PROJECT, max_score=50, deadline=deadline),
    )
    assert task.title == "Build API"
    assert not is_overdue(task, now=datetime(2030, 6, 1, 3, 29, tzinfo=timezone.utc))
    assert is_overdue(task, now=datetime(2030, 6, 1, 3, 31, tzinfo=timezone.utc))

    task = update_task(db, task.id, TaskUpdate(max_score=60))
    assert task.max_score == 60
    assert toggle_task(db, task.id).is_active is False
    toggle_task(db, task.id)

    submit(make_user(), task)
    with pytest.raises(InvalidOperation):
        delete_task(db, task.id)

    empty = create_task(
        db,
        admin.id,
        TaskCreate(title="Spare", description="x", type=TaskType.QUIZ, max_score=10, deadline=deadline),
    )
    delete_task(db, empty.id)
    assert db.query(Task).filter(Task.id == empty.id).first() is None


def test_participants_see_their_submission_status_per_task(db, admin, make_user, make_task, submit):
    participant = make_user()
    done = make_task(title="done")
    make_task(title="open")
    submit(participant, done)

    tasks, meta, statuses = list_tasks(db, Caller.from_user(participant))

    assert meta["total"] == 2
    assert set(statuses) == {done.id}
    assert statuses[done.id]["status"] == SubmissionStatus.SUBMITTED

    _, _, admin_statuses = list_tasks(db, Caller.from_user(admin))
    assert admin_statuses is None


def test_task_stats_group_by_status(db, admin, make_user, make_task, submit):
    task = make_task()
    first, second, third = make_user(), make_user(), make_user()
    grade_submission(db, submit(first, task).id, 40, None, admin.id)
    grade_submission(db, submit(second, task).id, 60, None, admin.id)
    submit(third, task)

    _, stats, own = get_task_with_stats(db, Caller.from_user(third), task.id)

    assert stats["graded"] == {"count": 2, "avg_score": 50.0}
    assert stats["submitted"]["count"] == 1
    assert own.user_id == third.id


def test_dashboard_counts(db, admin, make_user, make_task, submit):
    participant = make_user()
    grade_submission(db, submit(participant, make_task(title="a")).id, 5, None, admin.id)
    submit(participant, make_task(title="b"))

    stats = dashboard_stats(db, today=date(2025, 1, 10))

    assert stats["users"]["participants"] == 1
    assert stats["users"]["admins"] == 1
    assert stats["submissions"] == {"total": 2, "pending": 1, "graded": 1, "returned": 0}
    assert stats["attendance"] == {"today": 0}
