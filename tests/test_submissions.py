from datetime import datetime, timedelta, timezone

import pytest

from errors import DuplicateEntry, Forbidden, InvalidOperation, NotFound
from grading import grade_submission
from guards import insert_unique
from identity import Caller
from models import Submission, SubmissionStatus, SubmissionType
from schemas import LinkContent, TextContent, content_from_row
from submission_service import delete_submission, get_submission, list_submissions, submit_task


def test_second_submission_for_same_task_is_rejected(db, make_user, make_task, submit):
    participant = make_user()
    task = make_task()
    submit(participant, task)

    with pytest.raises(DuplicateEntry) as excinfo:
        submit(participant, task, text="second try")

    assert excinfo.value.dimension == "user_id+task_id"
    count = db.query(Submission).filter(Submission.user_id == participant.id, Submission.task_id == task.id).count()
    assert count == 1


def test_storage_constraint_rejects_duplicate_missed_by_precheck(db, make_user, make_task, submit):
    participant = make_user()
    task = make_task()
    submit(participant, task)

    racing = Submission(
        user_id=participant.id,
        task_id=task.id,
        submission_type=SubmissionType.TEXT,
        content={"text": "racing request"},
        status=SubmissionStatus.SUBMITTED,
    )
    # a query that matches nothing stands in for a pre-check that ran before the other insert
    stale_check = db.query(Submission).filter(Submission.id == -1)

    with pytest.raises(DuplicateEntry):
        insert_unique(db, racing, stale_check, "user_id+task_id")

    assert db.query(Submission).count() == 1


def test_submission_content_round_trips_as_tagged_variant(db, make_user, make_task):
    participant = make_user()
    task = make_task()
    link = LinkContent(link="https://github.com/example/repo", link_title="Repo")

    submission = submit_task(db, Caller.from_user(participant), task.id, link)

    assert submission.submission_type == SubmissionType.LINK
    assert "submission_type" not in submission.content
    restored = content_from_row(submission.submission_type, submission.content)
    assert isinstance(restored, LinkContent)
    assert restored.link == "https://github.com/example/repo"


def test_late_flag_follows_deadline(db, make_user, make_task, submit):
    participant = make_user()
    past = make_task(deadline=datetime.now(timezone.utc) - timedelta(hours=1), title="past")
    future = make_task(title="future")

    assert submit(participant, past).is_late is True
    assert submit(participant, future).is_late is False


def test_inactive_task_rejects_submissions(db, make_user, make_task, submit):
    with pytest.raises(InvalidOperation):
        submit(make_user(), make_task(is_active=False))


def test_unknown_task(db, make_user):
    with pytest.raises(NotFound):
        submit_task(db, Caller.from_user(make_user()), 999, TextContent(text="hello"))


def test_admins_cannot_submit(db, admin, make_task):
    with pytest.raises(Forbidden):
        submit_task(db, Caller.from_user(admin), make_task().id, TextContent(text="hello"))


def test_participants_only_see_their_own_submissions(db, admin, make_user, make_task, submit):
    alice = make_user(name="Alice")
    bob = make_user(name="Bob")
    task = make_task()
    alice_submission = submit(alice, task)
    submit(bob, task)

    items, meta = list_submissions(db, Caller.from_user(alice))
    assert [s.id for s in items] == [alice_submission.id]
    assert meta["total"] == 1

    items, meta = list_submissions(db, Caller.from_user(admin))
    assert meta["total"] == 2

    with pytest.raises(Forbidden):
        get_submission(db, Caller.from_user(bob), alice_submission.id)


def test_owner_can_delete_ungraded_submission(db, make_user, make_task, submit):
    participant = make_user()
    submission = submit(participant, make_task())

    outcome = delete_submission(db, Caller.from_user(participant), submission.id)

    assert not outcome.rescored
    assert db.query(Submission).count() == 0


def test_owner_cannot_delete_graded_submission(db, admin, make_user, make_task, submit):
    participant = make_user()
    submission = submit(participant, make_task())
    grade_submission(db, submission.id, 10, None, admin.id)

    with pytest.raises(Forbidden):
        delete_submission(db, Caller.from_user(participant), submission.id)


def test_other_participant_cannot_delete(db, make_user, make_task, submit):
    owner = make_user()
    other = make_user()
    submission = submit(owner, make_task())

    with pytest.raises(Forbidden):
        delete_submission(db, Caller.from_user(other), submission.id)
