import pytest

from errors import NotFound
from grading import grade_submission, return_submission
from identity import Caller
from models import User
from score_aggregator import graded_score_sum, recompute_all_scores, recompute_total_score
from submission_service import delete_submission


def test_recompute_is_idempotent(db, admin, make_user, make_task, submit):
    participant = make_user()
    grade_submission(db, submit(participant, make_task(title="A")).id, 30, None, admin.id)
    grade_submission(db, submit(participant, make_task(title="B")).id, 45, None, admin.id)

    first = recompute_total_score(db, participant.id)
    second = recompute_total_score(db, participant.id)

    assert first == second == 75


def test_recompute_ignores_previous_total(db, admin, make_user, make_task, submit):
    participant = make_user()
    grade_submission(db, submit(participant, make_task()).id, 20, None, admin.id)

    participant.total_score = 999
    db.commit()

    assert recompute_total_score(db, participant.id) == 20


def test_returned_and_ungraded_submissions_do_not_count(db, admin, make_user, make_task, submit):
    participant = make_user()
    graded = submit(participant, make_task(title="graded"))
    returned = submit(participant, make_task(title="returned"))
    submit(participant, make_task(title="pending"))

    grade_submission(db, graded.id, 50, None, admin.id)
    grade_submission(db, returned.id, 40, None, admin.id)
    return_submission(db, returned.id, "redo", admin.id)

    assert graded_score_sum(db, participant.id) == 50


def test_sum_invariant_holds_after_admin_deletes_graded_submission(db, admin, make_user, make_task, submit):
    participant = make_user()
    keep = submit(participant, make_task(title="keep"))
    drop = submit(participant, make_task(title="drop"))
    grade_submission(db, keep.id, 25, None, admin.id)
    grade_submission(db, drop.id, 60, None, admin.id)

    outcome = delete_submission(db, Caller.from_user(admin), drop.id)

    assert outcome.rescored
    assert outcome.total_score == 25
    db.expire_all()
    assert db.get(User, participant.id).total_score == graded_score_sum(db, participant.id) == 25


def test_recompute_all_repairs_drift(db, admin, make_user, make_task, submit):
    alice = make_user(name="Alice")
    bob = make_user(name="Bob")
    grade_submission(db, submit(alice, make_task(title="T1")).id, 10, None, admin.id)

    alice.total_score = 0
    bob.total_score = 77
    db.commit()

    totals = recompute_all_scores(db)

    assert totals[alice.id] == 10
    assert totals[bob.id] == 0
    assert totals[admin.id] == 0


def test_recompute_unknown_user(db):
    with pytest.raises(NotFound):
        recompute_total_score(db, 12345)
