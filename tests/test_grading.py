import logging

import pytest
from sqlalchemy.exc import SQLAlchemyError

import grading
from errors import InvalidScore, NotFound
from grading import grade_submission, return_submission, update_grade, validate_score
from models import SubmissionStatus, User
from score_aggregator import recompute_total_score


def _total(db, user):
    db.expire_all()
    return db.query(User).filter(User.id == user.id).one().total_score


def test_validate_score_bounds():
    validate_score(0, 100)
    validate_score(100, 100)
    with pytest.raises(InvalidScore):
        validate_score(101, 100)
    with pytest.raises(InvalidScore):
        validate_score(-1, 100)


def test_score_above_max_is_rejected_without_side_effects(db, admin, make_user, make_task, submit):
    participant = make_user()
    submission = submit(participant, make_task(max_score=100))

    with pytest.raises(InvalidScore) as excinfo:
        grade_submission(db, submission.id, 150, None, admin.id)

    assert "100" in excinfo.value.message
    db.refresh(submission)
    assert submission.score is None
    assert submission.status == SubmissionStatus.SUBMITTED
    assert _total(db, participant) == 0


def test_grade_then_regrade_replaces_score_in_total(db, admin, make_user, make_task, submit):
    participant = make_user()
    submission = submit(participant, make_task(max_score=100))

    outcome = grade_submission(db, submission.id, 85, "Good", admin.id)
    assert outcome.score_synced
    assert outcome.total_score == 85
    assert outcome.submission.graded_by_id == admin.id
    assert outcome.submission.graded_at is not None

    outcome = update_grade(db, submission.id, 90, None, admin.id)
    assert outcome.total_score == 90
    assert outcome.submission.feedback == "Good"
    assert _total(db, participant) == 90


def test_total_spans_all_graded_submissions(db, admin, make_user, make_task, submit):
    participant = make_user()
    first = submit(participant, make_task(title="One"))
    second = submit(participant, make_task(title="Two"))

    grade_submission(db, first.id, 40, None, admin.id)
    outcome = grade_submission(db, second.id, 35, None, admin.id)

    assert outcome.total_score == 75


def test_return_clears_score_and_drops_it_from_total(db, admin, make_user, make_task, submit):
    participant = make_user()
    submission = submit(participant, make_task())
    grade_submission(db, submission.id, 70, None, admin.id)

    outcome = return_submission(db, submission.id, "Please resubmit with tests", admin.id)

    assert outcome.submission.status == SubmissionStatus.RETURNED
    assert outcome.submission.score is None
    assert outcome.total_score == 0


def test_grading_unknown_submission(db, admin):
    with pytest.raises(NotFound):
        grade_submission(db, 9999, 10, None, admin.id)


def test_aggregation_failure_keeps_grade_and_is_repairable(db, admin, make_user, make_task, submit, monkeypatch, caplog):
    participant = make_user()
    submission = submit(participant, make_task())

    def _broken(*args, **kwargs):
        raise SQLAlchemyError("database went away")

    monkeypatch.setattr(grading, "recompute_total_score", _broken)
    with caplog.at_level(logging.ERROR, logger="grading"):
        outcome = grade_submission(db, submission.id, 60, None, admin.id)

    assert not outcome.score_synced
    assert outcome.total_score is None
    assert outcome.aggregation_error.user_id == participant.id
    assert "AggregationInconsistency" in caplog.text

    db.refresh(submission)
    assert submission.status == SubmissionStatus.GRADED
    assert submission.score == 60
    assert _total(db, participant) == 0

    monkeypatch.undo()
    assert recompute_total_score(db, participant.id) == 60
    assert _total(db, participant) == 60
