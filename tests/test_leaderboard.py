from leaderboard import leaderboard
from grading import grade_submission
from models import UserRole


def _with_score(db, make_user, score, **kwargs):
    user = make_user(**kwargs)
    user.total_score = score
    db.commit()
    return user


def test_ties_keep_registration_order_with_positional_ranks(db, make_user):
    first = _with_score(db, make_user, 50)
    second = _with_score(db, make_user, 80)
    third = _with_score(db, make_user, 80)
    fourth = _with_score(db, make_user, 30)

    rows = leaderboard(db)

    assert [(row["rank"], row["user_id"], row["total_score"]) for row in rows] == [
        (1, second.id, 80),
        (2, third.id, 80),
        (3, first.id, 50),
        (4, fourth.id, 30),
    ]


def test_only_active_participants_are_ranked(db, make_user):
    participant = _with_score(db, make_user, 10)
    _with_score(db, make_user, 99, is_active=False)
    _with_score(db, make_user, 500, role=UserRole.ADMIN)
    _with_score(db, make_user, 500, role=UserRole.SUPERADMIN)

    assert [row["user_id"] for row in leaderboard(db)] == [participant.id]


def test_limit_caps_rows(db, make_user):
    for score in range(5):
        _with_score(db, make_user, score)

    rows = leaderboard(db, limit=3)

    assert [row["total_score"] for row in rows] == [4, 3, 2]


def test_grading_moves_participant_up(db, admin, make_user, make_task, submit):
    leader = _with_score(db, make_user, 40)
    climber = make_user()
    grade_submission(db, submit(climber, make_task()).id, 75, None, admin.id)

    rows = leaderboard(db)

    assert [row["user_id"] for row in rows] == [climber.id, leader.id]
