import csv
import io
import json
from datetime import date, datetime, timezone

import pytest
from openpyxl import load_workbook

from attendance_service import mark_attendance_for_users
from errors import InvalidOperation, NotFound
from export_service import (
    attendance_export,
    json_payload,
    participant_report,
    render,
    scores_export,
    submissions_export,
)
from grading import grade_submission
from models import AttendanceSession, AttendanceStatus


def _csv_rows(content):
    return list(csv.reader(io.StringIO(content.decode("utf-8"))))


def test_empty_exports_raise_not_found(db, admin):
    with pytest.raises(NotFound):
        attendance_export(db)
    with pytest.raises(NotFound):
        submissions_export(db)
    with pytest.raises(NotFound):
        scores_export(db)
    with pytest.raises(NotFound):
        participant_report(db, 999)


def test_attendance_csv_has_header_and_filtered_rows(db, admin, make_user):
    alice = make_user(name="Alice")
    mark_attendance_for_users(db, admin.id, [alice.id], date(2025, 1, 10), AttendanceSession.MORNING)
    mark_attendance_for_users(db, admin.id, [alice.id], date(2025, 1, 11), AttendanceSession.MORNING, AttendanceStatus.LATE)

    content, media_type, filename = render(attendance_export(db, status=AttendanceStatus.LATE), "csv")
    rows = _csv_rows(content)

    assert media_type == "text/csv"
    assert filename == "attendance.csv"
    assert rows[0] == ["Name", "Email", "Date", "Session", "Status", "Marked At", "Remarks"]
    assert [row[2:5] for row in rows[1:]] == [["2025-01-11", "morning", "late"]]


def test_scores_xlsx_lists_ranked_participants(db, admin, make_user, make_task, submit):
    top = make_user(name="Top")
    make_user(name="Idle")
    grade_submission(db, submit(top, make_task()).id, 42, None, admin.id)

    content, _, filename = render(scores_export(db), "xlsx")
    sheet = load_workbook(io.BytesIO(content)).active
    values = list(sheet.iter_rows(values_only=True))

    assert filename == "scores.xlsx"
    assert values[0][:4] == ("Rank", "Name", "Email", "Total Score")
    assert [(row[0], row[1], row[3]) for row in values[1:]] == [(1, "Top", 42), (2, "Idle", 0)]
    assert json.loads(values[1][7])[0]["score"] == 42


def test_submissions_export_flattens_content(db, admin, make_user, make_task, submit):
    participant = make_user()
    submit(participant, make_task(title="Essay"), text="my essay")

    table = submissions_export(db)

    assert table.records[0]["task_title"] == "Essay"
    assert table.records[0]["text"] == "my essay"
    assert table.records[0]["is_late"] == "No"


def test_participant_report_json_is_nested_document(db, admin, make_user, make_task, submit):
    participant = make_user(name="Reporter")
    grade_submission(db, submit(participant, make_task()).id, 30, "ok", admin.id)
    mark_attendance_for_users(db, admin.id, [participant.id], date(2025, 1, 10), AttendanceSession.FULL_DAY)

    document = json_payload(participant_report(db, participant.id))

    assert document["participant"]["name"] == "Reporter"
    assert document["participant"]["total_score"] == 30
    assert document["attendance_summary"]["present"] == 1
    assert document["submissions_summary"] == {"total_submissions": 1, "graded_submissions": 1, "average_score": 30}
    assert document["detailed_records"]["submissions"][0]["feedback"] == "ok"


def test_unknown_format_is_rejected(db, admin, make_user):
    mark_attendance_for_users(db, admin.id, [make_user().id], date(2025, 1, 10), AttendanceSession.MORNING)
    with pytest.raises(InvalidOperation):
        render(attendance_export(db), "pdf")


def test_report_matches_attendance_on_local_calendar_day(db, admin, make_user, make_task, submit, monkeypatch):
    monkeypatch.setenv("APP_TIMEZONE", "Asia/Kolkata")
    participant = make_user()
    submission = submit(participant, make_task())
    # 20:00 UTC on the 10th is already the 11th in Kolkata
    submission.submitted_at = datetime(2025, 1, 10, 20, 0, tzinfo=timezone.utc)
    db.commit()
    mark_attendance_for_users(db, admin.id, [participant.id], date(2025, 1, 10), AttendanceSession.MORNING, AttendanceStatus.ABSENT)
    mark_attendance_for_users(db, admin.id, [participant.id], date(2025, 1, 11), AttendanceSession.MORNING)

    table = participant_report(db, participant.id)

    assert table.records[0]["attendance_on_submission_date"] == "present"
