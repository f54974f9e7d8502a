import csv
import io
from datetime import datetime, timedelta

from app.regdesk.csv_export import escape_csv_value, to_csv
from app.regdesk.models import User
from app.regdesk.modules.applications.models import Applicant, Application, ApplicationStep, Business
from app.regdesk.modules.applications.presenters import (
    APPLICATION_CSV_COLUMNS,
    UNASSIGNED,
    application_csv_rows,
    derive_aging,
    derive_assignee,
    next_sort,
    sort_table_rows,
    to_snapshot,
    to_table_row,
)
from app.regdesk.modules.applications.status import ApplicationStatus, current_stage, normalize_status

NOW = datetime(2026, 10, 19, 12, 0, 0)


def _step(order, *, done=False, user=None):
    return ApplicationStep(
        step_name=f"Step {order}",
        step_order=order,
        is_completed=done,
        assigned_to=user.id if user else None,
        assignee=user,
    )


def _app(**kw):
    applicant = Applicant(id=7, full_name="Nimal Perera", email="nimal@example.com", phone="+94 77 000 0000")
    business = Business(business_name="Perera Stores", business_type="Retail", owner=applicant)
    defaults = dict(
        id=1,
        application_number="BR-2026-0001",
        status="submitted",
        applicant=applicant,
        business=business,
        submitted_at=NOW - timedelta(days=3, hours=2),
    )
    defaults.update(kw)
    return Application(**defaults)


def test_aging_is_whole_days_and_never_negative():
    assert derive_aging(NOW - timedelta(days=4, hours=23), NOW) == 4
    assert derive_aging(NOW + timedelta(days=2), NOW) == 0
    assert derive_aging(None, NOW) == 0


def test_assignee_prefers_first_incomplete_assigned_step():
    ana = User(id=10, email="ana@example.com", full_name="Ana Silva", password_hash="x")
    raj = User(id=11, email="raj@example.com", full_name=None, password_hash="x")
    steps = [_step(2, user=raj), _step(1, done=True, user=ana), _step(3)]
    assert derive_assignee(steps) == "raj@example.com"


def test_assignee_falls_back_to_any_assigned_step_then_unassigned():
    ana = User(id=10, email="ana@example.com", full_name="Ana Silva", password_hash="x")
    assert derive_assignee([_step(1, done=True, user=ana), _step(2)]) == "Ana Silva"
    assert derive_assignee([_step(1), _step(2)]) == UNASSIGNED
    assert derive_assignee([]) == UNASSIGNED


def test_table_row_shape():
    a = _app(steps=[])
    row = to_table_row(a, now=NOW)
    assert row["applicantName"] == "Nimal Perera"
    assert row["businessName"] == "Perera Stores"
    assert row["businessType"] == "Retail"
    assert row["aging"] == 3
    assert row["assignee"] == UNASSIGNED
    assert row["decisionDate"] is None


def test_table_row_placeholders_without_business():
    a = _app(business=None, steps=[])
    row = to_table_row(a, now=NOW)
    assert row["businessName"] == "—"
    assert row["businessType"] == "—"


def test_sort_rows_by_date_aging_and_text():
    rows = [
        {"id": 1, "businessName": "beta", "aging": 10, "submittedDate": NOW - timedelta(days=1)},
        {"id": 2, "businessName": "Alpha", "aging": 2, "submittedDate": None},
        {"id": 3, "businessName": "gamma", "aging": 7, "submittedDate": NOW - timedelta(days=5)},
    ]
    assert [r["id"] for r in sort_table_rows(rows, "businessName")] == [2, 1, 3]
    assert [r["id"] for r in sort_table_rows(rows, "aging", "desc")] == [1, 3, 2]
    assert [r["id"] for r in sort_table_rows(rows, "submittedDate")] == [2, 3, 1]
    assert [r["id"] for r in sort_table_rows(rows, None)] == [1, 2, 3]


def test_next_sort_toggles_direction_on_same_key():
    assert next_sort((None, "asc"), "aging") == ("aging", "asc")
    assert next_sort(("aging", "asc"), "aging") == ("aging", "desc")
    assert next_sort(("aging", "desc"), "aging") == ("aging", "asc")
    assert next_sort(("aging", "desc"), "status") == ("status", "asc")


def test_snapshot_rejection_reason_only_when_rejected():
    a = _app(status="rejected", rejected_at=NOW, rejection_reason="Incomplete application", steps=[])
    assert to_snapshot(a)["rejectionReason"] == "Incomplete application"

    b = _app(status="revision_required", rejection_reason="stale reason", steps=[])
    assert to_snapshot(b)["rejectionReason"] is None


def test_current_stage_labels():
    assert current_stage("submitted") == "Application Submitted"
    assert current_stage("In Review") == "In Review"
    assert current_stage("approved") == "Approval Granted"
    assert current_stage("completed") == "Registration Complete"
    assert current_stage(None) == "Application Submitted"


def test_normalize_status_synonyms():
    assert normalize_status("Under Review") is ApplicationStatus.UNDER_REVIEW
    assert normalize_status("in-review") is ApplicationStatus.UNDER_REVIEW
    assert normalize_status("PENDING") is ApplicationStatus.SUBMITTED
    assert normalize_status("whatever") is ApplicationStatus.UNKNOWN


def test_escape_csv_value_quotes_only_when_needed():
    assert escape_csv_value("plain") == "plain"
    assert escape_csv_value('a,b"c') == '"a,b""c"'
    assert escape_csv_value("line1\nline2") == '"line1\nline2"'
    assert escape_csv_value(None) == ""
    assert escape_csv_value(42) == "42"


def test_application_csv_parses_back():
    a = _app(steps=[])
    a.business.business_name = 'Perera, "Sons" Stores'
    text = to_csv(APPLICATION_CSV_COLUMNS, application_csv_rows([to_table_row(a, now=NOW)]))
    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[0] == list(APPLICATION_CSV_COLUMNS)
    assert parsed[1][3] == 'Perera, "Sons" Stores'
    assert parsed[1][8] == "3"
