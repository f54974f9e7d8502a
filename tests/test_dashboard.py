import csv
import io
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.regdesk import create_app
from app.regdesk.db import session_scope
from app.regdesk.models import Base, Permission, Role, User
from app.regdesk.modules.applications.models import Applicant, Application, Business
from app.regdesk.modules.reporting.service import load_statistics


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("SLA_DAYS", "5")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    now = datetime.utcnow()
    with session_scope(app) as s:
        perms = [Permission(key=k, name=k) for k in ("dashboard.view", "applicants.view")]
        r = Role(key="reviewer", name="Reviewer")
        r.permissions.extend(perms)
        u = User(email="reviewer@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(r)
        s.add_all(perms + [r, u])

        nimal = Applicant(full_name="Nimal Perera", email="nimal@example.com", phone="0771234567", created_at=now - timedelta(days=3))
        kumari = Applicant(full_name="Kumari Silva", email="kumari@example.com", created_at=now - timedelta(days=1))
        s.add_all([nimal, kumari])
        s.flush()
        stores = Business(owner_id=nimal.id, business_name="Perera, Stores", business_type="Retail")
        s.add(stores)
        s.flush()

        def add(number, status, days_ago, business=None, **kw):
            created = now - timedelta(days=days_ago)
            s.add(
                Application(
                    application_number=number,
                    status=status,
                    applicant_id=nimal.id,
                    business_id=business.id if business else None,
                    created_at=created,
                    updated_at=created,
                    submitted_at=created,
                    **kw,
                )
            )

        add("BR-1", "approved", 3, stores, approved_at=now - timedelta(days=1))
        add("BR-2", "Rejected", 12, stores, rejected_at=now - timedelta(days=2))
        add("BR-3", "under_review", 5)
        add("BR-4", "submitted", 2, stores)
        # previous 30-day window
        add("BR-5", "approved", 45, stores, approved_at=now - timedelta(days=40))

    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    r = c.post("/auth/login", data={"email": "reviewer@example.com", "password": "pw"})
    assert r.status_code == 200
    return c


def test_load_statistics_window_and_growth(app):
    with session_scope(app) as s:
        result = load_statistics(s, "30d", sla_days=5)
    assert result.ok
    snap = result.value
    assert snap.total == 4
    assert (snap.approved, snap.rejected, snap.in_review, snap.pending) == (1, 1, 1, 1)
    # 2 days and 10 days to decision
    assert snap.avg_processing_time == 6.0
    assert snap.sla_compliance == 50
    assert snap.approval_rate == 25
    # 4 now vs 1 in the previous 30 days
    assert snap.monthly_growth == 100
    assert [(b.type, b.count) for b in snap.business_types] == [("Retail", 3), ("Unknown", 1)]


def test_dashboard_endpoint(client):
    r = client.get("/admin/dashboard?range=30d")
    assert r.status_code == 200
    body = r.json
    assert body["applications"]["total"] == 4
    assert body["applications"]["inReview"] == 1
    assert body["performance"]["rejectionRate"] == 25
    assert body["trends"]["conversionRate"] == body["performance"]["approvalRate"]
    assert len(body["monthlyData"]) == 6
    assert body["rangeLabel"] == "Last 30 Days"
    assert body["error"] is None

    r = client.get("/admin/dashboard?range=1y")
    assert r.json["applications"]["total"] == 5

    r = client.get("/admin/dashboard?range=forever")
    assert r.json["range"] == "30d"


def test_dashboard_export_csv(client):
    r = client.get("/admin/dashboard/export?range=7d")
    assert r.status_code == 200
    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0] == ["Metric", "Value"]
    assert rows[1] == ["Total Applications", "3"]


def test_applicants_list_search_and_export(client):
    r = client.get("/admin/applicants")
    assert r.status_code == 200
    assert [a["fullName"] for a in r.json["applicants"]] == ["Kumari Silva", "Nimal Perera"]

    r = client.get("/admin/applicants?search=NIMAL")
    assert r.json["total"] == 1
    assert r.json["applicants"][0]["businessName"] == "Perera, Stores"

    r = client.get("/admin/applicants?search=_")
    assert r.json["total"] == 0

    r = client.get("/admin/applicants?sort=full_name&direction=asc")
    assert r.json["applicants"][0]["fullName"] == "Kumari Silva"

    r = client.get("/admin/applicants?sort=password")
    assert r.status_code == 400

    r = client.get("/admin/applicants/export?search=nimal")
    assert r.status_code == 200
    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0] == ["ID", "Name", "Email", "Phone", "Business Name", "Business Type", "Created At"]
    assert rows[1][1:6] == ["Nimal Perera", "nimal@example.com", "0771234567", "Perera, Stores", "Retail"]
