import pytest
from werkzeug.security import generate_password_hash

from app.regdesk import create_app
from app.regdesk.db import session_scope
from app.regdesk.models import AuditEvent, Base, Permission, Role, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        p = Permission(key="admin.view", name="Admin: view shell")
        r = Role(key="admin", name="Administrator")
        r.permissions.append(p)
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(r)
        viewer = User(email="viewer@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([p, r, u, viewer])

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_login_and_admin_access(client):
    # Anonymous gets a 401 pointing at the login endpoint
    r = client.get("/admin/")
    assert r.status_code == 401
    assert r.json["login"].startswith("/auth/login")

    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert r.json["user"]["email"] == "admin@example.com"

    r = client.get("/admin/")
    assert r.status_code == 200
    assert r.json["db_connected"] is True
    assert r.json["storage_backend"] == "local"


def test_login_failure_is_audited(client):
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "wrong"})
    assert r.status_code == 401

    with session_scope(client.application) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
        assert ev.entity_id == "admin@example.com"


def test_missing_permission_is_forbidden(client):
    client.post("/auth/login", data={"email": "viewer@example.com", "password": "pw"})
    r = client.get("/admin/")
    assert r.status_code == 403
    assert r.json["missing_permission"] == "admin.view"


def test_mutating_request_without_csrf_is_rejected(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.post("/admin/applications/1/decision", json={"decision": "approve"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_unknown_route_returns_json_404(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json["error"] == "Not found."


def test_audit_list_shows_login(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.get("/admin/audit?action=auth.login")
    assert r.status_code == 200
    actions = [e["action"] for e in r.json["events"]]
    assert "auth.login" in actions

    r = client.get("/admin/audit?date_from=not-a-date")
    assert r.status_code == 400
    assert "date_from" in r.json["fields"]
