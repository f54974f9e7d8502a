import io
from datetime import datetime
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

from app.regdesk import create_app
from app.regdesk.db import session_scope
from app.regdesk.errors import TransportError, ValidationError
from app.regdesk.models import AuditEvent, Base, Permission, Role, User
from app.regdesk.modules.applications.models import Applicant, Application, Business
from app.regdesk.modules.documents.models import BusinessDocument, DocumentVersion
from app.regdesk.modules.documents.service import (
    display_status,
    document_summary,
    get_document_url,
    guess_doc_type,
    humanize_file_name,
    merge_documents,
    resolve_document_urls,
)
from app.regdesk.storage import LocalStorage, Storage, StorageError, StorageObject


# Pure helpers


def test_humanize_and_guess_type():
    assert humanize_file_name("business_plan-v2.pdf") == "Business Plan V2"
    assert humanize_file_name("nic") == "Nic"
    assert guess_doc_type("fire_permit.pdf") == "Permit"
    assert guess_doc_type("Site-Plan.png") == "Plan"
    assert guess_doc_type("audit_report.pdf") == "Report"
    assert guess_doc_type("application_form.pdf") == "Form"
    assert guess_doc_type("nic_front.jpg") == "Document"
    assert display_status("under_review") == "Under Review"
    assert display_status(None) == "Pending"


def test_merge_matches_names_across_separators():
    doc = BusinessDocument(id=1, application_id=1, document_name="Business Plan", status="approved", created_at=datetime(2026, 1, 5))
    objects = [
        StorageObject(key="7/business_plan_v2.pdf", name="business_plan_v2.pdf"),
        StorageObject(key="7/unrelated.pdf", name="unrelated.pdf", created_at=datetime(2026, 1, 6)),
    ]
    merged = merge_documents([doc], objects)
    assert len(merged) == 2

    table, extra = merged
    assert table["storagePath"] == "7/business_plan_v2.pdf"
    assert table["status"] == "Approved"
    assert table["type"] == "Plan"
    assert table["source"] == "table"

    assert extra["name"] == "Unrelated"
    assert extra["status"] == "Pending"
    assert extra["type"] == "Document"
    assert extra["storagePath"] == "7/unrelated.pdf"

    assert document_summary(merged) == {"total": 2, "approved": 1, "pending": 1, "rejected": 0}


def test_merge_without_storage_match_keeps_table_row():
    doc = BusinessDocument(id=2, application_id=1, document_name="Lease Agreement", status="pending")
    merged = merge_documents([doc], [StorageObject(key="7/nic.jpg", name="nic.jpg")])
    assert merged[0]["storagePath"] is None
    assert merged[1]["name"] == "Nic"


class FlakyStorage(Storage):
    def signed_url(self, key, *, expires_in=3600):
        if "bad" in key:
            raise StorageError(f"cannot sign {key}")
        return f"https://example.test/{key}?e={expires_in}"


def test_batched_urls_return_partial_successes():
    r = resolve_document_urls(FlakyStorage(), ["1/a.pdf", "1/bad.pdf", "1/a.pdf"], expires_in=60)
    assert r.ok
    assert r.value == {"1/a.pdf": "https://example.test/1/a.pdf?e=60"}


def test_batched_urls_report_error_only_when_all_fail():
    r = resolve_document_urls(FlakyStorage(), ["1/bad.pdf", "2/bad.pdf"])
    assert r.value == {}
    assert isinstance(r.error, TransportError)

    assert resolve_document_urls(FlakyStorage(), []).value == {}


def test_single_url_validation():
    assert isinstance(get_document_url(FlakyStorage(), "  ").error, ValidationError)
    assert isinstance(get_document_url(FlakyStorage(), "1/a.pdf", expires_in=0).error, ValidationError)
    assert get_document_url(FlakyStorage(), "1/a.pdf").value.endswith("e=3600")


def test_local_signed_token_round_trip(tmp_path):
    storage = LocalStorage(root=tmp_path, signing_key="k")
    storage.put_bytes("3/permit.pdf", b"%PDF")
    url = storage.signed_url("3/permit.pdf", expires_in=60)
    token = url.rsplit("/", 1)[1]
    assert storage.resolve_token(token) == "3/permit.pdf"

    with pytest.raises(StorageError):
        storage.resolve_token(token + "x")

    expired = storage.signed_url("3/permit.pdf", expires_in=-1).rsplit("/", 1)[1]
    with pytest.raises(StorageError):
        storage.resolve_token(expired)

    with pytest.raises(StorageError):
        storage.put_bytes("../escape.txt", b"x")

    assert [o.name for o in storage.list("3")] == ["permit.pdf"]
    assert storage.list("missing") == []


# Endpoints


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.delenv("STORAGE_LOCAL_ROOT", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        perms = [
            Permission(key=k, name=k)
            for k in ("applications.view", "documents.view", "documents.upload", "documents.review")
        ]
        r = Role(key="reviewer", name="Reviewer")
        r.permissions.extend(perms)
        u = User(email="reviewer@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(r)
        s.add_all(perms + [r, u])

        applicant = Applicant(full_name="Nimal Perera")
        s.add(applicant)
        s.flush()
        biz = Business(owner_id=applicant.id, business_name="Perera Stores", business_type="Retail")
        s.add(biz)
        s.flush()
        a = Application(application_number="BR-0001", status="submitted", applicant_id=applicant.id, business_id=biz.id)
        s.add(a)
        s.flush()
        s.add(BusinessDocument(application_id=a.id, business_id=biz.id, document_name="Business Plan"))

    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    r = c.post("/auth/login", data={"email": "reviewer@example.com", "password": "pw"})
    assert r.status_code == 200
    c.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
    return c


def _ids(app):
    with session_scope(app) as s:
        a = s.query(Application).one()
        d = s.query(BusinessDocument).one()
        return a.id, a.applicant_id, d.id


def _storage_root() -> Path:
    return Path.cwd() / "storage"


def test_documents_endpoint_merges_storage_listing(client, app):
    app_id, applicant_id, _doc_id = _ids(app)
    folder = _storage_root() / str(applicant_id)
    folder.mkdir(parents=True)
    (folder / "business_plan_final.pdf").write_bytes(b"plan")
    (folder / "fire_permit.pdf").write_bytes(b"permit")

    r = client.get(f"/admin/applications/{app_id}/documents")
    assert r.status_code == 200
    docs = r.json["documents"]
    assert [d["source"] for d in docs] == ["table", "storage"]
    assert docs[0]["storagePath"] == f"{applicant_id}/business_plan_final.pdf"
    assert docs[1]["name"] == "Fire Permit"
    assert docs[1]["type"] == "Permit"
    assert r.json["summary"]["pending"] == 2
    assert r.json["storageError"] is None

    assert client.get("/admin/applications/9999/documents").status_code == 404


def test_upload_versions_and_review(client, app):
    _app_id, applicant_id, doc_id = _ids(app)

    r = client.post(
        f"/admin/documents/{doc_id}/versions",
        data={"file": (io.BytesIO(b"first"), "plan.pdf"), "notes": "initial"},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    assert r.json["version"]["version_number"] == 1

    r = client.post(
        f"/admin/documents/{doc_id}/versions",
        data={"file": (io.BytesIO(b"second"), "plan.pdf")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 201
    v2 = r.json["version"]
    assert v2["version_number"] == 2
    assert v2["file_path"].startswith(f"{applicant_id}/")
    assert (_storage_root() / v2["file_path"]).read_bytes() == b"second"

    r = client.post(f"/admin/documents/{doc_id}/versions", data={}, content_type="multipart/form-data")
    assert r.status_code == 400

    r = client.post(f"/admin/documents/{doc_id}/review", json={"status": "rejected"})
    assert r.status_code == 400
    assert "notes" in r.json["fields"]

    r = client.post(f"/admin/documents/{doc_id}/review", json={"status": "approved", "notes": "Looks good"})
    assert r.status_code == 200
    assert r.json["document"]["status"] == "approved"

    with session_scope(app) as s:
        d = s.get(BusinessDocument, doc_id)
        assert d.status == "approved"
        assert d.current_version_id == v2["id"]
        assert s.query(DocumentVersion).filter(DocumentVersion.document_id == doc_id).count() == 2
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
        assert actions.count("document.upload") == 2
        assert "document.review" in actions

    assert client.post("/admin/documents/9999/review", json={"status": "approved"}).status_code == 404


def test_signed_url_endpoints_and_local_download(client, app):
    _app_id, applicant_id, _doc_id = _ids(app)
    key = f"{applicant_id}/nic_front.jpg"
    (_storage_root() / str(applicant_id)).mkdir(parents=True)
    (_storage_root() / key).write_bytes(b"jpeg-bytes")

    r = client.get(f"/admin/documents/url/{key}?expires_in=120")
    assert r.status_code == 200
    url = r.json["url"]
    assert url.startswith("/documents/local/")

    r = client.get(f"/admin/documents/url/{key}?redirect=true")
    assert r.status_code == 302

    anon = app.test_client()
    r = anon.get(url)
    assert r.status_code == 200
    assert r.data == b"jpeg-bytes"

    assert anon.get("/documents/local/not-a-token").status_code == 404

    r = client.post("/admin/documents/urls", json={"paths": [key, "../escape"]})
    assert r.status_code == 200
    assert list(r.json["urls"]) == [key]
    assert r.json["error"] is None

    r = client.post("/admin/documents/urls", json={"paths": ["../escape"]})
    assert r.json["urls"] == {}
    assert r.json["error"]

    r = client.post("/admin/documents/urls", json={"paths": "nope"})
    assert r.status_code == 400

    r = client.post("/admin/documents/urls", json={"paths": [key], "expires_in": 0})
    assert r.status_code == 400
    assert "expires_in" in r.json["fields"]

    r = client.post("/admin/documents/urls", json={"paths": [key], "expires_in": None})
    assert r.status_code == 200
    assert list(r.json["urls"]) == [key]
