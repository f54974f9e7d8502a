from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, redirect, request
from sqlalchemy.orm import Session

from app.regdesk.db import db_session
from app.regdesk.errors import FieldError, ReviewError, ValidationError
from app.regdesk.modules.applications.presenters import jsonable
from app.regdesk.modules.applications.query import fetch_application
from app.regdesk.modules.documents.models import BusinessDocument
from app.regdesk.modules.documents.service import (
    add_document_version,
    check_expiry,
    get_document_url,
    list_application_documents,
    resolve_document_urls,
    review_document,
)
from app.regdesk.rbac import require_permission
from app.regdesk.utils import current_storage, current_user, error_response, request_payload

bp = Blueprint("documents", __name__)


def _get_doc_or_404(s: Session, doc_id: int) -> BusinessDocument:
    d = s.get(BusinessDocument, doc_id)
    if not d:
        abort(404)
    return d


def _expires_in() -> int:
    default = int(current_app.config["SIGNED_URL_EXPIRES_IN"])
    raw = (request.args.get("expires_in") or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _version_dict(v) -> dict:
    return jsonable(
        {
            "id": v.id,
            "document_id": v.document_id,
            "version_number": v.version_number,
            "file_path": v.file_path,
            "file_name": v.file_name,
            "file_size": v.file_size,
            "mime_type": v.mime_type,
            "sha256": v.sha256,
            "uploaded_at": v.uploaded_at,
        }
    )


@bp.get("/applications/<int:application_id>/documents")
@require_permission("documents.view")
def application_documents(application_id: int):
    s = db_session()
    app_result = fetch_application(s, application_id)
    if not app_result.ok:
        return error_response(app_result.error)
    result = list_application_documents(s, current_storage(), app_result.value)
    if not result.ok:
        return error_response(result.error)
    return jsonify(result.value)


@bp.post("/documents/<int:doc_id>/versions")
@require_permission("documents.upload")
def upload_version(doc_id: int):
    s = db_session()
    u = current_user()
    d = _get_doc_or_404(s, doc_id)

    f = request.files.get("file")
    if not f or not f.filename:
        return error_response(ValidationError(FieldError("file", "Choose a file to upload.")))

    try:
        v = add_document_version(
            s,
            current_storage(),
            d,
            filename=f.filename,
            data=f.read(),
            content_type=f.mimetype,
            user=u,
            notes=request.form.get("notes") or "",
        )
    except ReviewError as e:
        return error_response(e)
    return jsonify({"ok": True, "version": _version_dict(v)}), 201


@bp.post("/documents/<int:doc_id>/review")
@require_permission("documents.review")
def review(doc_id: int):
    s = db_session()
    u = current_user()
    d = _get_doc_or_404(s, doc_id)
    payload = request_payload()
    try:
        review_document(s, d, status=str(payload.get("status") or ""), notes=str(payload.get("notes") or ""), user=u)
    except ReviewError as e:
        return error_response(e)
    return jsonify(
        {
            "ok": True,
            "document": jsonable(
                {"id": d.id, "status": d.status, "review_notes": d.review_notes, "reviewed_at": d.reviewed_at}
            ),
        }
    )


@bp.get("/documents/url/<path:path>")
@require_permission("documents.view")
def document_url(path: str):
    result = get_document_url(current_storage(), path, expires_in=_expires_in())
    if not result.ok:
        return error_response(result.error)
    if (request.args.get("redirect") or "").strip().lower() == "true":
        return redirect(result.value, code=302)
    return jsonify({"url": result.value})


@bp.post("/documents/urls")
@require_permission("documents.view")
def document_urls():
    payload = request.get_json(silent=True) or {}
    paths = payload.get("paths") if isinstance(payload, dict) else None
    if not isinstance(paths, list):
        return error_response(ValidationError(FieldError("paths", "Provide a list of document paths.")))
    expires_in = payload.get("expires_in")
    if expires_in is None:
        expires_in = current_app.config["SIGNED_URL_EXPIRES_IN"]
    try:
        expires_in = int(expires_in)
    except (TypeError, ValueError):
        return error_response(ValidationError(FieldError("expires_in", "Expiry must be an integer.")))
    try:
        check_expiry(expires_in)
    except ValidationError as e:
        return error_response(e)

    result = resolve_document_urls(current_storage(), [str(p) for p in paths], expires_in=expires_in)
    return jsonify({"urls": result.value or {}, "error": result.error.message if result.error else None})
