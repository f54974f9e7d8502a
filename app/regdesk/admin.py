import json
from datetime import date, datetime, time, timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.regdesk.db import db_session
from app.regdesk.errors import FieldError, ValidationError
from app.regdesk.models import AuditEvent
from app.regdesk.rbac import require_permission
from app.regdesk.utils import current_user, error_response

bp = Blueprint("admin", __name__)

AUDIT_LIST_LIMIT = 200
_S3_KEYS = ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


@bp.get("/")
@require_permission("admin.view")
def index():
    """System status: DB connectivity and storage configuration (no network calls)."""
    s = db_session()
    cfg = current_app.config
    status = {
        "env": (cfg.get("ENV") or "development").strip().lower(),
        "db_connected": False,
        "db_error": None,
        "storage_backend": (cfg.get("STORAGE_BACKEND") or "local").strip().lower(),
        "storage_configured": True,
        "storage_error": None,
        "schema_ok": bool(cfg.get("_schema_health_ok", True)),
        "user": current_user().email,
    }

    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
    except SQLAlchemyError as e:
        s.rollback()
        status["db_error"] = str(e)

    if status["storage_backend"] == "s3":
        missing = [k for k in _S3_KEYS if not cfg.get(k)]
        status["storage_configured"] = not missing
        if missing:
            status["storage_error"] = f"Missing: {', '.join(missing)}"
    return jsonify(status)


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Last 200 audit events with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    raw_from = (request.args.get("date_from") or "").strip()
    raw_to = (request.args.get("date_to") or "").strip()
    date_from = _parse_date(raw_from)
    date_to = _parse_date(raw_to)

    errs = []
    if raw_from and not date_from:
        errs.append(FieldError("date_from", "date_from must be YYYY-MM-DD"))
    if raw_to and not date_to:
        errs.append(FieldError("date_to", "date_to must be YYYY-MM-DD"))
    if errs:
        return error_response(ValidationError(errs))

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(AUDIT_LIST_LIMIT).all()
    return jsonify(
        {
            "events": [
                {
                    "id": e.id,
                    "created_at": e.created_at.isoformat(),
                    "request_id": e.request_id,
                    "actor": e.actor_user_email,
                    "action": e.action,
                    "entity_type": e.entity_type,
                    "entity_id": e.entity_id,
                    "reason": e.reason,
                    "metadata": json.loads(e.metadata_json) if e.metadata_json else None,
                }
                for e in events
            ]
        }
    )
