from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.regdesk.audit import record_event
from app.regdesk.db import db_session
from app.regdesk.modules.reporting.service import (
    METRICS_CSV_COLUMNS,
    application_summary,
    date_range_label,
    load_statistics,
    metrics_csv_rows,
    parse_date_range,
)
from app.regdesk.rbac import require_permission
from app.regdesk.utils import csv_download, current_user, error_response

bp = Blueprint("reporting", __name__)


@bp.get("/dashboard")
@require_permission("dashboard.view")
def dashboard():
    s = db_session()
    key, _days = parse_date_range(request.args.get("range"))
    result = load_statistics(s, key, sla_days=int(current_app.config["SLA_DAYS"]))
    payload = result.value.to_dict()
    payload["range"] = key
    payload["rangeLabel"] = date_range_label(key)
    payload["error"] = result.error.message if result.error else None
    return jsonify(payload)


@bp.get("/dashboard/export")
@require_permission("dashboard.view")
def dashboard_export():
    s = db_session()
    u = current_user()
    key, _days = parse_date_range(request.args.get("range"))
    result = load_statistics(s, key, sla_days=int(current_app.config["SLA_DAYS"]))
    if not result.ok:
        return error_response(result.error)

    record_event(
        s,
        actor=u,
        action="dashboard.export",
        entity_type="Dashboard",
        entity_id=key,
        metadata={"range": key, "total": result.value.total},
    )
    s.commit()
    return csv_download(METRICS_CSV_COLUMNS, metrics_csv_rows(result.value), f"dashboard_metrics_{key}")


@bp.get("/applications/stats")
@require_permission("applications.view")
def application_stats():
    s = db_session()
    result = application_summary(s)
    if not result.ok:
        return error_response(result.error)
    return jsonify(result.value)
