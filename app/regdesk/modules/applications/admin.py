from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, jsonify, request

from app.regdesk.audit import record_event
from app.regdesk.db import db_session
from app.regdesk.errors import ReviewError
from app.regdesk.modules.applications.decisions import (
    DecisionRequest,
    InFlightGuard,
    decision_message,
    submit_decision,
)
from app.regdesk.modules.applications.presenters import (
    APPLICATION_CSV_COLUMNS,
    application_csv_rows,
    application_list_item,
    application_to_dict,
    jsonable,
    sort_table_rows,
    to_snapshot,
    to_table_row,
)
from app.regdesk.modules.applications.query import (
    SEARCH_PAGE_SIZE,
    QueryState,
    fetch_application,
    query_applications,
    search_applications,
)
from app.regdesk.rbac import require_permission
from app.regdesk.utils import csv_download, current_user, error_response, request_payload

bp = Blueprint("applications", __name__)

_FILTER_ARGS = ("status", "applicant_id", "business_type", "sort_by", "sort_order")


def _reason_codes() -> tuple[str, ...]:
    return tuple(current_app.config["REJECTION_REASONS"])


def _decision_guard() -> InFlightGuard:
    return current_app.extensions.setdefault("decision_guard", InFlightGuard())


def _is_search_only() -> bool:
    return bool((request.args.get("search") or "").strip()) and not any(request.args.get(k) for k in _FILTER_ARGS)


@bp.get("/applications")
@require_permission("applications.view")
def list_applications():
    s = db_session()
    state = QueryState.from_args(request.args)
    if _is_search_only():
        # Search-only requests page by 20 unless the caller asks otherwise.
        limit = state.limit if (request.args.get("limit") or "").strip() else SEARCH_PAGE_SIZE
        state = QueryState(search=state.search, offset=max(state.offset, 0), limit=limit)
        result = search_applications(s, state.search, limit=state.limit, offset=state.offset)
    else:
        result = query_applications(s, state)
    if not result.ok:
        return error_response(result.error)
    return jsonify(
        {
            "applications": [application_list_item(a) for a in result.records],
            "total": result.total,
            "page": state.page,
            "per_page": state.limit,
            "filters": state.to_dict(),
        }
    )


@bp.get("/applications/rows")
@require_permission("applications.view")
def application_rows():
    s = db_session()
    state = QueryState.from_args(request.args)
    result = query_applications(s, state)
    if not result.ok:
        return error_response(result.error)

    now = datetime.utcnow()
    sort_key = (request.args.get("sort") or "").strip() or None
    direction = "desc" if (request.args.get("direction") or "").strip().lower() == "desc" else "asc"
    rows = sort_table_rows([to_table_row(a, now=now) for a in result.records], sort_key, direction)
    return jsonify({"rows": jsonable(rows), "total": result.total, "sort": sort_key, "direction": direction})


@bp.get("/applications/export")
@require_permission("applications.export")
def export_applications():
    s = db_session()
    u = current_user()
    state = QueryState.from_args(request.args).with_filters(limit=0)
    result = query_applications(s, state)
    if not result.ok:
        return error_response(result.error)

    now = datetime.utcnow()
    rows = [to_table_row(a, now=now) for a in result.records]

    record_event(
        s,
        actor=u,
        action="application.export",
        entity_type="Application",
        entity_id="export",
        metadata={"filters": state.to_dict(), "row_count": len(rows)},
    )
    s.commit()
    return csv_download(APPLICATION_CSV_COLUMNS, application_csv_rows(rows), "applications")


@bp.get("/applications/<int:application_id>")
@require_permission("applications.view")
def application_detail(application_id: int):
    s = db_session()
    result = fetch_application(s, application_id)
    if not result.ok:
        return error_response(result.error)
    a = result.value
    return jsonify({"application": application_to_dict(a), "snapshot": jsonable(to_snapshot(a))})


@bp.post("/applications/<int:application_id>/decision")
@require_permission("applications.decide")
def application_decision(application_id: int):
    s = db_session()
    u = current_user()
    req = DecisionRequest.from_payload(request_payload())
    try:
        a = submit_decision(
            s,
            application_id,
            req,
            user=u,
            reason_codes=_reason_codes(),
            guard=_decision_guard(),
        )
    except ReviewError as e:
        return error_response(e)
    return jsonify({"ok": True, "message": decision_message(req.decision), "snapshot": jsonable(to_snapshot(a))})


@bp.get("/reason-codes")
@require_permission("applications.view")
def reason_codes():
    return jsonify({"reasons": list(_reason_codes())})
