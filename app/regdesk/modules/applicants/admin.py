from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.regdesk.audit import record_event
from app.regdesk.db import db_session
from app.regdesk.modules.applicants.service import (
    APPLICANT_CSV_COLUMNS,
    applicant_csv_rows,
    applicant_to_dict,
    list_applicants,
)
from app.regdesk.rbac import require_permission
from app.regdesk.utils import csv_download, current_user, error_response

bp = Blueprint("applicants", __name__)


@bp.get("/applicants")
@require_permission("applicants.view")
def list_all():
    s = db_session()
    result = list_applicants(s, request.args)
    if not result.ok:
        return error_response(result.error)
    return jsonify({"applicants": [applicant_to_dict(a) for a in result.records], "total": result.total})


@bp.get("/applicants/export")
@require_permission("applicants.view")
def export():
    s = db_session()
    u = current_user()
    result = list_applicants(s, request.args)
    if not result.ok:
        return error_response(result.error)

    record_event(
        s,
        actor=u,
        action="applicant.export",
        entity_type="Applicant",
        entity_id="export",
        metadata={"search": request.args.get("search") or "", "row_count": result.total},
    )
    s.commit()
    return csv_download(APPLICANT_CSV_COLUMNS, applicant_csv_rows(result.records), "applicants")
