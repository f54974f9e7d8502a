"""
Pure mappings from application rows to the shapes the list, detail and export
surfaces consume. Nothing here touches the session.
"""
from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from app.regdesk.modules.applications.models import Applicant, Application, ApplicationStep, Business
from app.regdesk.modules.applications.status import current_stage

UNASSIGNED = "Unassigned"
PLACEHOLDER = "—"

APPLICATION_CSV_COLUMNS = (
    "Application ID",
    "Application Number",
    "Applicant Name",
    "Business Name",
    "Business Type",
    "Status",
    "Submitted Date",
    "Assignee",
    "Aging (days)",
)

SECONDS_PER_DAY = 86400


def derive_aging(submitted_at: datetime | None, now: datetime) -> int:
    if submitted_at is None:
        return 0
    days = math.floor((now - submitted_at).total_seconds() / SECONDS_PER_DAY)
    return max(0, days)


def _assignee_label(step: ApplicationStep) -> str:
    if step.assignee is not None:
        return step.assignee.display_name
    return str(step.assigned_to)


def derive_assignee(steps: Iterable[ApplicationStep]) -> str:
    ordered = sorted(steps or [], key=lambda st: st.step_order)
    for st in ordered:
        if not st.is_completed and st.assigned_to is not None:
            return _assignee_label(st)
    for st in ordered:
        if st.assigned_to is not None:
            return _assignee_label(st)
    return UNASSIGNED


def decision_date(a: Application) -> datetime | None:
    return a.approved_at or a.rejected_at


def to_table_row(a: Application, *, now: datetime) -> dict[str, Any]:
    business: Business | None = a.business
    applicant: Applicant | None = a.applicant
    return {
        "id": a.id,
        "applicationNumber": a.application_number,
        "applicantName": (applicant.full_name if applicant else None) or PLACEHOLDER,
        "businessName": (business.business_name if business else None) or PLACEHOLDER,
        "businessType": (business.business_type if business else None) or PLACEHOLDER,
        "status": a.status,
        "submittedDate": a.submitted_at,
        "decisionDate": decision_date(a),
        "assignee": derive_assignee(a.steps),
        "aging": derive_aging(a.submitted_at, now),
    }


def _sort_value(row: dict[str, Any], key: str):
    v = row.get(key)
    if key in ("submittedDate", "decisionDate"):
        # Rows without a date sort first, like an epoch timestamp would.
        return v.timestamp() if isinstance(v, datetime) else float("-inf")
    if key == "aging":
        try:
            return float(v or 0)
        except (TypeError, ValueError):
            return 0.0
    return str(v if v is not None else "").lower()


def sort_table_rows(rows: Sequence[dict[str, Any]], key: str | None, direction: str = "asc") -> list[dict[str, Any]]:
    """Stable sort of table rows by a view-model key; no key keeps input order."""
    if not key:
        return list(rows)
    return sorted(rows, key=lambda r: _sort_value(r, key), reverse=(direction == "desc"))


def next_sort(current: tuple[str | None, str], key: str) -> tuple[str, str]:
    """Clicking the active column flips its direction; a new column starts ascending."""
    cur_key, cur_dir = current
    if cur_key == key and cur_dir == "asc":
        return key, "desc"
    return key, "asc"


def to_snapshot(a: Application) -> dict[str, Any]:
    applicant = a.applicant
    business = a.business
    snap = {
        "id": a.id,
        "applicationNumber": a.application_number,
        "applicantName": (applicant.full_name if applicant else None) or PLACEHOLDER,
        "email": (applicant.email if applicant else None) or PLACEHOLDER,
        "phone": (applicant.phone if applicant else None) or PLACEHOLDER,
        "businessName": (business.business_name if business else None) or PLACEHOLDER,
        "businessType": (business.business_type if business else None) or PLACEHOLDER,
        "submittedDate": a.submitted_at,
        "status": a.status or "Unknown",
        "currentStage": current_stage(a.status),
        "assignee": derive_assignee(a.steps),
        "notes": a.notes or None,
        "rejectionReason": None,
    }
    if a.rejected_at and a.rejection_reason:
        snap["rejectionReason"] = a.rejection_reason
    return snap


def application_csv_rows(rows: Iterable[dict[str, Any]]) -> list[list[Any]]:
    return [
        [
            r["id"],
            r["applicationNumber"],
            r["applicantName"],
            r["businessName"],
            r["businessType"],
            r["status"],
            r["submittedDate"].isoformat() if r["submittedDate"] else "",
            r["assignee"],
            str(r["aging"]),
        ]
        for r in rows
    ]


def jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def _columns(obj: Any, names: Iterable[str]) -> dict[str, Any]:
    return {n: getattr(obj, n) for n in names}


def application_list_item(a: Application) -> dict[str, Any]:
    d = _columns(
        a,
        (
            "id", "application_number", "status", "current_step", "applicant_id", "business_id",
            "created_at", "updated_at", "submitted_at", "approved_at", "rejected_at",
        ),
    )
    b = a.business
    d["business"] = _columns(b, ("id", "business_name", "business_type", "proposed_trade_name")) if b else None
    p = a.applicant
    d["applicant"] = _columns(p, ("id", "full_name", "email")) if p else None
    return jsonable(d)


def application_to_dict(a: Application) -> dict[str, Any]:
    """Full joined record for the detail endpoint."""
    d = _columns(
        a,
        (
            "id", "application_number", "status", "current_step", "applicant_id", "business_id",
            "created_at", "updated_at", "submitted_at", "approved_at", "rejected_at",
            "rejection_reason", "notes",
        ),
    )
    b = a.business
    d["business"] = None
    if b is not None:
        d["business"] = _columns(
            b,
            (
                "id", "business_name", "business_type", "business_type_id", "proposed_trade_name",
                "nature_of_business", "business_address", "business_details",
            ),
        )
        t = b.type_info
        d["business"]["business_types"] = (
            _columns(t, ("id", "type", "display_name", "description", "required_documents", "estimated_processing_days", "base_fee"))
            if t is not None
            else None
        )
    p = a.applicant
    d["applicant"] = (
        _columns(
            p,
            (
                "id", "full_name", "email", "phone", "nic", "profile_image_url", "address",
                "is_email_verified", "is_nic_verified", "is_phone_verified",
            ),
        )
        if p is not None
        else None
    )
    d["steps"] = [
        {
            **_columns(st, ("id", "step_name", "step_order", "is_completed", "completed_at", "required_documents", "notes", "assigned_to")),
            "assignee": (
                {"id": st.assignee.id, "full_name": st.assignee.full_name, "email": st.assignee.email}
                if st.assignee is not None
                else None
            ),
        }
        for st in a.steps
    ]
    d["documents"] = [
        {
            **_columns(
                doc,
                (
                    "id", "document_name", "document_type", "status", "current_version_id", "storage_path",
                    "reviewed_by_user_id", "review_notes", "reviewed_at", "created_at", "updated_at",
                ),
            ),
            "versions": [
                _columns(v, ("id", "version_number", "file_path", "file_name", "file_size", "mime_type", "upload_notes", "uploaded_at"))
                for v in doc.versions
            ],
        }
        for doc in a.documents
    ]
    d["payments"] = [
        _columns(pay, ("id", "amount", "currency", "status", "payment_reference", "gateway_transaction_id", "payment_method", "paid_at", "created_at"))
        for pay in a.payments
    ]
    d["appointments"] = [
        _columns(
            ap,
            (
                "id", "appointment_type", "title", "description", "appointment_date", "start_time",
                "end_time", "status", "location", "meeting_link",
            ),
        )
        for ap in a.appointments
    ]
    return jsonable(d)
