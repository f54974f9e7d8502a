from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.regdesk.errors import FieldError, ValidationError, classify_db_error
from app.regdesk.modules.applications.models import Applicant
from app.regdesk.modules.applications.query import LIKE_ESCAPE, QueryResult, contains_pattern

logger = logging.getLogger(__name__)

APPLICANT_LIST_LIMIT = 100
APPLICANT_SORT_FIELDS = ("created_at", "full_name", "email")

APPLICANT_CSV_COLUMNS = ("ID", "Name", "Email", "Phone", "Business Name", "Business Type", "Created At")


def list_applicants(s: Session, args: Mapping[str, str | None]) -> QueryResult:
    """Newest-first applicant directory, capped at 100 rows."""
    search = (args.get("search") or "").strip()
    sort = (args.get("sort") or "created_at").strip()
    direction = (args.get("direction") or "desc").strip().lower()

    errs = []
    if sort not in APPLICANT_SORT_FIELDS:
        errs.append(FieldError("sort", f"Sort field must be one of: {', '.join(APPLICANT_SORT_FIELDS)}"))
    if direction not in ("asc", "desc"):
        errs.append(FieldError("direction", "Direction must be asc or desc."))
    if errs:
        return QueryResult(error=ValidationError(errs))

    try:
        q = s.query(Applicant)
        if search:
            like = contains_pattern(search)
            q = q.filter(
                or_(
                    Applicant.email.ilike(like, escape=LIKE_ESCAPE),
                    Applicant.full_name.ilike(like, escape=LIKE_ESCAPE),
                )
            )
        col = getattr(Applicant, sort)
        q = q.order_by(col.asc() if direction == "asc" else col.desc(), Applicant.id.asc())
        rows = q.limit(APPLICANT_LIST_LIMIT).all()
    except SQLAlchemyError as e:
        err = classify_db_error(e)
        logger.error("Applicant list failed: %s", err.message)
        s.rollback()
        return QueryResult(error=err)
    return QueryResult(records=rows, total=len(rows))


def _primary_business(a: Applicant):
    return a.businesses[0] if a.businesses else None


def applicant_to_dict(a: Applicant) -> dict[str, Any]:
    b = _primary_business(a)
    return {
        "id": a.id,
        "fullName": a.full_name,
        "email": a.email,
        "phone": a.phone,
        "businessName": b.business_name if b else None,
        "businessType": b.business_type if b else None,
        "createdAt": a.created_at.isoformat() if a.created_at else None,
    }


def applicant_csv_rows(applicants: list[Applicant]) -> list[list[Any]]:
    rows = []
    for a in applicants:
        b = _primary_business(a)
        rows.append(
            [
                a.id,
                a.full_name,
                a.email,
                a.phone,
                b.business_name if b else "",
                b.business_type if b else "",
                a.created_at,
            ]
        )
    return rows
