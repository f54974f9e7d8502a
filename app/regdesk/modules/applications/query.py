"""
Query gateway for business applications.

Reads never raise past this module: every failure (access policy, lost
connection, malformed filter) comes back on the result's ``error`` so list
screens can render a recoverable error state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Generic, Mapping, TypeVar

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.regdesk.errors import FieldError, NotFoundError, ReviewError, ValidationError, classify_db_error
from app.regdesk.modules.applications.models import Application, ApplicationStep, Business
from app.regdesk.modules.applications.status import ApplicationStatus, normalize_status, stored_spellings

logger = logging.getLogger(__name__)

SORT_FIELDS = ("created_at", "updated_at", "submitted_at")
SORT_ORDERS = ("asc", "desc")
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
SEARCH_PAGE_SIZE = 20

T = TypeVar("T")


@dataclass(frozen=True)
class QueryState:
    status: str = ""
    applicant_id: int | None = None
    business_type: str = ""
    search: str = ""
    sort_by: str = "created_at"
    sort_order: str = "desc"
    offset: int = 0
    limit: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_args(cls, args: Mapping[str, str | None]) -> "QueryState":
        """
        Build a state from request args. Values are kept as given so that
        malformed input surfaces through validate() instead of being dropped.
        """
        return cls(
            status=_text(args.get("status")),
            applicant_id=_int_or_raw(args.get("applicant_id")),  # type: ignore[arg-type]
            business_type=_text(args.get("business_type")),
            search=_text(args.get("search")),
            sort_by=_text(args.get("sort_by")) or "created_at",
            sort_order=_text(args.get("sort_order")).lower() or "desc",
            offset=_int_or_default(args.get("offset"), 0),
            limit=_int_or_default(args.get("limit"), DEFAULT_PAGE_SIZE),
        )

    @property
    def paginated(self) -> bool:
        return self.limit > 0

    @property
    def page(self) -> int:
        if not self.paginated:
            return 1
        return self.offset // self.limit + 1

    def with_filters(self, **changes: Any) -> "QueryState":
        # Any filter change starts over at the first page.
        return replace(self, offset=0, **changes)

    def with_search(self, search: str) -> "QueryState":
        return self.with_filters(search=_text(search))

    def toggle_sort(self, sort_by: str) -> "QueryState":
        if sort_by == self.sort_by:
            order = "asc" if self.sort_order == "desc" else "desc"
        else:
            order = "desc"
        return replace(self, sort_by=sort_by, sort_order=order, offset=0)

    def next_page(self, total: int) -> "QueryState":
        if not self.paginated or self.offset + self.limit >= total:
            return self
        return replace(self, offset=self.offset + self.limit)

    def previous_page(self) -> "QueryState":
        if not self.paginated:
            return self
        return replace(self, offset=max(0, self.offset - self.limit))

    def validate(self) -> list[FieldError]:
        errs: list[FieldError] = []
        if self.sort_by not in SORT_FIELDS:
            errs.append(FieldError("sort_by", f"Sort field must be one of: {', '.join(SORT_FIELDS)}"))
        if self.sort_order not in SORT_ORDERS:
            errs.append(FieldError("sort_order", "Sort order must be asc or desc."))
        if self.applicant_id is not None and not isinstance(self.applicant_id, int):
            errs.append(FieldError("applicant_id", "Applicant id must be numeric."))
        if self.offset < 0:
            errs.append(FieldError("offset", "Offset cannot be negative."))
        if self.status and normalize_status(self.status) is ApplicationStatus.UNKNOWN:
            errs.append(FieldError("status", f"Unknown status: {self.status}"))
        return errs

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "applicant_id": self.applicant_id,
            "business_type": self.business_type,
            "search": self.search,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
            "offset": self.offset,
            "limit": self.limit,
        }


@dataclass(frozen=True)
class QueryResult:
    records: list[Application] = field(default_factory=list)
    total: int = 0
    error: ReviewError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    value: T | None = None
    error: ReviewError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _text(v: str | None) -> str:
    return (v or "").strip()


def _int_or_default(v: str | None, default: int) -> int:
    try:
        return int(_text(v))
    except ValueError:
        return default


def _int_or_raw(v: str | None) -> int | str | None:
    s = _text(v)
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return s


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """ILIKE pattern matching `term` literally anywhere; use with escape=LIKE_ESCAPE."""
    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def status_column_key():
    """SQL expression folding the stored status the same way status_key() does."""
    folded = func.lower(func.trim(Application.status))
    return func.replace(func.replace(folded, " ", "_"), "-", "_")


def build_application_query(s: Session, state: QueryState):
    q = (
        s.query(Application)
        .outerjoin(Business, Application.business_id == Business.id)
        .options(
            selectinload(Application.business),
            selectinload(Application.applicant),
            selectinload(Application.steps).selectinload(ApplicationStep.assignee),
        )
    )

    if state.status:
        q = q.filter(status_column_key().in_(stored_spellings(normalize_status(state.status))))

    if state.applicant_id is not None:
        q = q.filter(Application.applicant_id == state.applicant_id)

    if state.business_type and state.business_type.lower() != "all":
        q = q.filter(func.lower(Business.business_type) == state.business_type.lower())

    if state.search:
        like = contains_pattern(state.search)
        q = q.filter(
            or_(
                Application.application_number.ilike(like, escape=LIKE_ESCAPE),
                Business.business_name.ilike(like, escape=LIKE_ESCAPE),
                Business.proposed_trade_name.ilike(like, escape=LIKE_ESCAPE),
            )
        )
    return q


def query_applications(s: Session, state: QueryState) -> QueryResult:
    errs = state.validate()
    if errs:
        return QueryResult(error=ValidationError(errs))

    try:
        q = build_application_query(s, state)
        total = q.count()

        col = getattr(Application, state.sort_by)
        q = q.order_by(col.asc() if state.sort_order == "asc" else col.desc())
        if state.paginated:
            q = q.offset(state.offset).limit(min(state.limit, MAX_PAGE_SIZE))
        records = q.all()
    except SQLAlchemyError as e:
        err = classify_db_error(e)
        logger.error("Application query failed (filters=%s): %s", state.to_dict(), err.message)
        s.rollback()
        return QueryResult(error=err)

    return QueryResult(records=records, total=total)


def search_applications(s: Session, term: str, *, limit: int = SEARCH_PAGE_SIZE, offset: int = 0) -> QueryResult:
    """Free-text search, newest first."""
    state = QueryState(search=_text(term), limit=limit, offset=offset, sort_by="created_at", sort_order="desc")
    return query_applications(s, state)


def fetch_application(s: Session, application_id: int) -> FetchResult[Application]:
    """Full joined record for the detail screen, or a NotFoundError."""
    from app.regdesk.modules.documents.models import BusinessDocument

    try:
        app_row = (
            s.query(Application)
            .options(
                selectinload(Application.business).selectinload(Business.type_info),
                selectinload(Application.applicant),
                selectinload(Application.steps).selectinload(ApplicationStep.assignee),
                selectinload(Application.documents).selectinload(BusinessDocument.versions),
                selectinload(Application.payments),
                selectinload(Application.appointments),
            )
            .filter(Application.id == application_id)
            .one_or_none()
        )
    except SQLAlchemyError as e:
        err = classify_db_error(e)
        logger.error("Application detail read failed (id=%s): %s", application_id, err.message)
        s.rollback()
        return FetchResult(error=err)

    if app_row is None:
        return FetchResult(error=NotFoundError(f"Application {application_id} not found."))
    return FetchResult(value=app_row)
