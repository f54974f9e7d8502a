"""
Decision workflow: approve / reject / request changes on one application.

Validation runs before the session is touched, so an incomplete decision never
reaches the database. Persistence failures surface as TransportError, distinct
from validation and not-found errors.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.regdesk.audit import record_event
from app.regdesk.constants import DEFAULT_REJECTION_REASONS
from app.regdesk.errors import ConflictError, FieldError, NotFoundError, ValidationError, classify_db_error
from app.regdesk.models import User
from app.regdesk.modules.applications.models import Application
from app.regdesk.modules.applications.status import ApplicationStatus, normalize_status

logger = logging.getLogger(__name__)

APPROVE = "approve"
REJECT = "reject"
REQUEST_CHANGES = "request-changes"
DECISIONS = (APPROVE, REJECT, REQUEST_CHANGES)

_DECISION_ALIASES = {
    "approve": APPROVE,
    "reject": REJECT,
    "request-changes": REQUEST_CHANGES,
    "request_changes": REQUEST_CHANGES,
}

_PAST_TENSE = {
    APPROVE: "approved",
    REJECT: "rejected",
    REQUEST_CHANGES: "marked for revision",
}


@dataclass(frozen=True)
class DecisionRequest:
    decision: str
    reason: str = ""
    notes: str = ""
    expected_status: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DecisionRequest":
        raw = str(payload.get("decision") or "").strip().lower()
        return cls(
            decision=_DECISION_ALIASES.get(raw, raw),
            reason=str(payload.get("reason") or "").strip(),
            notes=str(payload.get("notes") or "").strip(),
            expected_status=str(payload.get("expected_status") or "").strip(),
        )


class InFlightGuard:
    """
    Process-local, advisory: at most one decision submission per application
    at a time from this service. Not a database lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy: set[int] = set()

    def acquire(self, application_id: int) -> bool:
        with self._lock:
            if application_id in self._busy:
                return False
            self._busy.add(application_id)
            return True

    def release(self, application_id: int) -> None:
        with self._lock:
            self._busy.discard(application_id)

    def is_busy(self, application_id: int) -> bool:
        with self._lock:
            return application_id in self._busy


def validate_decision(req: DecisionRequest, *, reason_codes: tuple[str, ...] = DEFAULT_REJECTION_REASONS) -> list[FieldError]:
    errs: list[FieldError] = []
    if req.decision not in DECISIONS:
        errs.append(FieldError("decision", f"Decision must be one of: {', '.join(DECISIONS)}"))
        return errs

    if req.decision == REJECT:
        if not req.reason:
            errs.append(FieldError("reason", "Please select a rejection reason."))
        elif req.reason not in reason_codes:
            errs.append(FieldError("reason", "Rejection reason must be one of the configured reason codes."))
    elif req.decision == REQUEST_CHANGES and not req.notes:
        errs.append(FieldError("notes", "Please provide feedback for requested changes."))

    if req.expected_status and normalize_status(req.expected_status) is ApplicationStatus.UNKNOWN:
        errs.append(FieldError("expected_status", f"Unknown status: {req.expected_status}"))
    return errs


def build_update(req: DecisionRequest, *, now: datetime) -> dict[str, Any]:
    """
    Field changes for a validated decision. Terminal timestamps are kept
    mutually exclusive: each transition clears the one it does not set.
    """
    update: dict[str, Any] = {"updated_at": now}
    if req.decision == APPROVE:
        update.update(
            status=ApplicationStatus.APPROVED.value,
            approved_at=now,
            rejected_at=None,
            current_step="approved",
        )
    elif req.decision == REJECT:
        update.update(
            status=ApplicationStatus.REJECTED.value,
            rejected_at=now,
            approved_at=None,
            rejection_reason=req.reason,
            notes=req.notes or None,
            current_step="rejected",
        )
    elif req.decision == REQUEST_CHANGES:
        update.update(
            status=ApplicationStatus.REVISION_REQUIRED.value,
            approved_at=None,
            rejected_at=None,
            notes=req.notes,
            current_step="revision_required",
        )
    else:
        raise ValueError(f"Unsupported decision: {req.decision!r}")
    return update


def decision_message(decision: str) -> str:
    return f"Application {_PAST_TENSE.get(decision, 'updated')} successfully."


def submit_decision(
    s: Session,
    application_id: int,
    req: DecisionRequest,
    *,
    user: User | None,
    reason_codes: tuple[str, ...] = DEFAULT_REJECTION_REASONS,
    guard: InFlightGuard | None = None,
    now: datetime | None = None,
) -> Application:
    errs = validate_decision(req, reason_codes=reason_codes)
    if errs:
        raise ValidationError(errs)

    if guard is not None and not guard.acquire(application_id):
        raise ConflictError("A decision for this application is already being submitted.")

    try:
        try:
            a = s.get(Application, application_id)
        except SQLAlchemyError as e:
            s.rollback()
            raise classify_db_error(e) from e
        if a is None:
            raise NotFoundError(f"Application {application_id} not found.")

        previous = a.status
        if req.expected_status and normalize_status(previous) is not normalize_status(req.expected_status):
            raise ConflictError(
                f"Application status changed to {previous!r} (expected {req.expected_status!r}); reload and try again."
            )

        update = build_update(req, now=now or datetime.utcnow())
        for k, v in update.items():
            setattr(a, k, v)

        record_event(
            s,
            actor=user,
            action=f"application.{req.decision.replace('-', '_')}",
            entity_type="Application",
            entity_id=str(a.id),
            reason=req.reason or None,
            metadata={
                "application_number": a.application_number,
                "from_status": previous,
                "to_status": a.status,
                "notes": req.notes or None,
            },
        )
        try:
            s.commit()
        except SQLAlchemyError as e:
            s.rollback()
            err = classify_db_error(e)
            logger.error("Decision %s on application %s failed: %s", req.decision, application_id, err.message)
            raise err from e

        logger.info("Application %s %s (was %s)", a.application_number, _PAST_TENSE[req.decision], previous)
        return a
    finally:
        if guard is not None:
            guard.release(application_id)
