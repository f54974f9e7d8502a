"""
Application status normalization.

Stored status strings are inconsistent (``under_review``, ``In Review``,
``SUBMITTED``, ``pending`` ...). Every comparison goes through
``normalize_status`` so counting and filtering agree on one vocabulary.
"""
from __future__ import annotations

import re
from enum import Enum


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUIRED = "revision_required"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


_SYNONYMS: dict[str, ApplicationStatus] = {
    "draft": ApplicationStatus.DRAFT,
    "submitted": ApplicationStatus.SUBMITTED,
    "pending": ApplicationStatus.SUBMITTED,
    "under_review": ApplicationStatus.UNDER_REVIEW,
    "in_review": ApplicationStatus.UNDER_REVIEW,
    "review": ApplicationStatus.UNDER_REVIEW,
    "reviewing": ApplicationStatus.UNDER_REVIEW,
    "approved": ApplicationStatus.APPROVED,
    "rejected": ApplicationStatus.REJECTED,
    "revision_required": ApplicationStatus.REVISION_REQUIRED,
    "revision_requested": ApplicationStatus.REVISION_REQUIRED,
    "changes_requested": ApplicationStatus.REVISION_REQUIRED,
    "completed": ApplicationStatus.COMPLETED,
    "registered": ApplicationStatus.COMPLETED,
}

_SEPARATORS = re.compile(r"[\s\-]+")

# Stage labels shown on the application snapshot
_STAGES = {
    ApplicationStatus.UNDER_REVIEW: "In Review",
    ApplicationStatus.APPROVED: "Approval Granted",
    ApplicationStatus.COMPLETED: "Registration Complete",
}
DEFAULT_STAGE = "Application Submitted"


def status_key(raw: str | None) -> str:
    """Lower-case, separator-folded form of a stored status ("In Review" -> "in_review")."""
    return _SEPARATORS.sub("_", (raw or "").strip().lower())


def normalize_status(raw: str | ApplicationStatus | None) -> ApplicationStatus:
    if isinstance(raw, ApplicationStatus):
        return raw
    return _SYNONYMS.get(status_key(raw), ApplicationStatus.UNKNOWN)


def stored_spellings(status: ApplicationStatus) -> list[str]:
    """Folded spellings that normalize to ``status`` (for SQL filters)."""
    return sorted(k for k, v in _SYNONYMS.items() if v is status)


def current_stage(raw: str | None) -> str:
    return _STAGES.get(normalize_status(raw), DEFAULT_STAGE)
