"""
Error taxonomy shared by the query gateway, decision workflow and documents.

The gateway returns these as values (see QueryResult / FetchResult); the
decision workflow raises them. Blueprints turn either form into a JSON
``{"error": ...}`` body with ``http_status``.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import DBAPIError, SQLAlchemyError


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ReviewError(Exception):
    http_status = 500
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(ReviewError):
    http_status = 400
    kind = "validation"

    def __init__(self, errors: list[FieldError] | FieldError):
        if isinstance(errors, FieldError):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["fields"] = {e.field: e.message for e in self.errors}
        return d


class NotFoundError(ReviewError):
    http_status = 404
    kind = "not_found"


class ConflictError(ReviewError):
    http_status = 409
    kind = "conflict"


class PermissionDeniedError(ReviewError):
    http_status = 403
    kind = "permission"


class TransportError(ReviewError):
    http_status = 503
    kind = "transport"


_PERMISSION_SQLSTATE = "42501"  # insufficient_privilege


def classify_db_error(exc: SQLAlchemyError) -> ReviewError:
    """Map a SQLAlchemy failure onto the review error taxonomy."""
    if isinstance(exc, DBAPIError):
        orig = getattr(exc, "orig", None)
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code == _PERMISSION_SQLSTATE or "permission denied" in str(orig or "").lower():
            return PermissionDeniedError(f"Query rejected by access policy: {orig}")
        return TransportError(f"Database unavailable: {orig or exc}")
    return TransportError(f"Database error: {exc}")
