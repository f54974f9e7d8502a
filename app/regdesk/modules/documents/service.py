from __future__ import annotations

import hashlib
import logging
import mimetypes
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from app.regdesk.audit import record_event
from app.regdesk.constants import DEFAULT_SIGNED_URL_EXPIRES_IN
from app.regdesk.errors import FieldError, TransportError, ValidationError, classify_db_error
from app.regdesk.models import User
from app.regdesk.modules.applications.models import Application
from app.regdesk.modules.applications.presenters import jsonable
from app.regdesk.modules.applications.query import FetchResult
from app.regdesk.modules.documents.models import BusinessDocument, DocumentVersion
from app.regdesk.storage import Storage, StorageError, StorageObject

logger = logging.getLogger(__name__)

REVIEW_STATUSES = ("pending", "approved", "rejected")
MAX_URL_WORKERS = 8

_SEPARATORS = re.compile(r"[_\-\s]+")

_TYPE_KEYWORDS = (
    ("permit", "Permit"),
    ("plan", "Plan"),
    ("report", "Report"),
    ("form", "Form"),
)


def _fold(name: str) -> str:
    return _SEPARATORS.sub(" ", (name or "").lower()).strip()


def humanize_file_name(name: str) -> str:
    """'business_plan-v2.pdf' -> 'Business Plan V2'"""
    stem = PurePosixPath(name or "").stem if "." in (name or "") else (name or "")
    words = _SEPARATORS.sub(" ", stem).split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def guess_doc_type(name: str) -> str:
    low = (name or "").lower()
    for keyword, label in _TYPE_KEYWORDS:
        if keyword in low:
            return label
    return "Document"


def display_status(status: str | None) -> str:
    words = (status or "pending").replace("_", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words)


def _name_matches(document_name: str, object_name: str) -> bool:
    needle = _fold(document_name)
    return bool(needle) and needle in _fold(object_name)


def merge_documents(
    documents: Sequence[BusinessDocument],
    objects: Sequence[StorageObject],
) -> list[dict[str, Any]]:
    """
    Table documents first (in input order), then storage objects that no
    table document claimed.

    A table document points at its current version's file when it has one,
    otherwise at the first storage object whose name contains the document
    name.
    """
    claimed: set[str] = set()
    merged: list[dict[str, Any]] = []

    for d in documents:
        path = d.current_version.file_path if d.current_version is not None else None
        if path is None:
            match = next((o for o in objects if o.key not in claimed and _name_matches(d.document_name, o.name)), None)
            if match is not None:
                path = match.key
        if path is None and d.storage_path:
            path = d.storage_path
        if path:
            claimed.add(path)
        merged.append(
            {
                "id": d.id,
                "name": d.document_name,
                "type": d.document_type or guess_doc_type(d.document_name),
                "status": display_status(d.status),
                "uploadDate": d.created_at or d.updated_at,
                "storagePath": path,
                "source": "table",
            }
        )

    for o in objects:
        if o.key in claimed:
            continue
        merged.append(
            {
                "id": o.id,
                "name": humanize_file_name(o.name),
                "type": guess_doc_type(o.name),
                "status": "Pending",
                "uploadDate": o.created_at,
                "storagePath": o.key,
                "source": "storage",
            }
        )
    return merged


def document_summary(entries: Iterable[dict[str, Any]]) -> dict[str, int]:
    out = {"total": 0, "approved": 0, "pending": 0, "rejected": 0}
    for e in entries:
        out["total"] += 1
        k = str(e.get("status") or "").strip().lower()
        if k in out:
            out[k] += 1
    return out


def applicant_folder(application: Application) -> str | None:
    return str(application.applicant_id) if application.applicant_id is not None else None


def list_application_documents(s: Session, storage: Storage, application: Application) -> FetchResult[dict[str, Any]]:
    """
    Merged document list for one application. A storage listing failure is
    reported alongside the table rows rather than failing the read.
    """
    try:
        rows = (
            s.query(BusinessDocument)
            .filter(BusinessDocument.application_id == application.id)
            .order_by(BusinessDocument.created_at.asc(), BusinessDocument.id.asc())
            .all()
        )
    except SQLAlchemyError as e:
        err = classify_db_error(e)
        logger.error("Document read failed (application=%s): %s", application.id, err.message)
        s.rollback()
        return FetchResult(error=err)

    objects: list[StorageObject] = []
    storage_error = None
    folder = applicant_folder(application)
    if folder:
        try:
            objects = storage.list(folder)
        except StorageError as e:
            logger.warning("Storage listing failed (folder=%s): %s", folder, e)
            storage_error = str(e)

    merged = merge_documents(rows, objects)
    return FetchResult(
        value={
            "documents": jsonable(merged),
            "summary": document_summary(merged),
            "storageError": storage_error,
        }
    )


def check_expiry(expires_in: int) -> None:
    if expires_in <= 0:
        raise ValidationError(FieldError("expires_in", "Expiry must be a positive number of seconds."))


def get_document_url(
    storage: Storage, path: str, *, expires_in: int = DEFAULT_SIGNED_URL_EXPIRES_IN
) -> FetchResult[str]:
    path = (path or "").strip()
    if not path:
        return FetchResult(error=ValidationError(FieldError("path", "Document path is required.")))
    try:
        check_expiry(expires_in)
    except ValidationError as e:
        return FetchResult(error=e)
    try:
        return FetchResult(value=storage.signed_url(path, expires_in=expires_in))
    except StorageError as e:
        logger.warning("Signed URL failed (path=%s): %s", path, e)
        return FetchResult(error=TransportError(str(e)))


def resolve_document_urls(
    storage: Storage, paths: Sequence[str], *, expires_in: int = DEFAULT_SIGNED_URL_EXPIRES_IN
) -> FetchResult[dict[str, str]]:
    """
    Sign several paths concurrently. Successes are returned even when some
    paths fail; the first failure is reported only when every path failed.
    """
    unique = list(dict.fromkeys(p.strip() for p in paths if p and p.strip()))
    if not unique:
        return FetchResult(value={})
    try:
        check_expiry(expires_in)
    except ValidationError as e:
        return FetchResult(value={}, error=e)

    with ThreadPoolExecutor(max_workers=min(MAX_URL_WORKERS, len(unique))) as pool:
        results = list(pool.map(lambda p: get_document_url(storage, p, expires_in=expires_in), unique))

    urls = {p: r.value for p, r in zip(unique, results) if r.ok and r.value}
    if not urls:
        first = next(r.error for r in results if r.error is not None)
        return FetchResult(value={}, error=first)
    return FetchResult(value=urls)


def file_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def version_storage_key(document: BusinessDocument, version_number: int, filename: str) -> str:
    folder = str(document.application.applicant_id) if document.application else "unassigned"
    slug = secure_filename(document.document_name) or "document"
    return f"{folder}/{slug}_v{version_number}_{filename}"


def _commit(s: Session, what: str) -> None:
    try:
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        err = classify_db_error(e)
        logger.error("%s failed: %s", what, err.message)
        raise err from e


def add_document_version(
    s: Session,
    storage: Storage,
    document: BusinessDocument,
    *,
    filename: str,
    data: bytes,
    content_type: str | None,
    user: User | None,
    notes: str = "",
    now: datetime | None = None,
) -> DocumentVersion:
    """
    Store a new file for a document and make it current. The document goes
    back to pending review.
    """
    errs = []
    if not (filename or "").strip():
        errs.append(FieldError("file", "Choose a file to upload."))
    elif not data:
        errs.append(FieldError("file", "Uploaded file is empty."))
    if errs:
        raise ValidationError(errs)

    safe_name = secure_filename(filename) or "document.bin"
    mime = (content_type or mimetypes.guess_type(safe_name)[0] or "application/octet-stream").strip()
    now = now or datetime.utcnow()

    current_max = (
        s.query(func.max(DocumentVersion.version_number)).filter(DocumentVersion.document_id == document.id).scalar()
    )
    number = int(current_max or 0) + 1
    key = version_storage_key(document, number, safe_name)

    try:
        storage.put_bytes(key, data, content_type=mime)
    except StorageError as e:
        logger.error("Document upload failed (document=%s key=%s): %s", document.id, key, e)
        raise TransportError(str(e)) from e

    v = DocumentVersion(
        document_id=document.id,
        version_number=number,
        file_path=key,
        file_name=safe_name,
        file_size=len(data),
        mime_type=mime,
        sha256=file_digest(data),
        upload_notes=(notes or "").strip() or None,
        uploaded_at=now,
        uploaded_by_user_id=user.id if user else None,
    )
    s.add(v)
    s.flush()

    document.current_version_id = v.id
    document.current_version = v
    document.storage_path = key
    document.status = "pending"
    document.updated_at = now

    record_event(
        s,
        actor=user,
        action="document.upload",
        entity_type="BusinessDocument",
        entity_id=str(document.id),
        metadata={
            "application_id": document.application_id,
            "version": number,
            "filename": safe_name,
            "sha256": v.sha256,
            "size_bytes": v.file_size,
        },
    )
    _commit(s, f"Version upload for document {document.id}")
    logger.info("Document %s v%s uploaded (%s bytes)", document.id, number, v.file_size)
    return v


def review_document(
    s: Session,
    document: BusinessDocument,
    *,
    status: str,
    notes: str = "",
    user: User | None,
    now: datetime | None = None,
) -> BusinessDocument:
    status = (status or "").strip().lower()
    notes = (notes or "").strip()
    errs = []
    if status not in REVIEW_STATUSES:
        errs.append(FieldError("status", f"Status must be one of: {', '.join(REVIEW_STATUSES)}"))
    elif status == "rejected" and not notes:
        errs.append(FieldError("notes", "Please explain why the document was rejected."))
    if errs:
        raise ValidationError(errs)

    previous = document.status
    now = now or datetime.utcnow()
    document.status = status
    document.review_notes = notes or None
    document.reviewed_by_user_id = user.id if user else None
    document.reviewed_at = now
    document.updated_at = now

    record_event(
        s,
        actor=user,
        action="document.review",
        entity_type="BusinessDocument",
        entity_id=str(document.id),
        reason=notes or None,
        metadata={"application_id": document.application_id, "from_status": previous, "to_status": status},
    )
    _commit(s, f"Review of document {document.id}")
    return document
