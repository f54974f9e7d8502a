from __future__ import annotations

import io
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

from flask import current_app, g, jsonify, request, send_file

from app.regdesk.csv_export import to_csv_bytes
from app.regdesk.errors import ReviewError
from app.regdesk.models import User
from app.regdesk.storage import Storage, storage_from_config


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def current_storage() -> Storage:
    return storage_from_config(current_app.config)


def error_response(err: ReviewError):
    current_app.logger.info(
        "%s %s -> %s (%s) request_id=%s",
        request.method,
        request.path,
        err.http_status,
        err.kind,
        getattr(g, "request_id", None),
    )
    return jsonify(err.to_dict()), err.http_status


def request_payload() -> dict[str, Any]:
    """JSON body when sent as JSON, otherwise the form fields."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def csv_download(header: Sequence[str], rows: Iterable[Sequence[Any]], prefix: str):
    data = to_csv_bytes(header, rows)
    filename = f"{prefix}_{date.today().strftime('%Y-%m-%d')}.csv"
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
