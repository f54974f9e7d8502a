import mimetypes
from pathlib import PurePosixPath

from flask import Blueprint, abort, current_app, jsonify, send_file

from app.regdesk.storage import LocalStorage, StorageError
from app.regdesk.utils import current_storage

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return jsonify({"service": "regdesk", "login": "/auth/login", "admin": "/admin/"})


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load-balancer probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/documents/local/<token>")
def local_document(token: str):
    """Serve a file behind a local signed URL. The token is the authorization."""
    storage = current_storage()
    if not isinstance(storage, LocalStorage):
        abort(404)
    try:
        key = storage.resolve_token(token)
        fobj = storage.open(key)
    except StorageError as e:
        current_app.logger.info("Local document link rejected: %s", e)
        abort(404)
    name = PurePosixPath(key).name
    mime = mimetypes.guess_type(name)[0] or "application/octet-stream"
    return send_file(fobj, mimetype=mime, as_attachment=False, download_name=name, max_age=0)
