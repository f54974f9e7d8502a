import logging
import os
from datetime import timedelta

from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.regdesk.admin import bp as admin_bp
from app.regdesk.auth import bp as auth_bp, load_current_user
from app.regdesk.config import load_config
from app.regdesk.db import init_db, teardown_db_session
from app.regdesk.modules.applicants.admin import bp as applicants_bp
from app.regdesk.modules.applications.admin import bp as applications_bp
from app.regdesk.modules.applications.decisions import InFlightGuard
from app.regdesk.modules.documents.admin import bp as documents_bp
from app.regdesk.modules.reporting.admin import bp as reporting_bp
from app.regdesk.routes import bp as routes_bp

# Tables the review screens read from; a missing one means migrations were not run.
REQUIRED_TABLES = (
    "users",
    "audit_events",
    "applicants",
    "businesses",
    "business_applications",
    "application_steps",
    "business_documents",
    "document_versions",
)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.regdesk.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz", "/documents/local/")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout pass through.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid.", "kind": "validation"}), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    app.extensions["decision_guard"] = InFlightGuard()

    if hasattr(os, "register_at_fork"):

        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            from app.regdesk.storage import S3Storage, storage_from_config

            storage = storage_from_config(app.config)
            if isinstance(storage, S3Storage):
                try:
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
                except (BotoCoreError, ClientError) as e:
                    app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(applications_bp, url_prefix="/admin")
    app.register_blueprint(documents_bp, url_prefix="/admin")
    app.register_blueprint(reporting_bp, url_prefix="/admin")
    app.register_blueprint(applicants_bp, url_prefix="/admin")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): detect missing tables before serving admin pages.
    def _run_schema_health_check() -> bool:
        missing: list[str] = []
        try:
            insp = sa_inspect(app.extensions["sqlalchemy_engine"])
            missing = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
        except SQLAlchemyError as e:
            app.logger.exception("Schema health check failed: %s", e)
        app.config["_schema_health_ok"] = not missing
        app.config["_schema_health_missing"] = missing
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        return not missing

    _run_schema_health_check()

    @app.before_request
    def _schema_health_guardrail():
        if app.config.get("_schema_health_ok"):
            return None
        if not request.path.startswith("/admin"):
            return None
        # Re-check so a migration run after boot clears the guardrail.
        if _run_schema_health_check():
            return None
        if getattr(g, "current_user", None):
            return jsonify({"error": "Database schema out of date.", "missing": app.config["_schema_health_missing"]}), 500
        return None

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error.", "request_id": getattr(g, "request_id", None)}), 500

    @app.errorhandler(403)
    def _err_403(e):
        missing_perm = getattr(g, "missing_permission", None)
        if missing_perm:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing_perm, getattr(g, "request_id", None))
        return jsonify({"error": "Forbidden.", "missing_permission": missing_perm}), 403

    @app.errorhandler(404)
    def _err_404(e):
        return jsonify({"error": "Not found."}), 404

    @app.errorhandler(413)
    def _err_413(e):
        limit_mb = int(app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        return jsonify({"error": f"File too large. Maximum size is {limit_mb}MB."}), 413

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")
    return app
