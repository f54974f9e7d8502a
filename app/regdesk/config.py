import os
from dataclasses import dataclass

from app.regdesk.constants import DEFAULT_REJECTION_REASONS, DEFAULT_SIGNED_URL_EXPIRES_IN, DEFAULT_SLA_DAYS


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    storage_local_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    sla_days: int
    rejection_reasons: tuple[str, ...]
    signed_url_expires_in: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _parse_reasons(raw: str) -> tuple[str, ...]:
    reasons = tuple(r.strip() for r in raw.split(";") if r.strip())
    return reasons or DEFAULT_REJECTION_REASONS


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///regdesk.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_local_root=_getenv("STORAGE_LOCAL_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "us-east-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        sla_days=_getenv_int("SLA_DAYS", DEFAULT_SLA_DAYS),
        rejection_reasons=_parse_reasons(_getenv("REJECTION_REASONS", "")),
        signed_url_expires_in=_getenv_int("SIGNED_URL_EXPIRES_IN", DEFAULT_SIGNED_URL_EXPIRES_IN),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_LOCAL_ROOT": s.storage_local_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # review policy
        "SLA_DAYS": s.sla_days,
        "REJECTION_REASONS": s.rejection_reasons,
        "SIGNED_URL_EXPIRES_IN": s.signed_url_expires_in,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,
        # document uploads (25MB)
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
