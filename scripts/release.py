"""
Release-phase helper.

- Fail fast if DATABASE_URL is missing (avoid silently using SQLite in prod).
- Run alembic migrations, then confirm the review tables exist.
- Seed permissions/roles/admin user (idempotent; does NOT overwrite existing passwords).

Usage:
  python scripts/release.py [--skip-seed]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def _migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def _missing_tables(db_url: str) -> list[str]:
    from sqlalchemy import create_engine, inspect

    from app.regdesk import REQUIRED_TABLES

    engine = create_engine(db_url)
    try:
        insp = inspect(engine)
        return [t for t in REQUIRED_TABLES if not insp.has_table(t)]
    finally:
        engine.dispose()


def run_release(*, seed: bool = True) -> None:
    db_url = _require_env("DATABASE_URL")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")

    print("=== regdesk release start ===", flush=True)
    print(f"ENV={env or '(unset)'}", flush=True)
    print("Running Alembic migrations...", flush=True)
    _migrate(db_url)

    missing = _missing_tables(db_url)
    if missing:
        raise RuntimeError(f"Migrations finished but review tables are missing: {', '.join(missing)}")
    print("Migrations complete; review schema present.", flush=True)

    if seed:
        print("Seeding permissions/roles/admin (idempotent)...", flush=True)
        from scripts import init_db

        init_db.seed_only(database_url=db_url)
        print("Seed complete.", flush=True)
    else:
        print("Seed skipped.", flush=True)
    print("=== regdesk release done ===", flush=True)


def main() -> None:
    ap = argparse.ArgumentParser(description="Migrate the regdesk database and seed reviewer roles.")
    ap.add_argument("--skip-seed", action="store_true", help="Run migrations only.")
    args = ap.parse_args()
    run_release(seed=not args.skip_seed)


if __name__ == "__main__":
    main()
