import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.regdesk.models import Permission, Role, User  # noqa: E402

PERMISSIONS = (
    ("admin.view", "Admin: system status and audit"),
    ("applications.view", "Applications: view"),
    ("applications.decide", "Applications: approve / reject / request changes"),
    ("applications.export", "Applications: export CSV"),
    ("documents.view", "Documents: view and sign URLs"),
    ("documents.upload", "Documents: upload versions"),
    ("documents.review", "Documents: review"),
    ("dashboard.view", "Dashboard: view and export"),
    ("applicants.view", "Applicants: view and export"),
)

# Reviewers get everything except the admin shell.
REVIEWER_PERMISSIONS = tuple(k for k, _ in PERMISSIONS if k != "admin.view")


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def ensure_role(s: Session, key: str, name: str, perms: list[Permission]) -> Role:
    role = s.query(Role).filter(Role.key == key).one_or_none()
    if not role:
        role = Role(key=key, name=name)
        s.add(role)
    for p in perms:
        if p not in role.permissions:
            role.permissions.append(p)
    return role


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@regdesk.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///regdesk.db").strip()

    with _session_scope(db_url) as s:
        perms: dict[str, Permission] = {}
        for key, name in PERMISSIONS:
            p = s.query(Permission).filter(Permission.key == key).one_or_none()
            if not p:
                p = Permission(key=key, name=name)
                s.add(p)
            perms[key] = p

        role_admin = ensure_role(s, "admin", "Administrator", list(perms.values()))
        ensure_role(s, "reviewer", "Reviewer", [perms[k] for k in REVIEWER_PERMISSIONS])

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                full_name="Administrator",
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
