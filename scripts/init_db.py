import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.accrediflow.constants import ROLE_SUPERADMIN  # noqa: E402
from app.accrediflow.db import build_engine, build_sessionmaker  # noqa: E402
from app.accrediflow.models import User  # noqa: E402


@contextmanager
def _session_scope(database_url: str):
    s: Session = build_sessionmaker(build_engine(database_url))()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the superadmin account in an idempotent way.
    Does NOT overwrite an existing superadmin's password.
    """
    email = (os.environ.get("SUPERADMIN_EMAIL") or "superadmin@accrediflow.local").strip().lower()
    password = os.environ.get("SUPERADMIN_PASSWORD") or "change-me"
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///accrediflow.db").strip()

    with _session_scope(db_url) as s:
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user:
            user = User(
                name="Superadmin",
                email=email,
                password_hash=generate_password_hash(password),
                role=ROLE_SUPERADMIN,
                approved=True,
                is_active=True,
            )
            s.add(user)
        else:
            user.role = ROLE_SUPERADMIN
            user.approved = True

    print("Initialized database (seed_only).")
    print(f"Superadmin email: {email}")
    print("Superadmin password: (from SUPERADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
