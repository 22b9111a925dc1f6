"""
Account provisioning: institute-admin signup, superadmin approval, and
institute users created by their admin.
"""
from __future__ import annotations

import logging
import re

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.accrediflow.audit import record_event
from app.accrediflow.constants import INSTITUTE_ROLES, ROLE_ADMIN
from app.accrediflow.errors import NotFoundError, ValidationError
from app.accrediflow.models import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _is_valid_email(email: str) -> bool:
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def _clean(data: dict, key: str) -> str:
    return (data.get(key) or "").strip()


def _validate_credentials(s: Session, name: str, email: str, password: str) -> None:
    if not name:
        raise ValidationError("Name is required.", field="name")
    if not email or not _is_valid_email(email):
        raise ValidationError("A valid email is required.", field="email")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", field="password")
    if s.query(User).filter(User.email == email).one_or_none():
        raise ValidationError("User with this email already exists.", field="email")


def register_institute_admin(s: Session, data: dict) -> User:
    """Institute signup: creates an unapproved admin account."""
    name = _clean(data, "name")
    email = _clean(data, "email").lower()
    password = data.get("password") or ""
    _validate_credentials(s, name, email, password)

    institute = {
        "institute_name": _clean(data, "instituteName"),
        "institute_type": _clean(data, "instituteType"),
        "accreditation_body": _clean(data, "accreditationBody"),
        "email_domain": _clean(data, "emailDomain"),
    }
    for key, value in institute.items():
        if not value:
            raise ValidationError("Institute name, type, accreditation body and email domain are required.", field=key)

    user = User(
        name=name,
        email=email,
        phone=_clean(data, "phone") or None,
        password_hash=generate_password_hash(password),
        role=ROLE_ADMIN,
        approved=False,
        **institute,
    )
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=None,
        action="user.register",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": email, "institute": institute["institute_name"]},
    )
    s.commit()
    return user


def pending_admins(s: Session) -> list[User]:
    return s.query(User).filter(User.role == ROLE_ADMIN, User.approved.is_(False)).order_by(User.created_at.asc()).all()


def approve_account(s: Session, user_id: int, *, actor: User) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User not found.")
    user.approved = True
    record_event(s, actor=actor, action="user.approve", entity_type="User", entity_id=str(user.id))
    s.commit()
    logger.info("User %s approved by %s", user.id, actor.id)
    return user


def create_institute_user(s: Session, data: dict, *, actor: User) -> User:
    """Admin-provisioned account (coordinator, hod, faculty); approved at creation, inherits the institute."""
    name = _clean(data, "name")
    email = _clean(data, "email").lower()
    password = data.get("password") or ""
    role = _clean(data, "role").lower()
    _validate_credentials(s, name, email, password)
    if role not in INSTITUTE_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(sorted(INSTITUTE_ROLES))}.", field="role")

    user = User(
        name=name,
        email=email,
        phone=_clean(data, "phone") or None,
        password_hash=generate_password_hash(password),
        role=role,
        approved=True,
        institute_name=actor.institute_name,
        created_by_user_id=actor.id,
    )
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": email, "role": role},
    )
    s.commit()
    return user


def institute_users(s: Session, *, actor: User) -> list[User]:
    return s.query(User).filter(User.institute_name == actor.institute_name).order_by(User.email.asc()).all()
