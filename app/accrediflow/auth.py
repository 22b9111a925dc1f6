from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request, session
from werkzeug.security import check_password_hash

from app.accrediflow.accounts import register_institute_admin
from app.accrediflow.audit import record_event
from app.accrediflow.db import db_session
from app.accrediflow.models import User
from app.accrediflow.rbac import require_login
from app.accrediflow.security import ensure_csrf_token

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active or not user.approved:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def _login_payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@bp.post("/register")
def register():
    s = db_session()
    data = _login_payload()
    user = register_institute_admin(s, data)
    return {"message": "Registration successful! Awaiting Superadmin approval.", "user": user.to_dict()}, 201


@bp.post("/login")
def login_post():
    data = _login_payload()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    requested_role = (data.get("role") or "").strip().lower()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return {"error": "rate_limited", "message": "Too many login attempts. Please wait 5 minutes."}, 429

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        return {"error": "authentication_error", "message": "Invalid email or password."}, 401

    if not user.approved:
        return {"error": "authorization_error", "message": "Your account is pending approval."}, 403
    if requested_role and requested_role != user.role:
        return {
            "error": "authorization_error",
            "message": f"You do not have permissions for the '{requested_role}' role.",
        }, 403

    session.clear()
    session["user_id"] = user.id
    session.permanent = True
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("User %s logged in as %s", user.id, user.role)
    return {"user": user.to_dict(), "csrf_token": ensure_csrf_token()}


@bp.get("/me")
@require_login
def me():
    return {"user": g.current_user.to_dict(), "csrf_token": ensure_csrf_token()}


@bp.get("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return {"ok": True}
