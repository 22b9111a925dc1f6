from flask import Blueprint, g, request
from sqlalchemy import select

from app.accrediflow.accounts import approve_account, create_institute_user, institute_users, pending_admins
from app.accrediflow.constants import ROLE_ADMIN, ROLE_SUPERADMIN
from app.accrediflow.db import db_session
from app.accrediflow.models import AuditEvent, User
from app.accrediflow.rbac import require_role

bp = Blueprint("admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


# ============================================================================
# SUPERADMIN
# ============================================================================


@bp.get("/accounts/pending")
@require_role(ROLE_SUPERADMIN)
def accounts_pending():
    s = db_session()
    return {"users": [u.to_dict() for u in pending_admins(s)]}


@bp.post("/accounts/<int:user_id>/approve")
@require_role(ROLE_SUPERADMIN)
def accounts_approve(user_id: int):
    s = db_session()
    user = approve_account(s, user_id, actor=_current_user())
    return {"message": f"User {user.name} approved.", "user": user.to_dict()}


# ============================================================================
# INSTITUTE ADMIN
# ============================================================================


@bp.get("/accounts")
@require_role(ROLE_ADMIN)
def accounts_list():
    s = db_session()
    return {"users": [u.to_dict() for u in institute_users(s, actor=_current_user())]}


@bp.post("/accounts")
@require_role(ROLE_ADMIN)
def accounts_create():
    s = db_session()
    user = create_institute_user(s, _payload(), actor=_current_user())
    return user.to_dict(), 201


@bp.get("/audit")
@require_role(ROLE_SUPERADMIN, ROLE_ADMIN)
def audit_list():
    s = db_session()
    u = _current_user()
    q = s.query(AuditEvent)
    if u.role == ROLE_ADMIN:
        members = select(User.id).where(User.institute_name == u.institute_name)
        q = q.filter(AuditEvent.actor_user_id.in_(members))

    action = (request.args.get("action") or "").strip()
    if action:
        q = q.filter(AuditEvent.action == action)

    events = q.order_by(AuditEvent.id.desc()).limit(200).all()
    return {
        "events": [
            {
                "id": e.id,
                "createdAt": e.created_at.isoformat(),
                "actor": e.actor_user_email,
                "action": e.action,
                "entityType": e.entity_type,
                "entityId": e.entity_id,
                "reason": e.reason,
            }
            for e in events
        ]
    }
