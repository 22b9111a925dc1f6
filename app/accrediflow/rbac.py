from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g

from app.accrediflow.models import User


def user_can_act(user: User | None) -> bool:
    return bool(user and user.is_active and user.approved)


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not user_can_act(getattr(g, "current_user", None)):
            abort(401)
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated → 401
            if not user_can_act(user):
                abort(401)
            # Authenticated but wrong role → 403
            if user.role not in roles:  # type: ignore[union-attr]
                g.missing_role = ",".join(roles)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
