"""
Error kinds surfaced by the approval workflow.

Each carries the HTTP status the JSON error handler answers with; callers
outside a request (scripts, tests) can catch them by type.
"""
from __future__ import annotations


class WorkflowError(Exception):
    status_code = 400
    kind = "error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        out = {"error": self.kind, "message": self.message}
        if self.field:
            out["field"] = self.field
        return out


class ValidationError(WorkflowError):
    status_code = 400
    kind = "validation_error"


class NotFoundError(WorkflowError):
    status_code = 404
    kind = "not_found"


class AuthorizationError(WorkflowError):
    status_code = 403
    kind = "authorization_error"


class ConflictError(WorkflowError):
    status_code = 409
    kind = "conflict"


class DependencyError(WorkflowError):
    status_code = 502
    kind = "dependency_error"
