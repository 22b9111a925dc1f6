"""
Approval state machine for evidentiary documents.

Faculty uploads wait for the HOD, then the coordinator; uploads by HODs and
coordinators skip the HOD stage. Approved and Rejected are terminal: a
re-submission is a new document.

``TRANSITIONS`` maps ``(status, role, decision)`` to the next status;
anything missing from it is refused.
"""
from __future__ import annotations

from app.accrediflow.constants import ROLE_COORDINATOR, ROLE_FACULTY, ROLE_HOD
from app.accrediflow.errors import AuthorizationError, ValidationError

STATUS_PENDING_HOD = "PendingHODApproval"
STATUS_PENDING_COORDINATOR = "PendingCoordinatorApproval"
STATUS_APPROVED = "Approved"
STATUS_REJECTED = "Rejected"

VALID_STATUSES = frozenset({STATUS_PENDING_HOD, STATUS_PENDING_COORDINATOR, STATUS_APPROVED, STATUS_REJECTED})
TERMINAL_STATUSES = frozenset({STATUS_APPROVED, STATUS_REJECTED})

DECISION_APPROVED = "Approved"
DECISION_REJECTED = "Rejected"

VALID_DECISIONS = frozenset({DECISION_APPROVED, DECISION_REJECTED})

# History actions besides the decisions themselves.
ACTION_UPLOADED = "Uploaded"
ACTION_COMMENTED = "Commented"

TRANSITIONS: dict[tuple[str, str, str], str] = {
    (STATUS_PENDING_HOD, ROLE_HOD, DECISION_APPROVED): STATUS_PENDING_COORDINATOR,
    (STATUS_PENDING_HOD, ROLE_HOD, DECISION_REJECTED): STATUS_REJECTED,
    (STATUS_PENDING_COORDINATOR, ROLE_COORDINATOR, DECISION_APPROVED): STATUS_APPROVED,
    (STATUS_PENDING_COORDINATOR, ROLE_COORDINATOR, DECISION_REJECTED): STATUS_REJECTED,
}

# Which role a pending status is waiting on.
AWAITING_ROLE = {
    STATUS_PENDING_HOD: ROLE_HOD,
    STATUS_PENDING_COORDINATOR: ROLE_COORDINATOR,
}


def initial_status_for(role: str) -> str:
    """Faculty start at the HOD stage; every role above faculty starts at the coordinator stage."""
    if role == ROLE_FACULTY:
        return STATUS_PENDING_HOD
    return STATUS_PENDING_COORDINATOR


def normalize_decision(decision: str | None) -> str:
    d = (decision or "").strip().capitalize()
    if d not in VALID_DECISIONS:
        raise ValidationError(
            f"Invalid decision {decision!r}; expected one of: {', '.join(sorted(VALID_DECISIONS))}.",
            field="decision",
        )
    return d


def next_status(status: str, role: str, decision: str) -> str:
    """
    Resolve the status a decision moves a document to.
    Raises AuthorizationError when the document is not awaiting this role's decision.
    """
    try:
        return TRANSITIONS[(status, role, decision)]
    except KeyError:
        if status in TERMINAL_STATUSES:
            raise AuthorizationError(f"Document is already {status}; no further decisions are accepted.") from None
        raise AuthorizationError(
            f"Document in status {status} is not awaiting a decision from role {role!r}."
        ) from None


def can_decide(status: str, role: str) -> bool:
    return AWAITING_ROLE.get(status) == role


def default_comment(new_status: str, role: str) -> str:
    return f"Status updated to {new_status} by {role}"
