"""
Document workflow service layer.
Handles document creation, approval decisions, comments and role-scoped queries.

create_document, apply_decision and add_comment are units of work: each commits
on success and leaves nothing behind on failure.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.accrediflow.audit import record_event
from app.accrediflow.constants import (
    ROLE_ADMIN,
    ROLE_COORDINATOR,
    ROLE_FACULTY,
    ROLE_HOD,
    categories_for_role,
)
from app.accrediflow.errors import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from app.accrediflow.models import User

from .models import Document, DocumentHistory
from .workflow import (
    ACTION_COMMENTED,
    ACTION_UPLOADED,
    STATUS_APPROVED,
    STATUS_PENDING_COORDINATOR,
    STATUS_PENDING_HOD,
    default_comment,
    initial_status_for,
    next_status,
    normalize_decision,
)

if TYPE_CHECKING:
    from sqlalchemy.sql import Select

logger = logging.getLogger(__name__)

# Roles that see every document of their institute, not only their own.
REVIEWER_ROLES = frozenset({ROLE_ADMIN, ROLE_HOD, ROLE_COORDINATOR})


def _commit(s: Session, what: str) -> None:
    try:
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        logger.error("Commit failed during %s: %s", what, e)
        raise DependencyError(f"Could not persist {what}.") from e


def _require_institute(user: User) -> str:
    if not user.institute_name:
        raise AuthorizationError("Your account is not attached to an institute.")
    return user.institute_name


MISSING_FIELDS_MESSAGE = "Please provide a title, category, and file path."


def check_document_fields(
    user: User,
    *,
    title: str | None,
    category: str | None,
    enforce_category_whitelist: bool = False,
) -> tuple[str, str]:
    """Validate title and category; returns them stripped. Runs before any upload is stored."""
    title = (title or "").strip()
    category = (category or "").strip()
    for field, value in (("title", title), ("category", category)):
        if not value:
            raise ValidationError(MISSING_FIELDS_MESSAGE, field=field)

    if enforce_category_whitelist and user.role != ROLE_ADMIN:
        if category not in categories_for_role(user.role):
            raise ValidationError(f"Category {category!r} is not assigned to role {user.role!r}.", field="category")
    return title, category


def create_document(
    s: Session,
    *,
    user: User,
    title: str | None,
    category: str | None,
    file_path: str | None,
    enforce_category_whitelist: bool = False,
) -> Document:
    """Create a document at its role-dependent initial status with an initial Uploaded history entry."""
    title, category = check_document_fields(
        user, title=title, category=category, enforce_category_whitelist=enforce_category_whitelist
    )
    file_path = (file_path or "").strip()
    if not file_path:
        raise ValidationError(MISSING_FIELDS_MESSAGE, field="filePath")

    institute_name = _require_institute(user)
    status = initial_status_for(user.role)

    d = Document(
        title=title,
        category=category,
        file_path=file_path,
        status=status,
        version=1,
        owner_user_id=user.id,
        institute_name=institute_name,
    )
    d.history.append(DocumentHistory(action=ACTION_UPLOADED, by_user_id=user.id))
    s.add(d)
    try:
        s.flush()
    except SQLAlchemyError as e:
        s.rollback()
        raise DependencyError("Could not persist document.") from e

    record_event(
        s,
        actor=user,
        action="document.create",
        entity_type="Document",
        entity_id=str(d.id),
        metadata={"title": title, "category": category, "status": status},
    )
    _commit(s, "document")
    logger.info("Document %s created by user %s (%s) at %s", d.id, user.id, user.role, status)
    return d


def get_document(s: Session, doc_id: int) -> Document:
    d = s.get(Document, doc_id)
    if d is None:
        raise NotFoundError(f"Document {doc_id} not found.")
    return d


def can_view(document: Document, user: User) -> bool:
    if document.owner_user_id == user.id:
        return True
    return user.role in REVIEWER_ROLES and document.institute_name == user.institute_name


def get_document_for_user(s: Session, doc_id: int, user: User) -> Document:
    d = get_document(s, doc_id)
    if not can_view(d, user):
        raise AuthorizationError("You do not have access to this document.")
    return d


def apply_decision(
    s: Session,
    document: Document,
    *,
    user: User,
    decision: str | None,
    comment: str | None = None,
) -> Document:
    """
    Approve or reject a document on behalf of `user`.

    The status change is a conditional UPDATE keyed on the status and version
    this call observed; if another decision landed first the update matches no
    row and ConflictError is raised with nothing written.
    """
    decision = normalize_decision(decision)
    if document.institute_name != user.institute_name:
        raise AuthorizationError("Document belongs to a different institute.")

    expected_status = document.status
    expected_version = document.version
    new_status = next_status(expected_status, user.role, decision)
    comment = (comment or "").strip() or default_comment(new_status, user.role)

    stmt = (
        update(Document)
        .where(
            Document.id == document.id,
            Document.status == expected_status,
            Document.version == expected_version,
        )
        .values(status=new_status, version=expected_version + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    try:
        result = s.execute(stmt)
    except SQLAlchemyError as e:
        s.rollback()
        raise DependencyError("Could not update document status.") from e

    if result.rowcount != 1:
        s.rollback()
        logger.warning(
            "Conflicting decision on document %s by user %s (expected %s v%s)",
            document.id,
            user.id,
            expected_status,
            expected_version,
        )
        raise ConflictError("Document was updated by someone else; reload it and try again.")

    document.history.append(
        DocumentHistory(action=decision, by_user_id=user.id, comment=comment)
    )
    record_event(
        s,
        actor=user,
        action="document.decision",
        entity_type="Document",
        entity_id=str(document.id),
        reason=comment,
        metadata={"decision": decision, "from": expected_status, "to": new_status},
    )
    _commit(s, "decision")
    s.refresh(document, ["status", "version", "updated_at"])
    logger.info(
        "Document %s: %s by %s (%s) -> %s", document.id, decision, user.id, user.role, new_status
    )
    return document


def add_comment(s: Session, document: Document, *, user: User, comment: str | None) -> DocumentHistory:
    """Append a Commented history entry; status is untouched."""
    text = (comment or "").strip()
    if not text:
        raise ValidationError("Comment text is required.", field="comment")
    if not can_view(document, user):
        raise AuthorizationError("You do not have access to this document.")

    entry = DocumentHistory(action=ACTION_COMMENTED, by_user_id=user.id, comment=text)
    document.history.append(entry)
    record_event(
        s,
        actor=user,
        action="document.comment",
        entity_type="Document",
        entity_id=str(document.id),
    )
    _commit(s, "comment")
    return entry


# ---------------------------------------------------------------------------
# Role-scoped views
# ---------------------------------------------------------------------------


def _newest_first(q: Select) -> Select:
    return q.order_by(Document.created_at.desc(), Document.id.desc())


def owner_documents(s: Session, user: User) -> list[Document]:
    q = select(Document).where(Document.owner_user_id == user.id)
    return list(s.scalars(_newest_first(q)))


def institute_documents(s: Session, user: User) -> list[Document]:
    institute_name = _require_institute(user)
    q = select(Document).where(Document.institute_name == institute_name)
    return list(s.scalars(_newest_first(q)))


def list_documents_for(s: Session, user: User) -> list[Document]:
    if user.role == ROLE_ADMIN:
        return institute_documents(s, user)
    return owner_documents(s, user)


def hod_review_queue(s: Session, user: User) -> list[Document]:
    institute_name = _require_institute(user)
    q = (
        select(Document)
        .join(User, Document.owner_user_id == User.id)
        .where(
            User.role == ROLE_FACULTY,
            User.institute_name == institute_name,
            Document.status == STATUS_PENDING_HOD,
        )
    )
    return list(s.scalars(_newest_first(q)))


def coordinator_review_queue(s: Session, user: User) -> list[Document]:
    institute_name = _require_institute(user)
    q = select(Document).where(
        Document.institute_name == institute_name,
        Document.status == STATUS_PENDING_COORDINATOR,
    )
    return list(s.scalars(_newest_first(q)))


def report_documents(s: Session, *, institute_name: str, body: str | None = None) -> list[Document]:
    """Approved documents of an institute, optionally limited to one accreditation body, by category."""
    q = select(Document).where(
        Document.institute_name == institute_name,
        Document.status == STATUS_APPROVED,
    )
    body = (body or "").strip()
    if body:
        q = q.where(Document.category.istartswith(body, autoescape=True))
    return list(s.scalars(q.order_by(Document.category.asc(), Document.id.asc())))


def task_progress(s: Session, user: User) -> dict:
    """Checklist of the categories a role is expected to upload and what has been uploaded for each."""
    required = categories_for_role(user.role)
    uploaded: dict[str, Document] = {}
    for d in owner_documents(s, user):
        # newest first, keep the latest per category
        uploaded.setdefault(d.category, d)

    tasks = []
    for category in required:
        d = uploaded.get(category)
        tasks.append(
            {
                "category": category,
                "uploaded": d is not None,
                "documentId": d.id if d else None,
                "status": d.status if d else None,
            }
        )
    completed = sum(1 for t in tasks if t["uploaded"])
    total = len(tasks)
    return {
        "tasks": tasks,
        "completed": completed,
        "total": total,
        "percentage": round(completed * 100 / total) if total else 0,
    }
