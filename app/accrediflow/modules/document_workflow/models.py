from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.accrediflow.models import Base


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PendingHODApproval', 'PendingCoordinatorApproval', 'Approved', 'Rejected')",
            name="ck_documents_status",
        ),
        Index("idx_documents_institute_status", "institute_name", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # "<BODY>: <name>", e.g. "NAAC: Faculty CVs"
    category: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # PendingHODApproval -> PendingCoordinatorApproval -> Approved | Rejected
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    # Bumped on every status change; conditional updates key on it.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    file_path: Mapped[str] = mapped_column(String(512), nullable=False)

    owner_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    institute_name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_user_id], lazy="selectin")  # noqa: F821

    history: Mapped[list["DocumentHistory"]] = relationship(
        "DocumentHistory",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentHistory.id",
    )

    def to_dict(self, *, include_history: bool = False) -> dict:
        out = {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "status": self.status,
            "filePath": self.file_path,
            "owner": {"id": self.owner.id, "name": self.owner.name, "email": self.owner.email, "role": self.owner.role}
            if self.owner
            else None,
            "instituteName": self.institute_name,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            out["history"] = [h.to_dict() for h in self.history]
        return out


class DocumentHistory(Base):
    """Append-only audit record of one action on a document. Never updated or deleted on its own."""

    __tablename__ = "document_history"
    __table_args__ = (
        CheckConstraint(
            "action IN ('Uploaded', 'Approved', 'Rejected', 'Commented')",
            name="ck_document_history_action",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    document: Mapped[Document] = relationship("Document", back_populates="history", lazy="selectin")
    by: Mapped["User"] = relationship("User", foreign_keys=[by_user_id], lazy="selectin")  # noqa: F821

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "by": self.by_user_id,
            "byName": self.by.name if self.by else None,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "comment": self.comment,
        }
