"""
SmartSpec Database Models
SQLAlchemy 2.0 with PostgreSQL

Enforces:
- Relational integrity via foreign keys (revisions cascade with their process)
- Closed status and revision-type vocabularies via check constraints
- Optimistic concurrency via a version column on the process row
"""
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import (
    String, Text, Integer, DateTime, JSON,
    ForeignKey, Index, CheckConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InitiativeProcess(Base):
    """An initiative moving through Draft -> Reviewing -> Approved -> Uploaded"""
    __tablename__ = "initiative_processes"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Draft")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    # Set once the task list has been published to Jira
    jira_project_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    jira_epic_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Optimistic concurrency token; the repository assigns every new value
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    revisions: Mapped[List["InitiativeRevision"]] = relationship(
        back_populates="process",
        cascade="all, delete-orphan",
        order_by="InitiativeRevision.timestamp",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    __table_args__ = (
        CheckConstraint(
            "status IN ('Draft', 'Reviewing', 'Approved', 'Uploaded')",
            name="ck_initiative_processes_status"
        ),
        Index('idx_initiative_processes_status', 'status'),
        Index('idx_initiative_processes_created_at', 'created_at'),
    )


class InitiativeRevision(Base):
    """
    Append-only task-list snapshot.
    Rows are inserted once and never updated.
    """
    __tablename__ = "initiative_revisions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    process_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("initiative_processes.id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)

    tasks: Mapped[list] = mapped_column(JSONType, nullable=False)
    # "metadata" is reserved on declarative classes
    revision_metadata: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False)

    process: Mapped["InitiativeProcess"] = relationship(back_populates="revisions")

    __table_args__ = (
        CheckConstraint(
            "type IN ('suggestion', 'user_edit', 'final')",
            name="ck_initiative_revisions_type"
        ),
        Index('idx_initiative_revisions_process_id', 'process_id'),
        Index('idx_initiative_revisions_type', 'type'),
    )
