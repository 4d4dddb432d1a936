"""
Tracklane Backend: Issue and Change Event SQLAlchemy Models
==============================================================

What:  ORM models for `issue` and its append-only activity log
       `issue_change_event`.
Who:   Used by IssueService for every issue read and mutation.

Table Design:
    - key / key_number: key_number is drawn from the team's sequence counter
      and never changes; key is "{team.key}-{key_number}" and is rewritten
      when the team key changes.
    - (team_id, key_number) is unique, so a number can never be handed out
      twice for one team even if the counter were tampered with.
    - (workspace_id, key) is unique, so key lookups inside a workspace are
      unambiguous.
    - deleted_at: soft delete. A deleted issue keeps its number.
    - description: rich-text document (JSON) or NULL.
    - Status, priority and event type are stored as short strings, validated
      by the enums below.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tracklane.database import Base
from tracklane.models.workspace import Team


class IssueStatus(str, Enum):
    BACKLOG = "backlog"
    TO_DO = "to_do"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class IssuePriority(str, Enum):
    NO_PRIORITY = "no_priority"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ChangeEventType(str, Enum):
    ISSUE_CREATED = "issue_created"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    ASSIGNEE_CHANGED = "assignee_changed"
    SUMMARY_CHANGED = "summary_changed"
    DESCRIPTION_CHANGED = "description_changed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Issue(Base):
    """
    A tracked unit of work belonging to one team.

    Lifecycle:
        1. Created with a freshly allocated key_number (one transaction with
           its `issue_created` event)
        2. Mutated field by field; each real change appends one event
        3. Key prefix rewritten in bulk when the team key changes
        4. Soft-deleted; the number stays consumed
    """

    __tablename__ = "issue"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("workspace.id", ondelete="CASCADE"),
        nullable=False,
    )

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("team.id", ondelete="CASCADE"),
        nullable=False,
    )

    key: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Human-facing identifier, e.g. ENG-42",
    )

    key_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Number allocated from the team's sequence counter",
    )

    summary: Mapped[str] = mapped_column(Text, nullable=False)

    description: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=IssueStatus.BACKLOG.value,
        server_default=text("'backlog'"),
    )

    priority: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=IssuePriority.NO_PRIORITY.value,
        server_default=text("'no_priority'"),
    )

    assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    team: Mapped[Team] = relationship()

    events: Mapped[list["IssueChangeEvent"]] = relationship(
        back_populates="issue",
        order_by="IssueChangeEvent.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("team_id", "key_number", name="uq_issue_team_key_number"),
        UniqueConstraint("workspace_id", "key", name="uq_issue_workspace_key"),
    )

    def __repr__(self) -> str:
        return f"<Issue(key='{self.key}', status='{self.status}')>"


class IssueChangeEvent(Base):
    """
    Immutable record of one state transition on an issue.

    Never updated or deleted by the application. `changes` holds
    {field: {"from": old, "to": new}} for field updates and NULL for
    events such as issue_created.
    """

    __tablename__ = "issue_change_event"

    # Integer identity keeps the timeline in insertion order even when two
    # events share a timestamp.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    issue_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("issue.id", ondelete="CASCADE"),
        nullable=False,
    )

    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("workspace.id", ondelete="CASCADE"),
        nullable=False,
    )

    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    event_type: Mapped[str] = mapped_column(String(32), nullable=False)

    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Related entity for events that reference one",
    )

    changes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    issue: Mapped[Issue] = relationship(back_populates="events")

    __table_args__ = (
        Index("idx_issue_change_event_issue", "issue_id", "id"),
    )

    def __repr__(self) -> str:
        return f"<IssueChangeEvent(type='{self.event_type}', issue_id={self.issue_id})>"
