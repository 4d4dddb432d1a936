"""
Tracklane Backend: Workspace and Team SQLAlchemy Models
==========================================================

What:  ORM models for the tenant boundary (`workspace`) and its keyed
       subdivisions (`team`).
Who:   Used by TeamService / WorkspaceService and by issue lookups.

Table Design:
    - workspace.slug is the public identifier used in every URL.
    - team.key is the short uppercase code in front of issue numbers
      (ENG in ENG-42). It is unique per workspace and may change over time;
      the issue numbers behind it never do.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tracklane.database import Base


class Workspace(Base):
    """Top-level tenant. Owns teams and, through them, issues."""

    __tablename__ = "workspace"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    slug: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="URL-safe workspace identifier",
    )

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    teams: Mapped[list["Team"]] = relationship(
        back_populates="workspace",
        order_by="Team.created_at",
    )

    def __repr__(self) -> str:
        return f"<Workspace(slug='{self.slug}')>"


class Team(Base):
    """
    A keyed subdivision of a workspace with its own issue numbering.

    Lifecycle:
        1. Created together with its sequence counter (value 0)
        2. May be renamed; a key change rewrites the prefix of every issue key
        3. The counter behind it is never reset
    """

    __tablename__ = "team"

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

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    key: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="Short uppercase code used as the issue key prefix",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    workspace: Mapped[Workspace] = relationship(back_populates="teams")

    __table_args__ = (
        UniqueConstraint("workspace_id", "key", name="uq_team_workspace_key"),
    )

    def __repr__(self) -> str:
        return f"<Team(key='{self.key}', workspace_id={self.workspace_id})>"
