"""
Tracklane Backend: Sequence Counter SQLAlchemy Model
=======================================================

What:  The `sequence_counter` table: one monotonic integer per (workspace, team)
       from which issue numbers are drawn.
Who:   Read and written exclusively by SequenceAllocator.

Invariants:
    - Exactly one row per team, keyed by (workspace_id, team_id).
    - current_value starts at 0 and only ever grows. It holds the last number
      handed out; the next allocation returns current_value + 1.
    - Rows are never deleted while the team exists.
"""

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from tracklane.database import Base


class SequenceCounter(Base):
    """Per-team issue number counter."""

    __tablename__ = "sequence_counter"

    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("workspace.id", ondelete="CASCADE"),
        primary_key=True,
    )

    team_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("team.id", ondelete="CASCADE"),
        primary_key=True,
    )

    current_value: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Last issue number handed out for this team",
    )

    __table_args__ = (
        CheckConstraint("current_value >= 0", name="ck_sequence_counter_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<SequenceCounter(workspace_id={self.workspace_id}, "
            f"team_id={self.team_id}, current_value={self.current_value})>"
        )
