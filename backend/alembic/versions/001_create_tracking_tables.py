"""Create workspace, team, sequence_counter, issue and issue_change_event tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Initial schema for issue tracking with per-team issue numbering.
How:   Portable column types (sa.Uuid, DateTime(timezone=True), JSON) so the
       same migration runs on PostgreSQL and SQLite.

Rollback: downgrade() drops all five tables (destructive, all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    op.create_table(
        "workspace",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "slug",
            sa.String(64),
            nullable=False,
            comment="URL-safe workspace identifier",
        ),
        sa.Column("display_name", sa.String(255), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_workspace"),
        sa.UniqueConstraint("slug", name="uq_workspace_slug"),
    )

    op.create_table(
        "team",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "key",
            sa.String(10),
            nullable=False,
            comment="Short uppercase code used as the issue key prefix",
        ),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_team"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspace.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("workspace_id", "key", name="uq_team_workspace_key"),
    )

    # One row per team; only ever incremented with UPDATE ... RETURNING
    op.create_table(
        "sequence_counter",
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("team_id", sa.Uuid(), nullable=False),
        sa.Column(
            "current_value",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Last issue number handed out for this team",
        ),
        sa.PrimaryKeyConstraint("workspace_id", "team_id", name="pk_sequence_counter"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspace.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "current_value >= 0", name="ck_sequence_counter_non_negative"
        ),
    )

    op.create_table(
        "issue",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("team_id", sa.Uuid(), nullable=False),
        sa.Column(
            "key",
            sa.String(32),
            nullable=False,
            comment="Human-facing identifier, e.g. ENG-42",
        ),
        sa.Column(
            "key_number",
            sa.Integer(),
            nullable=False,
            comment="Number allocated from the team's sequence counter",
        ),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("description", sa.JSON(), nullable=True),
        sa.Column(
            "status", sa.String(32), nullable=False, server_default=sa.text("'backlog'")
        ),
        sa.Column(
            "priority",
            sa.String(32),
            nullable=False,
            server_default=sa.text("'no_priority'"),
        ),
        sa.Column("assigned_to_id", sa.Uuid(), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("deleted_at", nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_issue"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspace.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("team_id", "key_number", name="uq_issue_team_key_number"),
        sa.UniqueConstraint("workspace_id", "key", name="uq_issue_workspace_key"),
    )

    op.create_table(
        "issue_change_event",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("issue_id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column(
            "entity_id",
            sa.Uuid(),
            nullable=True,
            comment="Related entity for events that reference one",
        ),
        sa.Column("changes", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_issue_change_event"),
        sa.ForeignKeyConstraint(["issue_id"], ["issue.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspace.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_issue_change_event_issue",
        "issue_change_event",
        ["issue_id", "id"],
    )


def downgrade() -> None:
    op.drop_index("idx_issue_change_event_issue", table_name="issue_change_event")
    op.drop_table("issue_change_event")
    op.drop_table("issue")
    op.drop_table("sequence_counter")
    op.drop_table("team")
    op.drop_table("workspace")
