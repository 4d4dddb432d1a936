"""
Tracklane Backend: Sequence Allocator (Per-Team Issue Numbers)
=================================================================

What:  Hands out unique, increasing integers scoped to a (workspace, team) pair,
       one at a time or as a contiguous block.
How:   One row per team in `sequence_counter`. Every allocation is a single
       `UPDATE ... SET current_value = current_value + :delta ... RETURNING`
       statement, so concurrent callers serialize on the row lock held by the
       database and each receives a disjoint number or block.
Who:   IssueService (create / bulk create) and TeamService (eager init).
When:  Always inside the caller's transaction; the increment commits or rolls
       back together with the issue rows it numbers.

Allocation Flow:
    ┌──────────────────┐    ┌────────────────────────────┐    ┌──────────────┐
    │  ensure_exists   │───▶│  UPDATE +delta RETURNING   │───▶│ numbers      │
    │  (INSERT ... ON  │    │  (row lock serializes      │    │ [v-d+1 .. v] │
    │  CONFLICT NOTHING)│    │   concurrent allocators)   │    └──────────────┘
    └──────────────────┘    └────────────────────────────┘

    No in-process lock exists: the server may run several processes, and the
    row is the only shared state.

Failure Semantics:
    - UPDATE matched zero rows after ensure_exists → SequenceIntegrityError.
      Logged and surfaced, never retried here.
    - Driver errors (lost connection, lock timeout) propagate unchanged to the
      caller's transaction runner.
    - An aborted transaction rolls the increment back; numbers are not leaked.
      Deleting an issue later never gives its number back.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import insert as generic_insert
from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tracklane.exceptions import (
    ConflictError,
    SequenceIntegrityError,
    ValidationError,
)
from tracklane.models.sequence import SequenceCounter

logger = logging.getLogger(__name__)


def _insert_ignoring_duplicates(db: AsyncSession, workspace_id: UUID, team_id: UUID):
    """
    Build `INSERT ... ON CONFLICT (workspace_id, team_id) DO NOTHING` for the
    dialect the session is bound to.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(SequenceCounter)
    elif dialect == "sqlite":
        stmt = sqlite.insert(SequenceCounter)
    else:
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")

    return stmt.values(
        workspace_id=workspace_id,
        team_id=team_id,
        current_value=0,
    ).on_conflict_do_nothing(index_elements=["workspace_id", "team_id"])


class SequenceAllocator:
    """
    Per-team monotonic counter backed by `sequence_counter`.

    Stateless: every method receives the session (and therefore the
    transaction) it should run in.

    Operations:
        - ensure_exists(): lazy, idempotent row creation at 0
        - initialize():    eager row creation at 0; CONFLICT if present
        - next():          allocate one number
        - next_batch():    allocate `count` consecutive numbers
    """

    async def ensure_exists(
        self,
        db: AsyncSession,
        workspace_id: UUID,
        team_id: UUID,
    ) -> None:
        """
        Create the counter row at 0 if it is missing.

        Safe to call concurrently with itself and with allocations. Losing an
        insert race is a no-op, never an error.
        """
        await db.execute(_insert_ignoring_duplicates(db, workspace_id, team_id))

    async def initialize(
        self,
        db: AsyncSession,
        workspace_id: UUID,
        team_id: UUID,
    ) -> None:
        """
        Create the counter row at 0 for a newly created team.

        Team creation is the only expected source of initial rows, so an
        existing row is reported instead of tolerated.

        Raises:
            ConflictError: A counter already exists for this pair.
        """
        try:
            # SAVEPOINT keeps the caller's transaction usable after a conflict
            async with db.begin_nested():
                await db.execute(
                    generic_insert(SequenceCounter).values(
                        workspace_id=workspace_id,
                        team_id=team_id,
                        current_value=0,
                    )
                )
        except IntegrityError as e:
            logger.warning(
                "Sequence counter already initialized for team %s in workspace %s",
                team_id,
                workspace_id,
            )
            raise ConflictError(
                message="A sequence counter already exists for this team",
                context={"workspace_id": str(workspace_id), "team_id": str(team_id)},
            ) from e

        logger.debug("Sequence counter initialized for team %s", team_id)

    async def next(
        self,
        db: AsyncSession,
        workspace_id: UUID,
        team_id: UUID,
    ) -> int:
        """
        Allocate the next number for a team.

        Returns:
            The post-increment counter value (1 for a team's first issue).

        Raises:
            SequenceIntegrityError: The counter row vanished after ensure_exists.
        """
        new_value = await self._increment(db, workspace_id, team_id, 1)
        logger.debug("Allocated issue number %d for team %s", new_value, team_id)
        return new_value

    async def next_batch(
        self,
        db: AsyncSession,
        workspace_id: UUID,
        team_id: UUID,
        count: int,
    ) -> List[int]:
        """
        Reserve `count` consecutive numbers for a team in one statement.

        Returns:
            [new_value - count + 1, ..., new_value] in ascending order.
            An empty list for count == 0 (the store is not touched).

        Raises:
            ValidationError: count is negative.
            SequenceIntegrityError: The counter row vanished after ensure_exists.
        """
        if count < 0:
            raise ValidationError(
                message="Cannot allocate a negative number of issue keys",
                field="count",
                context={"count": count},
            )
        if count == 0:
            return []

        end = await self._increment(db, workspace_id, team_id, count)
        start = end - count + 1
        logger.debug(
            "Allocated issue numbers %d..%d for team %s", start, end, team_id
        )
        return list(range(start, end + 1))

    async def _increment(
        self,
        db: AsyncSession,
        workspace_id: UUID,
        team_id: UUID,
        delta: int,
    ) -> int:
        """Ensure the row, then add `delta` atomically and return the new value."""
        await self.ensure_exists(db, workspace_id, team_id)

        result = await db.execute(
            update(SequenceCounter)
            .where(
                SequenceCounter.workspace_id == workspace_id,
                SequenceCounter.team_id == team_id,
            )
            .values(current_value=SequenceCounter.current_value + delta)
            .returning(SequenceCounter.current_value)
            .execution_options(synchronize_session=False)
        )
        new_value = result.scalar_one_or_none()

        if new_value is None:
            logger.error(
                "Sequence counter missing after ensure for team %s in workspace %s",
                team_id,
                workspace_id,
            )
            raise SequenceIntegrityError(
                context={
                    "workspace_id": str(workspace_id),
                    "team_id": str(team_id),
                    "delta": delta,
                },
            )

        return int(new_value)


# ── Singleton Instance ────────────────────────────────────────────────────
sequence_allocator = SequenceAllocator()
