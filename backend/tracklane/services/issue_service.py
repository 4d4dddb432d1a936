"""
Tracklane Backend: Issue Service (Business Logic)
====================================================

What:  Issue creation (single and bulk), lookup, per-team and workspace-wide
       listing, typed field mutations, soft delete, and the team-key rename
       cascade.
How:   Composes SequenceAllocator, the change event builders and the
       database session handed in by the caller.
Who:   Called by the issue and team route handlers (and TeamService).
When:  Inside one transaction per request; nothing here commits.

Creation Flow:
    ┌──────────────┐    ┌───────────────────┐    ┌──────────────┐    ┌────────────────┐
    │ Resolve team │───▶│ Allocate number(s) │───▶│ Insert issue │───▶│ issue_created  │
    │ (slug + key) │    │ (SequenceAllocator)│    │ key=TEAM-n   │    │ event          │
    └──────────────┘    └───────────────────┘    └──────────────┘    └────────────────┘

    All four steps share the caller's transaction: an issue row without its
    number (or a number without its issue) can never be committed.

Rename Cascade:
    rekey_team_issues() rewrites the prefix of every issue key of a team after
    the team key changed. It never touches the sequence counter and records no
    change events.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from tracklane.config import settings
from tracklane.exceptions import DatabaseError, NotFoundError, ValidationError
from tracklane.models.issue import ChangeEventType, Issue, IssueStatus
from tracklane.models.workspace import Team, Workspace
from tracklane.schemas.events import IssueMutation
from tracklane.schemas.issue import IssueCreate
from tracklane.services.change_events import (
    EventRef,
    build_change_event,
    build_issue_updated_event,
)
from tracklane.services.issue_keys import format_issue_key, parse_issue_key, rekey
from tracklane.services.lookups import get_team_by_key, get_workspace_by_slug
from tracklane.services.sequence_service import sequence_allocator

logger = logging.getLogger(__name__)


class IssueService:
    """
    Business logic layer for issue operations.

    Error Handling Strategy:
        Lookups raise NotFoundError / ValidationError. A unique-constraint
        violation on insert means a number was handed out twice and is wrapped
        in DatabaseError. Transient driver errors are left alone so the
        transaction runner can retry the whole request.
    """

    def _new_issue(
        self,
        team: Team,
        actor_id: UUID,
        number: int,
        data: IssueCreate,
    ) -> Issue:
        return Issue(
            workspace_id=team.workspace_id,
            team_id=team.id,
            key=format_issue_key(team.key, number),
            key_number=number,
            summary=data.summary,
            description=data.description,
            status=data.status.value,
            priority=data.priority.value,
            assigned_to_id=data.assigned_to_id,
            created_by_id=actor_id,
        )

    async def _flush_new_issues(self, db: AsyncSession, team: Team) -> None:
        try:
            await db.flush()
        except IntegrityError as e:
            logger.error(
                "Duplicate issue number for team %s (%s): %s", team.key, team.id, e
            )
            raise DatabaseError(
                message="Could not create the issue. Please try again.",
                context={"team_id": str(team.id), "error_type": type(e).__name__},
            ) from e

    async def create_issue(
        self,
        db: AsyncSession,
        workspace_slug: str,
        team_key: str,
        actor_id: UUID,
        data: IssueCreate,
    ) -> Issue:
        """
        Create one issue numbered from its team's sequence.

        Workflow Steps:
            1. Resolve the team (404 if unknown)
            2. Allocate the next number for (workspace, team)
            3. Insert the issue with key "{team.key}-{number}"
            4. Append the issue_created event

        Raises:
            NotFoundError: Unknown workspace or team
            SequenceIntegrityError: Counter row vanished mid-allocation
            DatabaseError: The number collided with an existing issue
        """
        team = await get_team_by_key(db, workspace_slug, team_key)

        number = await sequence_allocator.next(db, team.workspace_id, team.id)
        issue = self._new_issue(team, actor_id, number, data)
        db.add(issue)
        await self._flush_new_issues(db, team)

        db.add(
            build_change_event(
                EventRef(issue.id, team.workspace_id, actor_id),
                ChangeEventType.ISSUE_CREATED,
            )
        )
        await db.flush()

        logger.info("Issue %s created by %s", issue.key, actor_id)
        return issue

    async def create_many_issues(
        self,
        db: AsyncSession,
        workspace_slug: str,
        team_key: str,
        actor_id: UUID,
        items: Sequence[IssueCreate],
    ) -> List[Issue]:
        """
        Create several issues for one team with one block allocation.

        The numbers are reserved in a single statement, so the batch is
        contiguous and ordered like `items`; other teams may allocate
        concurrently without affecting it.

        Raises:
            ValidationError: More than settings.bulk_create_max items
            NotFoundError: Unknown workspace or team
            SequenceIntegrityError: Counter row vanished mid-allocation
        """
        if len(items) > settings.bulk_create_max:
            raise ValidationError(
                message=(
                    f"Cannot create more than {settings.bulk_create_max} "
                    "issues in one request"
                ),
                field="issues",
                context={"count": len(items)},
            )
        if not items:
            return []

        team = await get_team_by_key(db, workspace_slug, team_key)

        numbers = await sequence_allocator.next_batch(
            db, team.workspace_id, team.id, len(items)
        )
        issues = [
            self._new_issue(team, actor_id, number, data)
            for number, data in zip(numbers, items)
        ]
        db.add_all(issues)
        await self._flush_new_issues(db, team)

        db.add_all(
            build_change_event(
                EventRef(issue.id, team.workspace_id, actor_id),
                ChangeEventType.ISSUE_CREATED,
            )
            for issue in issues
        )
        await db.flush()

        logger.info(
            "Created %d issues for team %s (%s..%s)",
            len(issues), team.key, issues[0].key, issues[-1].key,
        )
        return issues

    async def get_issue_by_key(
        self,
        db: AsyncSession,
        workspace_slug: str,
        issue_key: str,
        with_events: bool = False,
    ) -> Issue:
        """
        Fetch a live (not soft-deleted) issue by its current key.

        Raises:
            ValidationError: issue_key is not of the form TEAM-123
            NotFoundError: No such issue in the workspace
        """
        prefix, number = parse_issue_key(issue_key)
        normalized = format_issue_key(prefix.upper(), number)

        query = (
            select(Issue)
            .join(Workspace, Issue.workspace_id == Workspace.id)
            .where(
                Workspace.slug == workspace_slug,
                Issue.key == normalized,
                Issue.deleted_at.is_(None),
            )
        )
        if with_events:
            query = query.options(selectinload(Issue.events))

        result = await db.execute(query)
        issue = result.scalar_one_or_none()
        if issue is None:
            raise NotFoundError(
                resource="issue",
                resource_id=issue_key,
                context={"workspace": workspace_slug},
            )
        return issue

    async def list_team_issues(
        self,
        db: AsyncSession,
        workspace_slug: str,
        team_key: str,
        statuses: Optional[Iterable[IssueStatus]] = None,
    ) -> List[Issue]:
        """Live issues of a team ordered by number, optionally filtered by status."""
        team = await get_team_by_key(db, workspace_slug, team_key)

        query = select(Issue).where(
            Issue.team_id == team.id,
            Issue.deleted_at.is_(None),
        )
        if statuses:
            query = query.where(Issue.status.in_([s.value for s in statuses]))

        result = await db.execute(query.order_by(Issue.key_number))
        return list(result.scalars().all())

    async def list_workspace_issues(
        self,
        db: AsyncSession,
        workspace_slug: str,
        statuses: Optional[Iterable[IssueStatus]] = None,
    ) -> List[Issue]:
        """
        Live issues of every team in a workspace.

        Ordered by team key, then number, so each team's issues stay grouped.

        Raises:
            NotFoundError: Unknown workspace
        """
        workspace = await get_workspace_by_slug(db, workspace_slug)

        query = (
            select(Issue)
            .join(Team, Issue.team_id == Team.id)
            .where(
                Issue.workspace_id == workspace.id,
                Issue.deleted_at.is_(None),
            )
        )
        if statuses:
            query = query.where(Issue.status.in_([s.value for s in statuses]))

        result = await db.execute(query.order_by(Team.key, Issue.key_number))
        return list(result.scalars().all())

    async def apply_mutation(
        self,
        db: AsyncSession,
        workspace_slug: str,
        issue_key: str,
        actor_id: UUID,
        mutation: IssueMutation,
    ) -> Issue:
        """
        Apply one typed field change and record it.

        A mutation that would not change the attribute returns the issue as
        is: no UPDATE, no event.
        """
        issue = await self.get_issue_by_key(db, workspace_slug, issue_key)

        event = build_issue_updated_event(
            EventRef(issue.id, issue.workspace_id, actor_id),
            mutation,
            issue,
        )
        if event is None:
            logger.debug("No-op %s change on %s ignored", mutation.kind, issue.key)
            return issue

        setattr(issue, mutation.field, mutation.stored_value())
        db.add(event)
        await db.flush()

        logger.info("Issue %s: %s by %s", issue.key, event.event_type, actor_id)
        return issue

    async def soft_delete_issue(
        self,
        db: AsyncSession,
        workspace_slug: str,
        issue_key: str,
    ) -> Issue:
        """
        Hide an issue. Its number stays consumed; the counter is not touched.
        """
        issue = await self.get_issue_by_key(db, workspace_slug, issue_key)
        issue.deleted_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("Issue %s soft-deleted", issue.key)
        return issue

    async def rekey_team_issues(self, db: AsyncSession, team: Team) -> int:
        """
        Rewrite every issue key of `team` to start with its current key.

        What:    ENG-7 → ENGR-7 after the team key changed from ENG to ENGR.
        How:     Reads (id, key) for all of the team's issues, including
                 soft-deleted ones, and writes the changed keys back with a
                 single bulk UPDATE by primary key.

        Idempotent: issues already carrying the team key are skipped, so a
        second run changes nothing. Sequence numbers are untouched and no
        change events are recorded. Old keys are not kept anywhere.

        Returns:
            Number of issue keys rewritten.
        """
        result = await db.execute(
            select(Issue.id, Issue.key).where(Issue.team_id == team.id)
        )

        new_keys: Dict[UUID, str] = {}
        for issue_id, key in result.all():
            new_key = rekey(key, team.key)
            if new_key != key:
                new_keys[issue_id] = new_key

        if not new_keys:
            return 0

        await db.execute(
            update(Issue),
            [{"id": issue_id, "key": key} for issue_id, key in new_keys.items()],
        )

        # Bulk UPDATE by primary key bypasses loaded objects; sync them here.
        for obj in list(db.identity_map.values()):
            if isinstance(obj, Issue) and obj.id in new_keys:
                set_committed_value(obj, "key", new_keys[obj.id])

        logger.info(
            "Rekeyed %d issues of team %s to prefix %s",
            len(new_keys), team.id, team.key,
        )
        return len(new_keys)


# ── Singleton Instance ────────────────────────────────────────────────────
issue_service = IssueService()
