"""
Tracklane Backend: Workspace and Team Services
=================================================

What:  Workspace creation (with its default team), team creation and team
       updates, including the issue-key rename cascade on a key change.
How:   Each write is flushed inside a SAVEPOINT so a unique-constraint race
       becomes a ConflictError without poisoning the caller's transaction.
Who:   Called by the workspace/team route handlers.

Team Creation Flow:
    ┌────────────────┐    ┌──────────────┐    ┌────────────────────────┐
    │ Key free in    │───▶│ INSERT team  │───▶│ sequence_allocator     │
    │ workspace?     │    │ (SAVEPOINT)  │    │ .initialize() at 0     │
    └────────────────┘    └──────────────┘    └────────────────────────┘
          │ no                   │ IntegrityError
          ▼                      ▼
      ConflictError          ConflictError
"""

import logging
import re
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tracklane.exceptions import ConflictError, ValidationError
from tracklane.models.workspace import Team, Workspace
from tracklane.services.issue_keys import normalize_team_key
from tracklane.services.issue_service import issue_service
from tracklane.services.lookups import (
    get_team_by_key,
    get_workspace_by_slug,
    list_workspace_teams,
)
from tracklane.services.sequence_service import sequence_allocator

logger = logging.getLogger(__name__)

DEFAULT_TEAM_KEY = "TM"
_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def default_team_key(display_name: str) -> str:
    """
    Key for a workspace's first team: the first three letters or digits of
    the display name, upper-cased. Falls back to "TM" when that is not a
    valid team key (empty, or starting with a digit).
    """
    candidate = _NON_ALPHANUMERIC.sub("", display_name or "")[:3]
    try:
        return normalize_team_key(candidate)
    except ValidationError:
        return DEFAULT_TEAM_KEY


class TeamService:
    """
    Team management for a workspace.

    Operations:
        - list_teams():  teams of a workspace, oldest first
        - create_team(): new team plus its sequence counter at 0
        - update_team(): rename and/or re-key (rewrites issue keys)
    """

    async def list_teams(self, db: AsyncSession, workspace_slug: str) -> List[Team]:
        return await list_workspace_teams(db, workspace_slug)

    async def _ensure_key_free(
        self,
        db: AsyncSession,
        workspace: Workspace,
        key: str,
    ) -> None:
        result = await db.execute(
            select(Team.id).where(
                Team.workspace_id == workspace.id,
                Team.key == key,
            )
        )
        if result.first() is not None:
            raise ConflictError(
                message=f"Team key '{key}' is already used in this workspace",
                context={"workspace": workspace.slug, "key": key},
            )

    async def add_team(
        self,
        db: AsyncSession,
        workspace: Workspace,
        name: str,
        key: str,
    ) -> Team:
        """
        Create a team inside an already loaded workspace.

        Raises:
            ValidationError: Malformed key
            ConflictError:   Key already used in the workspace
        """
        key = normalize_team_key(key)
        await self._ensure_key_free(db, workspace, key)

        team = Team(workspace_id=workspace.id, name=name, key=key)
        try:
            async with db.begin_nested():
                db.add(team)
                await db.flush()
        except IntegrityError as e:
            raise ConflictError(
                message=f"Team key '{key}' is already used in this workspace",
                context={"workspace": workspace.slug, "key": key},
            ) from e

        await sequence_allocator.initialize(db, workspace.id, team.id)

        logger.info("Team %s created in workspace %s", key, workspace.slug)
        return team

    async def create_team(
        self,
        db: AsyncSession,
        workspace_slug: str,
        name: str,
        key: str,
    ) -> Team:
        workspace = await get_workspace_by_slug(db, workspace_slug)
        return await self.add_team(db, workspace, name, key)

    async def update_team(
        self,
        db: AsyncSession,
        workspace_slug: str,
        team_key: str,
        name: Optional[str] = None,
        key: Optional[str] = None,
    ) -> Tuple[Team, int]:
        """
        Rename a team and/or change its key.

        A key change must not collide with another team of the workspace.
        It rewrites every issue key of the team in the same transaction;
        numbers and the sequence counter stay as they are.

        Returns:
            (team, number of issue keys rewritten)

        Raises:
            NotFoundError:   Unknown workspace or team
            ValidationError: Malformed key
            ConflictError:   Key already used by another team
        """
        team = await get_team_by_key(db, workspace_slug, team_key)

        if name is not None:
            team.name = name

        rekeyed = 0
        if key is not None:
            new_key = normalize_team_key(key)
            if new_key != team.key:
                workspace = await get_workspace_by_slug(db, workspace_slug)
                await self._ensure_key_free(db, workspace, new_key)

                old_key = team.key
                team.key = new_key
                try:
                    async with db.begin_nested():
                        await db.flush()
                except IntegrityError as e:
                    raise ConflictError(
                        message=f"Team key '{new_key}' is already used in this workspace",
                        context={"workspace": workspace_slug, "key": new_key},
                    ) from e

                rekeyed = await issue_service.rekey_team_issues(db, team)
                logger.info(
                    "Team key %s changed to %s in workspace %s (%d issues rekeyed)",
                    old_key, new_key, workspace_slug, rekeyed,
                )

        await db.flush()
        return team, rekeyed


class WorkspaceService:
    """Workspace creation. Every workspace starts with one team."""

    def __init__(self, teams: TeamService):
        self.teams = teams

    async def create_workspace(
        self,
        db: AsyncSession,
        slug: str,
        display_name: str,
    ) -> Tuple[Workspace, Team]:
        """
        Create a workspace and its default team.

        Raises:
            ConflictError: The slug is taken
        """
        existing = await db.execute(select(Workspace.id).where(Workspace.slug == slug))
        if existing.first() is not None:
            raise ConflictError(
                message=f"Workspace '{slug}' already exists",
                context={"slug": slug},
            )

        workspace = Workspace(slug=slug, display_name=display_name)
        try:
            async with db.begin_nested():
                db.add(workspace)
                await db.flush()
        except IntegrityError as e:
            raise ConflictError(
                message=f"Workspace '{slug}' already exists",
                context={"slug": slug},
            ) from e

        team = await self.teams.add_team(
            db, workspace, name=display_name, key=default_team_key(display_name)
        )

        logger.info("Workspace %s created with team %s", slug, team.key)
        return workspace, team


# ── Singleton Instances ───────────────────────────────────────────────────
team_service = TeamService()
workspace_service = WorkspaceService(team_service)
