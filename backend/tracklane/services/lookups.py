"""
Tracklane Backend: Workspace and Team Lookups
================================================

What:  Shared read helpers that turn URL identifiers (workspace slug, team key)
       into ORM rows, raising NotFoundError when they do not exist.
Who:   IssueService and TeamService.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracklane.exceptions import NotFoundError
from tracklane.models.workspace import Team, Workspace


async def get_workspace_by_slug(db: AsyncSession, slug: str) -> Workspace:
    result = await db.execute(select(Workspace).where(Workspace.slug == slug))
    workspace = result.scalar_one_or_none()
    if workspace is None:
        raise NotFoundError(resource="workspace", resource_id=slug)
    return workspace


async def get_team_by_key(db: AsyncSession, workspace_slug: str, team_key: str) -> Team:
    """
    Resolve a team by its current key inside a workspace.

    Keys are matched case-insensitively on input (stored keys are uppercase).
    """
    result = await db.execute(
        select(Team)
        .join(Workspace, Team.workspace_id == Workspace.id)
        .where(
            Workspace.slug == workspace_slug,
            Team.key == team_key.upper(),
        )
    )
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError(
            resource="team",
            resource_id=team_key,
            context={"workspace": workspace_slug},
        )
    return team


async def list_workspace_teams(db: AsyncSession, workspace_slug: str) -> List[Team]:
    workspace = await get_workspace_by_slug(db, workspace_slug)
    result = await db.execute(
        select(Team)
        .where(Team.workspace_id == workspace.id)
        .order_by(Team.created_at, Team.key)
    )
    return list(result.scalars().all())
