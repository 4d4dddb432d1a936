"""
Tracklane Backend: Workspace and Team Route Handlers
=======================================================

What:  Workspace creation and team management endpoints.
How:   Writes run through run_in_transaction; the response model is built
       inside the unit of work so nothing is loaded after the session closes.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracklane.database import get_db_session, get_session_factory, run_in_transaction
from tracklane.schemas.common import ErrorResponse
from tracklane.schemas.team import (
    TeamCreate,
    TeamResponse,
    TeamUpdate,
    TeamUpdateResponse,
    WorkspaceCreate,
    WorkspaceResponse,
)
from tracklane.services.team_service import team_service, workspace_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workspaces", tags=["Workspaces"])


@router.post(
    "",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Slug taken", "model": ErrorResponse}},
    summary="Create a workspace with its default team",
)
async def create_workspace(
    body: WorkspaceCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> WorkspaceResponse:
    async def work(db: AsyncSession) -> WorkspaceResponse:
        workspace, team = await workspace_service.create_workspace(
            db, slug=body.slug, display_name=body.display_name
        )
        return WorkspaceResponse(
            id=workspace.id,
            slug=workspace.slug,
            display_name=workspace.display_name,
            created_at=workspace.created_at,
            teams=[TeamResponse.model_validate(team)],
        )

    return await run_in_transaction(work, factory)


@router.get(
    "/{slug}/teams",
    response_model=List[TeamResponse],
    responses={404: {"description": "Unknown workspace", "model": ErrorResponse}},
    summary="List the teams of a workspace",
)
async def list_teams(
    slug: str,
    db: AsyncSession = Depends(get_db_session),
) -> List[TeamResponse]:
    teams = await team_service.list_teams(db, slug)
    return [TeamResponse.model_validate(team) for team in teams]


@router.post(
    "/{slug}/teams",
    response_model=TeamResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"description": "Unknown workspace", "model": ErrorResponse},
        409: {"description": "Team key already used", "model": ErrorResponse},
    },
    summary="Create a team",
)
async def create_team(
    slug: str,
    body: TeamCreate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> TeamResponse:
    async def work(db: AsyncSession) -> TeamResponse:
        team = await team_service.create_team(db, slug, name=body.name, key=body.key)
        return TeamResponse.model_validate(team)

    return await run_in_transaction(work, factory)


@router.patch(
    "/{slug}/teams/{team_key}",
    response_model=TeamUpdateResponse,
    responses={
        404: {"description": "Unknown workspace or team", "model": ErrorResponse},
        409: {"description": "Team key already used", "model": ErrorResponse},
    },
    summary="Rename a team or change its key",
    description=(
        "Changing the key rewrites the prefix of every issue key in the team "
        "(ENG-7 becomes ENGR-7). Issue numbers never change."
    ),
)
async def update_team(
    slug: str,
    team_key: str,
    body: TeamUpdate,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> TeamUpdateResponse:
    async def work(db: AsyncSession) -> TeamUpdateResponse:
        team, rekeyed = await team_service.update_team(
            db, slug, team_key, name=body.name, key=body.key
        )
        return TeamUpdateResponse(
            team=TeamResponse.model_validate(team),
            rekeyed_issues=rekeyed,
        )

    return await run_in_transaction(work, factory)
