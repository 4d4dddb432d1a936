"""
Tracklane Backend: Issue Route Handlers
==========================================

What:  Issue creation, listing, detail with timeline, typed mutations and
       soft delete.
How:   Mutating handlers pass a closure to run_in_transaction. A transient
       failure re-runs the closure in a fresh transaction, so a retried
       create allocates its number again instead of reusing a rolled-back one.

Caching:
    Nothing here is cacheable; list and detail responses carry
    Cache-Control: no-store.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracklane.database import get_db_session, get_session_factory, run_in_transaction
from tracklane.models.issue import IssueStatus
from tracklane.routes.deps import get_actor_id
from tracklane.schemas.common import ErrorResponse
from tracklane.schemas.events import IssueMutationRequest
from tracklane.schemas.issue import (
    IssueBulkCreate,
    IssueCreate,
    IssueDetailResponse,
    IssueListResponse,
    IssueResponse,
)
from tracklane.services.issue_service import issue_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workspaces/{slug}", tags=["Issues"])


@router.get(
    "/teams/{team_key}/issues",
    response_model=IssueListResponse,
    responses={404: {"description": "Unknown workspace or team", "model": ErrorResponse}},
    summary="List the live issues of a team",
)
async def list_team_issues(
    slug: str,
    team_key: str,
    response: Response,
    status_filter: Optional[List[IssueStatus]] = Query(
        default=None,
        alias="status",
        description="Only include issues in these statuses (repeatable)",
    ),
    db: AsyncSession = Depends(get_db_session),
) -> IssueListResponse:
    issues = await issue_service.list_team_issues(
        db, slug, team_key, statuses=status_filter
    )
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Total-Count"] = str(len(issues))
    return IssueListResponse(
        issues=[IssueResponse.model_validate(issue) for issue in issues],
        total_count=len(issues),
    )


@router.get(
    "/issues",
    response_model=IssueListResponse,
    responses={404: {"description": "Unknown workspace", "model": ErrorResponse}},
    summary="List the live issues of every team in a workspace",
)
async def list_workspace_issues(
    slug: str,
    response: Response,
    status_filter: Optional[List[IssueStatus]] = Query(
        default=None,
        alias="status",
        description="Only include issues in these statuses (repeatable)",
    ),
    db: AsyncSession = Depends(get_db_session),
) -> IssueListResponse:
    issues = await issue_service.list_workspace_issues(db, slug, statuses=status_filter)
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Total-Count"] = str(len(issues))
    return IssueListResponse(
        issues=[IssueResponse.model_validate(issue) for issue in issues],
        total_count=len(issues),
    )


@router.post(
    "/teams/{team_key}/issues",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Bad actor header", "model": ErrorResponse},
        404: {"description": "Unknown workspace or team", "model": ErrorResponse},
        500: {"description": "Could not create issue", "model": ErrorResponse},
    },
    summary="Create an issue",
    description="The issue key is assigned by the server: {TEAM}-{next number}.",
)
async def create_issue(
    slug: str,
    team_key: str,
    body: IssueCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> IssueResponse:
    async def work(db: AsyncSession) -> IssueResponse:
        issue = await issue_service.create_issue(db, slug, team_key, actor_id, body)
        return IssueResponse.model_validate(issue)

    return await run_in_transaction(work, factory)


@router.post(
    "/teams/{team_key}/issues/bulk",
    response_model=IssueListResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Too many issues or bad actor header", "model": ErrorResponse},
        404: {"description": "Unknown workspace or team", "model": ErrorResponse},
    },
    summary="Create several issues with consecutive numbers",
)
async def create_issues_bulk(
    slug: str,
    team_key: str,
    body: IssueBulkCreate,
    actor_id: uuid.UUID = Depends(get_actor_id),
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> IssueListResponse:
    async def work(db: AsyncSession) -> IssueListResponse:
        issues = await issue_service.create_many_issues(
            db, slug, team_key, actor_id, body.issues
        )
        return IssueListResponse(
            issues=[IssueResponse.model_validate(issue) for issue in issues],
            total_count=len(issues),
        )

    return await run_in_transaction(work, factory)


@router.get(
    "/issues/{issue_key}",
    response_model=IssueDetailResponse,
    responses={
        400: {"description": "Malformed issue key", "model": ErrorResponse},
        404: {"description": "Issue not found", "model": ErrorResponse},
    },
    summary="Get an issue with its change timeline",
)
async def get_issue(
    slug: str,
    issue_key: str,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> IssueDetailResponse:
    issue = await issue_service.get_issue_by_key(db, slug, issue_key, with_events=True)
    response.headers["Cache-Control"] = "no-store"
    return IssueDetailResponse.model_validate(issue)


@router.patch(
    "/issues/{issue_key}",
    response_model=IssueResponse,
    responses={
        400: {"description": "Malformed issue key or actor header", "model": ErrorResponse},
        404: {"description": "Issue not found", "model": ErrorResponse},
    },
    summary="Apply one typed change to an issue",
    description=(
        "The body selects the change with `kind`: status, priority, assignee, "
        "summary or description. A change to the current value is accepted "
        "and records nothing."
    ),
)
async def update_issue(
    slug: str,
    issue_key: str,
    body: IssueMutationRequest,
    actor_id: uuid.UUID = Depends(get_actor_id),
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> IssueResponse:
    async def work(db: AsyncSession) -> IssueResponse:
        issue = await issue_service.apply_mutation(
            db, slug, issue_key, actor_id, body.root
        )
        return IssueResponse.model_validate(issue)

    return await run_in_transaction(work, factory)


@router.delete(
    "/issues/{issue_key}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Issue not found", "model": ErrorResponse}},
    summary="Soft-delete an issue",
    description="The issue disappears from reads; its number is never reused.",
)
async def delete_issue(
    slug: str,
    issue_key: str,
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Response:
    async def work(db: AsyncSession) -> None:
        await issue_service.soft_delete_issue(db, slug, issue_key)

    await run_in_transaction(work, factory)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
