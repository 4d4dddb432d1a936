"""
Tracklane Backend: Issue Request/Response Schemas
====================================================

What:  Pydantic models defining the issue API contract.
How:   FastAPI validates request bodies against these models and serializes
       responses from ORM objects via `from_attributes`.

Schemas are separate from the SQLAlchemy models: responses never expose
deleted_at, and requests never carry key / key_number, which only the
sequence allocator may assign.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from tracklane.models.issue import IssuePriority, IssueStatus


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class IssueCreate(BaseModel):
    """
    Fields a client may set when creating an issue.

    The key is never accepted from the client; it is built from the team key
    and a number allocated inside the creating transaction.
    """
    summary: str = Field(min_length=1, max_length=500)
    description: Optional[dict] = Field(
        default=None, description="Rich-text document (JSON)"
    )
    status: IssueStatus = Field(default=IssueStatus.BACKLOG)
    priority: IssuePriority = Field(default=IssuePriority.NO_PRIORITY)
    assigned_to_id: Optional[uuid.UUID] = None


class IssueBulkCreate(BaseModel):
    """
    Several issues for one team, numbered as one contiguous block in input order.
    """
    issues: List[IssueCreate] = Field(min_length=1)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class IssueResponse(BaseModel):
    id: uuid.UUID
    workspace_id: uuid.UUID
    team_id: uuid.UUID
    key: str = Field(description="Human-facing identifier, e.g. ENG-42")
    key_number: int
    summary: str
    description: Optional[Any] = None
    status: IssueStatus
    priority: IssuePriority
    assigned_to_id: Optional[uuid.UUID] = None
    created_by_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ChangeEventResponse(BaseModel):
    id: int
    event_type: str
    actor_id: uuid.UUID
    entity_id: Optional[uuid.UUID] = None
    changes: Optional[dict] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class IssueDetailResponse(IssueResponse):
    """An issue together with its activity timeline, oldest event first."""
    events: List[ChangeEventResponse] = Field(default_factory=list)


class IssueListResponse(BaseModel):
    issues: List[IssueResponse]
    total_count: int
