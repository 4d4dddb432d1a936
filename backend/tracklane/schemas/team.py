"""
Tracklane Backend: Workspace and Team Schemas
================================================

What:  Request/response models for workspace creation and team management.
"""

import re
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from tracklane.exceptions import ValidationError
from tracklane.services.issue_keys import normalize_team_key

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{0,63}$")


def _team_key(value: str) -> str:
    try:
        return normalize_team_key(value)
    except ValidationError as e:
        raise ValueError(e.message) from e


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class WorkspaceCreate(BaseModel):
    slug: str = Field(description="URL-safe identifier, lowercase")
    display_name: str = Field(min_length=1, max_length=255)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        v = v.strip().lower()
        if not SLUG_PATTERN.match(v):
            raise ValueError(
                "Slug must be 1-64 lowercase letters, digits or dashes, "
                "starting with a letter or digit"
            )
        return v


class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    key: str = Field(description="1-10 letters or digits, e.g. ENG")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        return _team_key(v)


class TeamUpdate(BaseModel):
    """
    Partial team update. Changing `key` rewrites the prefix of every issue key
    in the team; issue numbers are unaffected.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    key: Optional[str] = Field(default=None)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _team_key(v)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class TeamResponse(BaseModel):
    id: uuid.UUID
    workspace_id: uuid.UUID
    name: str
    key: str
    created_at: datetime

    model_config = {"from_attributes": True}


class WorkspaceResponse(BaseModel):
    id: uuid.UUID
    slug: str
    display_name: str
    created_at: datetime
    teams: List[TeamResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class TeamUpdateResponse(BaseModel):
    team: TeamResponse
    rekeyed_issues: int = Field(
        description="Number of issue keys rewritten to the new team key"
    )
