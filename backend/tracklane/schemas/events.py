"""
Tracklane Backend: Issue Mutation Variants
=============================================

What:  One Pydantic model per kind of field change an issue supports, joined
       into a discriminated union (`IssueMutation`, discriminator `kind`).
Who:   PATCH /api/workspaces/{slug}/issues/{key} request body
       (IssueMutationRequest); IssueService;
       the change event builders.

Each variant declares, as class-level metadata:
    field:       the Issue attribute it sets
    event_type:  the ChangeEventType recorded when the value actually changes

Example request bodies:
    {"kind": "status", "status": "in_progress"}
    {"kind": "priority", "priority": "urgent"}
    {"kind": "assignee", "assigned_to_id": null}
    {"kind": "summary", "summary": "Fix login redirect"}
    {"kind": "description", "description": {"type": "doc", "content": []}}
"""

import uuid
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, Field, RootModel

from tracklane.models.issue import ChangeEventType, IssuePriority, IssueStatus


class _MutationBase(BaseModel):
    field: ClassVar[str]
    event_type: ClassVar[ChangeEventType]

    def stored_value(self) -> Any:
        """The new value in the form it is stored on the Issue row."""
        value = getattr(self, self.field)
        if isinstance(value, Enum):
            return value.value
        return value


class StatusChange(_MutationBase):
    field: ClassVar[str] = "status"
    event_type: ClassVar[ChangeEventType] = ChangeEventType.STATUS_CHANGED

    kind: Literal["status"] = "status"
    status: IssueStatus


class PriorityChange(_MutationBase):
    field: ClassVar[str] = "priority"
    event_type: ClassVar[ChangeEventType] = ChangeEventType.PRIORITY_CHANGED

    kind: Literal["priority"] = "priority"
    priority: IssuePriority


class AssigneeChange(_MutationBase):
    field: ClassVar[str] = "assigned_to_id"
    event_type: ClassVar[ChangeEventType] = ChangeEventType.ASSIGNEE_CHANGED

    kind: Literal["assignee"] = "assignee"
    assigned_to_id: Optional[uuid.UUID] = Field(
        default=None,
        description="New assignee, or null to unassign",
    )


class SummaryChange(_MutationBase):
    field: ClassVar[str] = "summary"
    event_type: ClassVar[ChangeEventType] = ChangeEventType.SUMMARY_CHANGED

    kind: Literal["summary"] = "summary"
    summary: str = Field(min_length=1, max_length=500)


class DescriptionChange(_MutationBase):
    field: ClassVar[str] = "description"
    event_type: ClassVar[ChangeEventType] = ChangeEventType.DESCRIPTION_CHANGED

    kind: Literal["description"] = "description"
    description: Optional[dict] = Field(
        default=None,
        description="Rich-text document, or null to clear",
    )


IssueMutation = Annotated[
    Union[StatusChange, PriorityChange, AssigneeChange, SummaryChange, DescriptionChange],
    Field(discriminator="kind"),
]


class IssueMutationRequest(RootModel[IssueMutation]):
    """PATCH body: exactly one mutation variant, selected by `kind`."""
