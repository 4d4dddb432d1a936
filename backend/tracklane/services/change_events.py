"""
Tracklane Backend: Change Event Builders
===========================================

What:  Builds `IssueChangeEvent` rows for issue creation and field mutations.
Who:   IssueService, inside the same transaction as the mutation.

Rules:
    - One event per real state transition.
    - A mutation that leaves the attribute unchanged produces no event
      (build_issue_updated_event returns None).
    - Payload shape: {field: {"from": old, "to": new}}, JSON-safe
      (UUIDs and enums become strings).
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from tracklane.models.issue import ChangeEventType, Issue, IssueChangeEvent
from tracklane.schemas.events import IssueMutation


@dataclass(frozen=True)
class EventRef:
    """Who did what to which issue, shared by every event of one mutation."""

    issue_id: uuid.UUID
    workspace_id: uuid.UUID
    actor_id: uuid.UUID


def _json_safe(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def build_change_event(
    ref: EventRef,
    event_type: ChangeEventType,
    entity_id: Optional[uuid.UUID] = None,
) -> IssueChangeEvent:
    """
    Event without a field diff, e.g. issue_created.

    `entity_id` is reserved for events that point at a related row (a label
    or comment, say). None of the current event types reference one, so
    every caller leaves it as None.
    """
    return IssueChangeEvent(
        issue_id=ref.issue_id,
        workspace_id=ref.workspace_id,
        actor_id=ref.actor_id,
        event_type=event_type.value,
        entity_id=entity_id,
        changes=None,
    )


def build_issue_updated_event(
    ref: EventRef,
    mutation: IssueMutation,
    original: Issue,
) -> Optional[IssueChangeEvent]:
    """
    Event for one field mutation, or None when nothing would change.

    Args:
        ref:       Issue / workspace / actor references
        mutation:  The typed change being applied
        original:  The issue as it was before the change
    """
    previous = getattr(original, mutation.field)
    new = mutation.stored_value()
    if previous == new:
        return None

    return IssueChangeEvent(
        issue_id=ref.issue_id,
        workspace_id=ref.workspace_id,
        actor_id=ref.actor_id,
        event_type=mutation.event_type.value,
        changes={
            mutation.field: {
                "from": _json_safe(previous),
                "to": _json_safe(new),
            }
        },
    )
