"""
Tracklane Backend: Shared Route Dependencies
===============================================

What:  Request-level inputs used by several routers.
"""

import uuid
from typing import Optional

from fastapi import Header

from tracklane.exceptions import ValidationError


async def get_actor_id(
    x_actor_id: Optional[str] = Header(
        default=None,
        alias="X-Actor-ID",
        description="UUID of the user performing the change",
    ),
) -> uuid.UUID:
    """
    Identity of the caller, recorded on created issues and change events.

    Raises:
        ValidationError: Header missing or not a UUID (400)
    """
    if not x_actor_id:
        raise ValidationError(
            message="The X-Actor-ID header is required",
            field="X-Actor-ID",
        )
    try:
        return uuid.UUID(x_actor_id)
    except ValueError as e:
        raise ValidationError(
            message="The X-Actor-ID header must be a UUID",
            field="X-Actor-ID",
        ) from e
