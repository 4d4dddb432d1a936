"""
Tracklane Backend: Custom Exception Hierarchy
=================================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services; caught by global handlers.

Exception Hierarchy:
    TracklaneError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── SequenceIntegrityError   → 500 Internal Server Error (never retried)
    └── DatabaseError            → 500 Internal Server Error

Transient driver errors (sqlalchemy.exc.OperationalError and friends) are NOT
wrapped by the services. They reach the transaction runner in database.py,
which decides whether to retry the whole unit of work.
"""

from typing import Any, Dict, Optional


class TracklaneError(Exception):
    """
    Base exception for all Tracklane application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    code = "INTERNAL"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(TracklaneError):
    """
    Raised when client input fails a business rule.

    When:    Malformed issue key, bad team key, negative batch size, oversized bulk request.
    HTTP:    400 Bad Request

    Schema-level problems are already answered with 422 by FastAPI; this one
    covers rules that only the service layer can check.
    """

    code = "BAD_REQUEST"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(TracklaneError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown workspace slug, team key or issue key.
    HTTP:    404 Not Found
    """

    code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(TracklaneError):
    """
    Raised when a write collides with existing state.

    When:    A team key already used in the workspace, a workspace slug already
             taken, or a sequence counter initialized twice for the same team.
    HTTP:    409 Conflict
    """

    code = "CONFLICT"

    def __init__(
        self,
        message: str = "The resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class SequenceIntegrityError(TracklaneError):
    """
    Raised when a team's counter row is missing right after it was ensured.

    What:    The atomic increment matched zero rows.
    HTTP:    500 Internal Server Error

    This only happens when the counter row vanishes between the ensure and the
    increment, i.e. data corruption. It is logged and surfaced; the transaction
    runner does not retry it.
    """

    code = "INTERNAL"

    def __init__(
        self,
        message: str = "Could not allocate an issue number",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(TracklaneError):
    """
    Raised when database operations fail and cannot be recovered.

    When:    Transient failures that outlived every retry, or an unexpected
             constraint violation.
    HTTP:    500 Internal Server Error

    The message returned to the client is always generic. Driver details are
    logged server-side only.
    """

    code = "INTERNAL"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
