"""
TrailMemo Backend — Custom Exception Hierarchy
================================================

What:  Application-specific exceptions, one per error kind the API reports.
Why:   Stores and services raise by *kind*; the exception handlers in main.py
       map each kind to an HTTP status and a stable machine-readable code.
       A kind is never downgraded on the way up.
How:   Each class carries `status_code`, `code`, a client-safe `message` and
       a `context` dict (logged, and returned as `details` for 4xx only).

Exception Hierarchy:
    TrailMemoError (base)                → 500 INTERNAL_ERROR
    ├── ValidationError                  → 400 VALIDATION_ERROR
    │   └── PayloadTooLargeError         → 413 VALIDATION_ERROR
    ├── AuthenticationError              → 401 AUTHENTICATION_ERROR
    ├── AuthorizationError               → 403 AUTHORIZATION_ERROR
    ├── NotFoundError                    → 404 NOT_FOUND
    ├── ConflictError                    → 409 CONFLICT
    ├── DatabaseError                    → 500 INTERNAL_ERROR (persistence)
    ├── UpstreamError                    → 502 UPSTREAM_ERROR (identity / storage)
    │   ├── StorageError                 → 502 UPSTREAM_ERROR
    │   └── CircuitBreakerOpenError      → 503 UPSTREAM_ERROR
    └── RateLimitExceededError           → 429 RATE_LIMITED
"""

from typing import Any, Dict, Optional


class TrailMemoError(Exception):
    """
    Root of the hierarchy.

    Attributes:
        message:  Client-facing description (safe to return)
        context:  Debug information (logged; exposed as `details` for 4xx)
    """

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(TrailMemoError):
    """
    Malformed or missing input the client can correct.

    Covers bad ids, missing required fields, unpaired coordinates,
    out-of-range numbers, empty search queries and empty update sets.
    """

    status_code = 400
    code = "VALIDATION_ERROR"

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


class PayloadTooLargeError(ValidationError):
    """Uploaded audio exceeds max_upload_size."""

    status_code = 413


class AuthenticationError(TrailMemoError):
    """Missing, malformed, invalid or expired bearer credential."""

    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(TrailMemoError):
    """
    Valid identity, insufficient rights.

    Raised when a user tries to mutate a memo they did not create. Kept
    distinct from AuthenticationError so clients don't re-prompt for login.
    """

    status_code = 403
    code = "AUTHORIZATION_ERROR"

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(TrailMemoError):
    """The requested resource does not exist."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(TrailMemoError):
    """Uniqueness violation, e.g. registering the same subject id twice."""

    status_code = 409
    code = "CONFLICT"

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(TrailMemoError):
    """
    Storage engine failure (connectivity, constraint violation, timeout).

    Security Note:
        The client always receives a generic message; the SQLAlchemy error
        type and any identifiers stay in `context` and the server log.
    """

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamError(TrailMemoError):
    """An external dependency (identity provider, object storage) failed."""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str = "An upstream service is unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageError(UpstreamError):
    """Object storage put/delete failed."""

    def __init__(
        self,
        message: str = "Audio storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(UpstreamError):
    """
    Object storage has failed repeatedly; calls are short-circuited until
    the recovery timeout elapses.
    """

    status_code = 503

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Audio storage is temporarily unavailable due to repeated failures. "
            f"Retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class RateLimitExceededError(TrailMemoError):
    """Client exceeded the per-IP request budget."""

    status_code = 429
    code = "RATE_LIMITED"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
