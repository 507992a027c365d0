"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. One error body shape for every failure: {"error": {code, field?, message}}
2. HTTP status code mapping for FastAPI
3. Machine-readable codes the frontend can switch on
4. Context for server-side logs without leaking it to clients

IMPORTANT: Business rules raise these; the request boundary converts them.
"""

from typing import Any, Dict, Optional


SENSITIVE_FIELDS = frozenset({"password", "token", "secret", "key", "api_key"})


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing the status code, error code and message in class
    attributes lets subclasses stay one-liners while the handler renders
    every one of them identically.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        field: Optional[str] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            field: Name of the offending input field, if any
            **context: Additional context for logging (never sent to clients)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.field = field
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to the uniform error body.

        Returns:
            {"error": {"code": ..., "message": ..., "field": ...}}
            with "field" present only when set
        """
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field:
            error["field"] = self.field
        return {"error": error}

    def safe_context(self) -> Dict[str, Any]:
        """
        Context with sensitive keys removed, for log records.

        WHY: Callers pass whatever helps debugging; the filter keeps
        credentials out of log aggregation.
        """
        return {
            k: v for k, v in self.context.items() if k.lower() not in SENSITIVE_FIELDS
        }


# ============================================================================
# Validation Exceptions (400)
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class FieldRequiredError(ValidationError):
    """Raised when a required field or header is missing or blank."""

    code = "FIELD_REQUIRED"
    default_message = "Field is required"


class NoUpdatesError(ValidationError):
    """
    Raised when an update request carries no updatable field.

    WHY: A successful update must change something; an empty PATCH is a
    client mistake, not a silent success that bumps the version.
    """

    code = "NO_UPDATES"
    default_message = "No valid fields to update"


class InvalidParentError(ValidationError):
    """Raised when a reply points at a comment outside the ticket."""

    code = "INVALID_PARENT"
    default_message = "Parent comment not found on this ticket"


class InvalidPasswordError(ValidationError):
    """Raised when the current password given for a change is wrong."""

    code = "INVALID_PASSWORD"
    default_message = "Current password is incorrect"


class CannotDeleteSelfError(ValidationError):
    """Raised when an admin tries to delete their own account."""

    code = "CANNOT_DELETE_SELF"
    default_message = "Cannot delete your own account"


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    WHY: Missing, malformed and expired tokens all map to 401 so clients
    have a single "log in again" branch.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class TokenExpiredError(AuthenticationError):
    """Raised when JWT token has expired."""

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """Raised when JWT token is malformed or has invalid signature."""

    default_message = "Token is invalid"


class InvalidCredentialsError(AuthenticationError):
    """
    Raised when login credentials don't match.

    WHY: Same message for unknown email and wrong password so the endpoint
    can't be used to enumerate accounts.
    """

    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class AuthorizationError(AppException):
    """
    Raised when user lacks permissions for an action.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class TicketNotFoundError(ResourceNotFoundError):
    """Raised when a ticket id doesn't resolve."""

    code = "TICKET_NOT_FOUND"
    default_message = "Ticket not found"


class UserNotFoundError(ResourceNotFoundError):
    """Raised when a user id doesn't resolve."""

    code = "USER_NOT_FOUND"
    default_message = "User not found"


class ConflictError(AppException):
    """
    Raised when the request conflicts with current state.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    code = "CONFLICT"
    default_message = "Request conflicts with current state"


class StaleUpdateError(ConflictError):
    """
    Raised when an optimistic-lock version check fails.

    WHY: Another writer got there first; the client must reload and retry
    rather than overwrite changes it never saw.
    """

    code = "STALE_UPDATE"
    default_message = "Ticket has been modified by another user. Please refresh and try again."


class UserExistsError(ConflictError):
    """Raised when registering an email that is already taken."""

    code = "USER_EXISTS"
    default_message = "User with this email already exists"


class EmailExistsError(ConflictError):
    """Raised when changing an email to one owned by another user."""

    code = "EMAIL_EXISTS"
    default_message = "Email already in use"


class UserHasTicketsError(ConflictError):
    """Raised when deleting a user that still created or holds tickets."""

    code = "USER_HAS_TICKETS"
    default_message = "Cannot delete user with existing tickets"


class IdempotencyConflictError(ConflictError):
    """Raised when two requests race on the first use of one key."""

    code = "IDEMPOTENCY_CONFLICT"
    default_message = "A request with this Idempotency-Key is already being processed"


# ============================================================================
# Rate Limiting & Infrastructure Exceptions
# ============================================================================


class RateLimitExceeded(AppException):
    """
    Raised when rate limit is exceeded.

    HTTP Status: 429 Too Many Requests
    """

    status_code = 429
    code = "RATE_LIMIT"
    default_message = "Too many requests, please try again later"


class DatabaseError(AppException):
    """
    Raised when database operations fail.

    WHY: Storage errors surface with a generic message; the driver's text
    stays in the server log.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"
