"""
Tests for the exception hierarchy and its handlers.

WHY: Every failure leaves the service as {"error": {code, field?, message}}.
These tests pin:
1. Status codes and machine-readable codes per exception
2. Context kept out of the client body and filtered for logs
3. How pydantic errors map to FIELD_REQUIRED vs VALIDATION_ERROR
"""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpdesk.core.exception_handlers import (
    app_exception_handler,
    error_body,
    http_exception_handler,
    validation_exception_handler,
)
from helpdesk.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    CannotDeleteSelfError,
    FieldRequiredError,
    IdempotencyConflictError,
    InvalidCredentialsError,
    InvalidParentError,
    NoUpdatesError,
    RateLimitExceeded,
    StaleUpdateError,
    TicketNotFoundError,
    UserExistsError,
    UserHasTicketsError,
    UserNotFoundError,
    ValidationError,
)


def _json(response) -> dict:
    return json.loads(response.body)


class TestAppException:
    """Test base AppException class."""

    def test_defaults(self):
        exc = AppException()

        assert exc.message == "An unexpected error occurred"
        assert exc.status_code == 500
        assert exc.code == "INTERNAL_ERROR"

    def test_overrides(self):
        exc = AppException(message="Teapot", status_code=418)

        assert exc.message == "Teapot"
        assert exc.status_code == 418
        assert str(exc) == "Teapot"

    def test_to_dict_omits_context(self):
        """
        WHY: Context is for server logs; clients only get code and message.
        """
        exc = TicketNotFoundError(ticket_id=99)

        assert exc.to_dict() == {"error": {"code": "TICKET_NOT_FOUND", "message": "Ticket not found"}}

    def test_to_dict_includes_field_when_set(self):
        exc = FieldRequiredError(message="title is required", field="title")

        assert exc.to_dict() == {
            "error": {"code": "FIELD_REQUIRED", "message": "title is required", "field": "title"}
        }

    def test_safe_context_filters_sensitive_keys(self):
        exc = AppException(user_id=1, password="hunter2", token="abc", api_key="k", note="kept")

        assert exc.safe_context() == {"user_id": 1, "note": "kept"}


class TestExceptionCatalogue:
    @pytest.mark.parametrize(
        "exc_class,status_code,code",
        [
            (ValidationError, 400, "VALIDATION_ERROR"),
            (FieldRequiredError, 400, "FIELD_REQUIRED"),
            (NoUpdatesError, 400, "NO_UPDATES"),
            (InvalidParentError, 400, "INVALID_PARENT"),
            (CannotDeleteSelfError, 400, "CANNOT_DELETE_SELF"),
            (AuthenticationError, 401, "UNAUTHORIZED"),
            (InvalidCredentialsError, 401, "INVALID_CREDENTIALS"),
            (AuthorizationError, 403, "FORBIDDEN"),
            (TicketNotFoundError, 404, "TICKET_NOT_FOUND"),
            (UserNotFoundError, 404, "USER_NOT_FOUND"),
            (StaleUpdateError, 409, "STALE_UPDATE"),
            (UserExistsError, 409, "USER_EXISTS"),
            (UserHasTicketsError, 409, "USER_HAS_TICKETS"),
            (IdempotencyConflictError, 409, "IDEMPOTENCY_CONFLICT"),
            (RateLimitExceeded, 429, "RATE_LIMIT"),
        ],
    )
    def test_status_and_code(self, exc_class, status_code, code):
        exc = exc_class()

        assert exc.status_code == status_code
        assert exc.code == code
        assert exc.message

    def test_stale_update_message(self):
        assert StaleUpdateError().message == (
            "Ticket has been modified by another user. Please refresh and try again."
        )


class TestAppExceptionHandler:
    @pytest.mark.asyncio
    async def test_renders_status_and_body(self):
        response = await app_exception_handler(MagicMock(), StaleUpdateError(ticket_id=1))

        assert response.status_code == 409
        assert _json(response)["error"]["code"] == "STALE_UPDATE"


class TestValidationExceptionHandler:
    async def _handle(self, error: dict) -> dict:
        response = await validation_exception_handler(MagicMock(), RequestValidationError([error]))
        assert response.status_code == 400
        return _json(response)["error"]

    @pytest.mark.asyncio
    async def test_missing_field(self):
        error = await self._handle(
            {"type": "missing", "loc": ("body", "title"), "msg": "Field required", "input": {}}
        )

        assert error == {"code": "FIELD_REQUIRED", "field": "title", "message": "title is required"}

    @pytest.mark.asyncio
    async def test_blank_string_counts_as_missing(self):
        error = await self._handle(
            {
                "type": "string_too_short",
                "loc": ("body", "description"),
                "msg": "String should have at least 1 character",
                "input": "   ",
            }
        )

        assert error["code"] == "FIELD_REQUIRED"
        assert error["field"] == "description"

    @pytest.mark.asyncio
    async def test_short_non_blank_is_a_validation_error(self):
        error = await self._handle(
            {
                "type": "string_too_short",
                "loc": ("body", "password"),
                "msg": "String should have at least 6 characters",
                "input": "abc",
            }
        )

        assert error == {
            "code": "VALIDATION_ERROR",
            "field": "password",
            "message": "String should have at least 6 characters",
        }

    @pytest.mark.asyncio
    async def test_enum_error(self):
        error = await self._handle(
            {
                "type": "enum",
                "loc": ("body", "priority"),
                "msg": "Input should be 'low', 'medium', 'high' or 'critical'",
                "input": "urgent",
            }
        )

        assert error["code"] == "VALIDATION_ERROR"
        assert error["field"] == "priority"

    @pytest.mark.asyncio
    async def test_body_level_error_has_no_field(self):
        error = await self._handle(
            {"type": "model_attributes_type", "loc": ("body",), "msg": "Input should be an object", "input": 1}
        )

        assert error == {"code": "VALIDATION_ERROR", "message": "Input should be an object"}


class TestHttpExceptionHandler:
    @pytest.mark.asyncio
    async def test_unknown_route(self):
        response = await http_exception_handler(MagicMock(), StarletteHTTPException(404, "Not Found"))

        assert response.status_code == 404
        assert _json(response) == error_body("NOT_FOUND", "Not Found")

    @pytest.mark.asyncio
    async def test_method_not_allowed(self):
        response = await http_exception_handler(
            MagicMock(), StarletteHTTPException(405, "Method Not Allowed")
        )

        assert _json(response)["error"]["code"] == "METHOD_NOT_ALLOWED"
