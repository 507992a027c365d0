"""
Request Context Middleware Tests.

WHAT: Unit tests for RequestContextMiddleware and its helpers.

WHY: Timeline log lines, error logs and the rate limiter key all come from
the request context, so client IP and request id must be right:
- Client IP extraction (direct and through proxies)
- Request id generation or propagation from upstream
- Context availability during the request, cleared afterwards
"""

import pytest
from unittest.mock import MagicMock
from starlette.requests import Request
from starlette.responses import Response

from helpdesk.middleware.request_context import (
    REQUEST_ID_HEADER,
    RequestContext,
    RequestContextMiddleware,
    _request_context,
    get_client_ip,
    get_request_context,
    get_user_agent,
)


def _make_request(headers: dict = None, client_host: str = None, path: str = "/api/tickets",
                  method: str = "GET") -> Request:
    """Request built from a bare ASGI scope."""
    return Request(
        {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
            "client": (client_host, 12345) if client_host else None,
        }
    )


async def _ok(request):
    return Response(content="OK", status_code=200)


class TestGetClientIp:
    """Tests for the get_client_ip function."""

    def test_x_real_ip_wins(self):
        request = _make_request(
            headers={"X-Real-IP": "192.168.1.100", "X-Forwarded-For": "203.0.113.50"},
            client_host="10.0.0.1",
        )
        assert get_client_ip(request) == "192.168.1.100"

    def test_first_forwarded_for_entry(self):
        """
        WHY: The first X-Forwarded-For entry is the original client; the
        rest are proxies.
        """
        request = _make_request(
            headers={"X-Forwarded-For": "203.0.113.50, 70.41.3.18, 150.172.238.178"},
            client_host="10.0.0.1",
        )
        assert get_client_ip(request) == "203.0.113.50"

    def test_direct_connection(self):
        request = _make_request(client_host="192.168.1.50")
        assert get_client_ip(request) == "192.168.1.50"

    def test_strips_whitespace(self):
        request = _make_request(headers={"X-Real-IP": "  192.168.1.100  "})
        assert get_client_ip(request) == "192.168.1.100"

    def test_unknown_fallback(self):
        assert get_client_ip(_make_request()) == "unknown"


class TestGetUserAgent:
    def test_present(self):
        request = _make_request(headers={"User-Agent": "helpdesk-cli/1.0"})
        assert get_user_agent(request) == "helpdesk-cli/1.0"

    def test_missing(self):
        assert get_user_agent(_make_request()) is None


class TestGetRequestContext:
    def test_none_outside_a_request(self):
        _request_context.set(None)
        assert get_request_context() is None

    def test_returns_set_context(self):
        ctx = RequestContext(
            request_id="test-id",
            ip_address="1.2.3.4",
            user_agent=None,
            path="/api/tickets",
            method="GET",
        )

        token = _request_context.set(ctx)
        try:
            assert get_request_context() == ctx
        finally:
            _request_context.reset(token)


@pytest.mark.asyncio
class TestRequestContextMiddleware:
    """Tests for the RequestContextMiddleware class."""

    async def test_generates_request_id(self):
        middleware = RequestContextMiddleware(app=MagicMock())

        response = await middleware.dispatch(_make_request(), _ok)

        # uuid4 string
        assert len(response.headers[REQUEST_ID_HEADER]) == 36

    async def test_keeps_upstream_request_id(self):
        """
        WHY: A proxy that already assigned an id must see the same id in
        our logs and in the response.
        """
        middleware = RequestContextMiddleware(app=MagicMock())
        request = _make_request(headers={"X-Request-ID": "edge-42"})

        response = await middleware.dispatch(request, _ok)

        assert response.headers[REQUEST_ID_HEADER] == "edge-42"

    async def test_context_available_during_request(self):
        captured = {}

        async def call_next(req):
            captured["state"] = req.state.context
            captured["var"] = get_request_context()
            return Response(content="OK")

        middleware = RequestContextMiddleware(app=MagicMock())
        request = _make_request(
            headers={"X-Real-IP": "192.168.1.100", "User-Agent": "TestBrowser/1.0"},
            path="/api/auth/login",
            method="POST",
        )
        await middleware.dispatch(request, call_next)

        assert captured["state"] is captured["var"]
        assert captured["var"].ip_address == "192.168.1.100"
        assert captured["var"].user_agent == "TestBrowser/1.0"
        assert captured["var"].path == "/api/auth/login"
        assert captured["var"].method == "POST"

    async def test_context_cleared_after_request(self):
        middleware = RequestContextMiddleware(app=MagicMock())

        await middleware.dispatch(_make_request(), _ok)

        assert get_request_context() is None

    async def test_context_cleared_on_error(self):
        async def failing(req):
            raise ValueError("boom")

        middleware = RequestContextMiddleware(app=MagicMock())

        with pytest.raises(ValueError):
            await middleware.dispatch(_make_request(), failing)

        assert get_request_context() is None
