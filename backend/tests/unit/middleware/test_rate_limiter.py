"""
Unit tests for rate limiting middleware.

WHY: Rate limiting keeps one noisy client from degrading the helpdesk for
everyone else.

Test scenarios:
- Requests under limit are allowed
- Requests over limit are blocked with 429 status
- Redis outages fail open
- Health checks and non-API paths are never counted
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from starlette.requests import Request
from starlette.responses import Response

from helpdesk.core.exceptions import RateLimitExceeded
from helpdesk.middleware import rate_limiter as rate_limiter_module
from helpdesk.middleware.rate_limiter import (
    RateLimitConfig,
    RateLimitMiddleware,
    RateLimitResult,
    RateLimiter,
    check_rate_limit,
)


def _pipeline(execute_result):
    """Redis pipeline double: commands are buffered sync, execute is awaited."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=execute_result)
    return pipe


def _request(path: str, client_ip: str = "10.0.0.1") -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": path,
            "query_string": b"",
            "headers": [],
            "client": (client_ip, 50000),
        }
    )


class TestRateLimitConfig:
    """Tests for RateLimitConfig dataclass."""

    def test_defaults_come_from_settings(self):
        config = RateLimitConfig()

        assert config.requests_per_window == 60
        assert config.window_seconds == 60
        assert config.key_prefix == "ratelimit"

    def test_custom_values(self):
        config = RateLimitConfig(requests_per_window=10, window_seconds=30, key_prefix="burst")

        assert config.requests_per_window == 10
        assert config.window_seconds == 30
        assert config.key_prefix == "burst"


class TestRateLimiter:
    """Tests for RateLimiter service."""

    @pytest.fixture
    def mock_redis(self):
        """
        Mock Redis client.

        WHY: Unit tests should not depend on real Redis.
        """
        return MagicMock()

    @pytest.fixture
    def rate_limiter(self, mock_redis):
        return RateLimiter(
            redis_client=mock_redis,
            config=RateLimitConfig(requests_per_window=5, window_seconds=60),
        )

    @pytest.mark.asyncio
    async def test_first_request_allowed(self, rate_limiter, mock_redis):
        mock_redis.pipeline.return_value = _pipeline([1, True])

        result = await rate_limiter.check_rate_limit("192.168.1.1", "/api")

        assert result.allowed is True
        assert result.remaining == 4
        assert result.reset_after == 60
        assert result.limit == 5

    @pytest.mark.asyncio
    async def test_request_at_limit_allowed(self, rate_limiter, mock_redis):
        mock_redis.pipeline.return_value = _pipeline([5, True])

        result = await rate_limiter.check_rate_limit("192.168.1.1", "/api")

        assert result.allowed is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_request_over_limit_denied(self, rate_limiter, mock_redis):
        mock_redis.pipeline.return_value = _pipeline([6, True])

        result = await rate_limiter.check_rate_limit("192.168.1.1", "/api")

        assert result.allowed is False
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_counter_key_and_expiry(self, rate_limiter, mock_redis):
        """
        The counter is incremented and only the first hit sets its expiry.

        WHY: Re-arming the TTL on every request would turn the fixed window
        into one that never closes under steady traffic.
        """
        pipe = _pipeline([1, True])
        mock_redis.pipeline.return_value = pipe

        await rate_limiter.check_rate_limit("192.168.1.1", "/api")

        pipe.incr.assert_called_once_with("ratelimit:api:192.168.1.1")
        pipe.expire.assert_called_once_with("ratelimit:api:192.168.1.1", 60, nx=True)

    def test_build_key_separates_clients(self, rate_limiter):
        first = rate_limiter._build_key("192.168.1.1", "/api/tickets")
        second = rate_limiter._build_key("192.168.1.2", "/api/tickets")

        assert first == "ratelimit:api:tickets:192.168.1.1"
        assert first != second

    @pytest.mark.asyncio
    async def test_redis_error_allows_request(self, rate_limiter, mock_redis):
        """
        Redis failure lets the request through (fail-open).

        WHY: An outage of the limiter's store must not take the API down.
        """
        mock_redis.pipeline.side_effect = ConnectionError("Redis connection failed")

        result = await rate_limiter.check_rate_limit("192.168.1.1", "/api")

        assert result.allowed is True
        assert result.remaining == -1


class TestRateLimitResult:
    """Tests for RateLimitResult headers."""

    def test_headers(self):
        result = RateLimitResult(allowed=True, remaining=3, reset_after=45, limit=5)

        assert result.headers() == {
            "X-RateLimit-Limit": "5",
            "X-RateLimit-Remaining": "3",
            "X-RateLimit-Reset": "45",
        }

    def test_unknown_remaining_never_negative(self):
        result = RateLimitResult(allowed=True, remaining=-1, reset_after=60, limit=5)

        assert result.headers()["X-RateLimit-Remaining"] == "0"


class TestCheckRateLimitFunction:
    """Tests for the check_rate_limit convenience function."""

    @pytest.mark.asyncio
    async def test_raises_when_exceeded(self, disable_rate_limiting):
        disable_rate_limiting.check_rate_limit = AsyncMock(
            return_value=RateLimitResult(allowed=False, remaining=0, reset_after=30, limit=5)
        )

        with pytest.raises(RateLimitExceeded) as exc_info:
            await check_rate_limit("192.168.1.1", "/api")

        assert exc_info.value.status_code == 429
        assert exc_info.value.context["retry_after"] == 30
        assert exc_info.value.to_dict()["error"]["code"] == "RATE_LIMIT"

    @pytest.mark.asyncio
    async def test_passes_when_allowed(self, disable_rate_limiting):
        disable_rate_limiting.check_rate_limit = AsyncMock(
            return_value=RateLimitResult(allowed=True, remaining=4, reset_after=60, limit=5)
        )

        result = await check_rate_limit("192.168.1.1", "/api")

        assert result.allowed is True


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware dispatch."""

    @pytest.fixture
    def limiter(self, monkeypatch):
        limiter = MagicMock()
        limiter.check_rate_limit = AsyncMock(
            return_value=RateLimitResult(allowed=True, remaining=9, reset_after=60, limit=10)
        )

        async def get_limiter():
            return limiter

        monkeypatch.setattr(rate_limiter_module, "get_rate_limiter", get_limiter)
        return limiter

    @pytest.mark.asyncio
    async def test_api_request_gets_rate_limit_headers(self, limiter):
        middleware = RateLimitMiddleware(AsyncMock())
        call_next = AsyncMock(return_value=Response("ok"))

        response = await middleware.dispatch(_request("/api/tickets"), call_next)

        call_next.assert_awaited_once()
        limiter.check_rate_limit.assert_awaited_once_with("10.0.0.1", "/api")
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "9"

    @pytest.mark.asyncio
    async def test_health_check_is_exempt(self, limiter):
        middleware = RateLimitMiddleware(AsyncMock())
        call_next = AsyncMock(return_value=Response("ok"))

        await middleware.dispatch(_request("/api/health"), call_next)

        call_next.assert_awaited_once()
        limiter.check_rate_limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_paths_outside_api_are_not_counted(self, limiter):
        middleware = RateLimitMiddleware(AsyncMock())
        call_next = AsyncMock(return_value=Response("ok"))

        await middleware.dispatch(_request("/"), call_next)

        limiter.check_rate_limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_over_limit_returns_429(self, limiter):
        limiter.check_rate_limit.return_value = RateLimitResult(
            allowed=False, remaining=0, reset_after=42, limit=10
        )
        middleware = RateLimitMiddleware(AsyncMock())
        call_next = AsyncMock()

        response = await middleware.dispatch(_request("/api/tickets"), call_next)

        call_next.assert_not_called()
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert b'"RATE_LIMIT"' in response.body
