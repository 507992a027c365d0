"""
Rate limiting middleware.

WHAT: Per-client request limiting for the API.

WHY: A helpdesk API is public-facing; a single client hammering ticket
search or login should not degrade the service for everyone else.

HOW: Fixed window counter in Redis:
1. Each request increments a counter for the client IP
2. Counter key expires after the window duration
3. Above the limit, respond 429 with Retry-After

Design decisions:
- Fail-open: If Redis is unavailable, allow requests (prevents self-DOS)
- IP-based limiting: Uses client IP (supports proxy headers)
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

import redis.asyncio as aioredis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from helpdesk.core.config import settings
from helpdesk.core.exceptions import RateLimitExceeded
from helpdesk.middleware.request_context import get_client_ip


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class RateLimitConfig:
    """
    Configuration for rate limiting.

    Defaults come from settings: 60 requests per 60 seconds per client.
    """

    requests_per_window: int = field(default_factory=lambda: settings.RATE_LIMIT_REQUESTS)
    window_seconds: int = field(default_factory=lambda: settings.RATE_LIMIT_WINDOW_SECONDS)
    key_prefix: str = "ratelimit"


@dataclass
class RateLimitResult:
    """Outcome of one rate limit check."""

    allowed: bool
    remaining: int
    reset_after: int
    limit: int

    def headers(self) -> dict:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(self.remaining, 0)),
            "X-RateLimit-Reset": str(self.reset_after),
        }


# ============================================================================
# Rate Limiter Service
# ============================================================================


class RateLimiter:
    """
    Rate limiter service using Redis.

    HOW: Uses a Redis pipeline for increment + expire:
    1. INCR key (creates with value 1 if new)
    2. EXPIRE key window_seconds
    3. Compare counter to limit
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        config: Optional[RateLimitConfig] = None,
    ):
        """
        Args:
            redis_client: Async Redis client
            config: Rate limit configuration (uses defaults if not provided)
        """
        self._redis = redis_client
        self._config = config or RateLimitConfig()

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def _build_key(self, identifier: str, scope: str) -> str:
        """
        Build Redis key for rate limit counter.

        HOW: Format: {prefix}:{scope_normalized}:{identifier}
        """
        normalized_scope = scope.strip("/").replace("/", ":")
        return f"{self._config.key_prefix}:{normalized_scope}:{identifier}"

    async def check_rate_limit(self, identifier: str, scope: str) -> RateLimitResult:
        """
        Count one request and check it against the limit.

        Args:
            identifier: Client identifier (IP address)
            scope: Bucket name; requests in one scope share a counter

        Returns:
            RateLimitResult with allowed status and metadata
        """
        key = self._build_key(identifier, scope)

        try:
            pipe = self._redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self._config.window_seconds, nx=True)
            results = await pipe.execute()
            current_count = results[0]

            return RateLimitResult(
                allowed=current_count <= self._config.requests_per_window,
                remaining=max(0, self._config.requests_per_window - current_count),
                reset_after=self._config.window_seconds,
                limit=self._config.requests_per_window,
            )

        except Exception as e:
            # Fail-open: a Redis outage must not take the API down with it
            logger.error(
                f"Rate limit Redis error (allowing request): {e}",
                extra={"identifier": identifier, "scope": scope},
            )
            return RateLimitResult(
                allowed=True,
                remaining=-1,  # Unknown
                reset_after=self._config.window_seconds,
                limit=self._config.requests_per_window,
            )


# ============================================================================
# Global Rate Limiter Instance
# ============================================================================

_rate_limiter: Optional[RateLimiter] = None


async def get_rate_limiter() -> RateLimiter:
    """
    Get or create the process-wide rate limiter.

    WHY: One Redis connection pool per process; tests swap this function
    out for a mock.
    """
    global _rate_limiter

    if _rate_limiter is None:
        redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        _rate_limiter = RateLimiter(redis_client=redis_client)

    return _rate_limiter


async def check_rate_limit(identifier: str, scope: str) -> RateLimitResult:
    """
    Check rate limit and raise if exceeded.

    Raises:
        RateLimitExceeded: If rate limit is exceeded (429)
    """
    limiter = await get_rate_limiter()
    result = await limiter.check_rate_limit(identifier, scope)

    if not result.allowed:
        raise RateLimitExceeded(
            retry_after=result.reset_after,
            limit=result.limit,
            identifier=identifier,
        )

    return result


# ============================================================================
# Rate Limit Middleware
# ============================================================================


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies the per-client limit to every API path.

    Usage:
        app.add_middleware(RateLimitMiddleware)
    """

    # Liveness probes must never be throttled
    EXEMPT_PATHS = frozenset({"/api/health"})

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if (
            not settings.RATE_LIMIT_ENABLED
            or not path.startswith(settings.API_PREFIX)
            or path in self.EXEMPT_PATHS
        ):
            return await call_next(request)

        identifier = get_client_ip(request)

        try:
            result = await check_rate_limit(identifier, settings.API_PREFIX)
        except RateLimitExceeded as exc:
            logger.warning(f"Rate limit exceeded for {identifier} on {request.method} {path}")
            retry_after = str(exc.context.get("retry_after", 60))
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_dict(),
                headers={
                    "Retry-After": retry_after,
                    "X-RateLimit-Limit": str(exc.context.get("limit", "")),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": retry_after,
                },
            )

        response = await call_next(request)
        for name, value in result.headers().items():
            response.headers[name] = value
        return response
