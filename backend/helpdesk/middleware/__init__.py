"""
Middleware package.

WHY: Request ids, per-client rate limits and browser hardening headers
apply to every request, so they live here rather than in each router.
"""

from helpdesk.middleware.security_headers import SecurityHeadersMiddleware
from helpdesk.middleware.request_context import (
    RequestContextMiddleware,
    get_request_context,
    get_client_ip,
    get_user_agent,
    RequestContext,
)
from helpdesk.middleware.rate_limiter import (
    RateLimitMiddleware,
    RateLimiter,
    RateLimitConfig,
    RateLimitResult,
    check_rate_limit,
    get_rate_limiter,
)

__all__ = [
    # Security
    "SecurityHeadersMiddleware",
    # Request context
    "RequestContextMiddleware",
    "get_request_context",
    "get_client_ip",
    "get_user_agent",
    "RequestContext",
    # Rate limiting
    "RateLimitMiddleware",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "check_rate_limit",
    "get_rate_limiter",
]
