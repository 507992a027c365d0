"""
Request context middleware.

WHAT: Captures request id, client IP and user agent for every request and
makes them available throughout the request lifecycle.

WHY: Log lines from the timeline service, the exception handlers and the
rate limiter all carry the same request id, so one failing request can be
traced end to end. The id is echoed to the client as X-Request-ID for
support tickets about the helpdesk itself.

HOW: Stored in request.state for handlers and in a ContextVar for code that
has no request object (services, DAOs).
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """
    Container for request-scoped context data.

    Fields:
    - request_id: Unique identifier for the request (for log correlation)
    - ip_address: Client's real IP (considering proxies)
    - user_agent: Client's browser/application identifier
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    ip_address: str
    user_agent: Optional[str]
    path: str
    method: str


# WHY: ContextVar gives each concurrent request its own value
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request, None otherwise
    """
    return _request_context.get()


def get_client_ip(request: Request) -> str:
    """
    Extract the real client IP address from a request.

    HOW: Checks headers in order of trust:
    1. X-Real-IP (set by nginx-style proxies)
    2. X-Forwarded-For (first entry is the original client)
    3. request.client.host (direct connection IP)

    Security Note:
        These headers can be spoofed when the service isn't behind a proxy
        that overwrites them.
    """
    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    """Extract the User-Agent header from a request."""
    return request.headers.get("User-Agent")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    Example:
        @router.get("/example")
        async def example(request: Request):
            ctx = request.state.context
            # or, without a request object:
            ctx = get_request_context()
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Honour an upstream id so proxy and app logs line up
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        context = RequestContext(
            request_id=request_id,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            path=request.url.path,
            method=request.method,
        )

        request.state.context = context
        token = _request_context.set(context)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _request_context.reset(token)
