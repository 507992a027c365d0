"""
Security headers middleware.

WHY: The API only ever serves JSON, so browsers can be told to refuse
framing, MIME sniffing and inline content outright. The interactive docs
load scripts from a CDN and are left without the CSP.
"""

from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from helpdesk.core.config import settings


BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

API_CSP = "default-src 'none'; frame-ancestors 'none'"

NO_STORE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds browser hardening headers to every response."""

    DOCS_PATHS = frozenset({"/api/docs", "/api/redoc", "/api/openapi.json"})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        path = request.url.path

        for name, value in BASE_HEADERS.items():
            response.headers.setdefault(name, value)

        if path in self.DOCS_PATHS:
            return response

        response.headers["Content-Security-Policy"] = API_CSP

        # API responses carry user data; never cache them
        if path.startswith(settings.API_PREFIX):
            for name, value in NO_STORE_HEADERS.items():
                response.headers[name] = value

        return response
