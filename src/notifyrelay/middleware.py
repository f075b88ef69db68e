"""HTTP middleware — request correlation and response hardening.

Learn: One middleware does two cheap things for every HTTP request:
1. Correlation: reuse the caller's X-Request-ID (or mint one), bind it
   into structlog's contextvars so every log line of the request carries
   it, and echo it back in the response
2. Hardening: standard security headers (nosniff, no framing, referrer
   policy; HSTS only when the request came in over HTTPS)

WebSocket upgrades don't pass through BaseHTTPMiddleware, so /ws is
unaffected.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

HSTS = "max-age=31536000; includeSubDomains"


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        response.headers.update(SECURITY_HEADERS)
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = HSTS
        return response
