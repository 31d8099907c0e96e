"""Application middleware: request body size limit, security and streaming headers."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from campusgig.config import settings


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies whose declared Content-Length exceeds ``max_bytes``."""

    def __init__(self, app, max_bytes: int | None = None) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_body_bytes

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        if request.method in ("POST", "PATCH", "PUT"):
            content_length = request.headers.get("content-length")
            if content_length:
                try:
                    declared = int(content_length)
                except ValueError:
                    return JSONResponse(
                        status_code=400,
                        content={
                            "error": "validation_error",
                            "detail": "Invalid Content-Length header",
                            "retryable": False,
                        },
                    )
                if declared > self.max_bytes:
                    return JSONResponse(
                        status_code=413,
                        content={
                            "error": "validation_error",
                            "detail": f"Request body too large (max {self.max_bytes} bytes)",
                            "retryable": False,
                        },
                    )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses, and no-buffering hints to event streams."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.env != "development":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        if response.headers.get("content-type", "").startswith("text/event-stream"):
            response.headers["Cache-Control"] = "no-cache"
            response.headers["X-Accel-Buffering"] = "no"
        return response
