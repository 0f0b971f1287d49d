"""
HTTP middlewares: request correlation, response headers and JSON-only bodies.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware

# Order and discount responses carry customer data
NO_STORE_PREFIXES = ("/api/ordenes", "/api/configuracion/validar-codigo", "/api/configuracion/usar-codigo")


class ResponseHeadersMiddleware(BaseHTTPMiddleware):
    """
    Security headers on every response, plus Cache-Control: no-store on
    endpoints that return customer data. HSTS only in production.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        headers = response.headers
        headers["X-Content-Type-Options"] = "nosniff"
        headers["X-Frame-Options"] = "DENY"
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.path.startswith(NO_STORE_PREFIXES):
            headers["Cache-Control"] = "no-store"
        if settings.environment == "production":
            headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class JSONBodyMiddleware(BaseHTTPMiddleware):
    """Reject write requests to /api whose declared body is not JSON (415)."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method in ("POST", "PUT", "PATCH") and request.url.path.startswith("/api/"):
            content_type = request.headers.get("content-type")
            if content_type and not content_type.startswith("application/json"):
                return JSONResponse(
                    status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                    content={"detail": "Solo se acepta application/json"},
                )
        return await call_next(request)


def register_middlewares(app: FastAPI) -> None:
    """
    Register the HTTP middlewares. Starlette runs the last one added first,
    so the request id is bound before anything logs.
    """
    app.add_middleware(JSONBodyMiddleware)
    app.add_middleware(ResponseHeadersMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
