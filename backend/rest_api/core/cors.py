"""
CORS configuration for the storefront and admin front ends.

Origins come from settings.origins, the same list the /ws handshake checks.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config.settings import settings
from shared.infrastructure.correlation import REQUEST_ID_HEADER


# Storefront clients only read and write JSON
CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Accept", "Accept-Language", REQUEST_ID_HEADER]


def configure_cors(app: FastAPI) -> None:
    """
    Add the CORS middleware.

    Preflight responses are not cached in development so origin changes
    apply on the next request.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
        expose_headers=[REQUEST_ID_HEADER],
        max_age=0 if settings.environment == "development" else 600,
    )
