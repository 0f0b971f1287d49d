"""
Rate limiting utilities using slowapi.
Protects the public order and discount code endpoints from abuse
(order flooding, discount code guessing).

Usage in a router:
    from shared.rate_limit import limiter

    @router.post("/validar-codigo")
    @limiter.limit(settings.discount_code_rate_limit)
    def validate_code(request: Request, ...):
        ...
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.config.logging import get_logger

logger = get_logger(__name__)

# Create limiter instance using client IP as key
limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Returns a JSON response with retry information.
    """
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Demasiadas solicitudes. Intenta nuevamente en unos momentos.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(exc.detail)},
    )
