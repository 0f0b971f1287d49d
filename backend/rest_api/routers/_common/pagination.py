"""
Page-based pagination for list endpoints.

Storefront clients page with ?limite=&pagina= (1-indexed).

Usage:
    from rest_api.routers._common.pagination import Pagination, get_pagination

    @router.get("/tienda/{tienda_id}")
    def list_orders(pagination: Pagination = Depends(get_pagination)):
        ...
        return {"ordenes": items, **pagination.to_dict(total=count)}
"""

from dataclasses import dataclass
from typing import Any

from fastapi import Query

from shared.config.constants import Limits


@dataclass
class Pagination:
    """
    Pagination parameters with validation.

    Attributes:
        limit: Maximum items per page (1 to max_limit)
        page: Page number, starting at 1
        max_limit: Maximum allowed limit (default 200)
    """

    limit: int
    page: int = 1
    max_limit: int = Limits.MAX_PAGE_SIZE

    def __post_init__(self):
        """Validate and normalize values."""
        self.limit = min(max(1, self.limit), self.max_limit)
        self.page = max(1, self.page)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def to_dict(self, total: int | None = None) -> dict[str, Any]:
        """
        Pagination metadata for the response.

        Args:
            total: Total count of items (optional)
        """
        result: dict[str, Any] = {"pagina": self.page, "limite": self.limit}
        if total is not None:
            result["total"] = total
            result["paginas"] = (total + self.limit - 1) // self.limit
        return result


def get_pagination(
    limite: int = Query(
        default=Limits.DEFAULT_PAGE_SIZE,
        ge=1,
        le=Limits.MAX_PAGE_SIZE,
        description="Maximum number of items per page",
    ),
    pagina: int = Query(
        default=1,
        ge=1,
        description="Page number, starting at 1",
    ),
) -> Pagination:
    """FastAPI dependency for page-based pagination."""
    return Pagination(limit=limite, page=pagina)
