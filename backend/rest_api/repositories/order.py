"""
Order Repository - Data access for orders.
Items are eager loaded to avoid N+1 queries when serializing.
"""

from dataclasses import dataclass

from sqlalchemy import Select, select
from sqlalchemy.orm import selectinload

from rest_api.models import Order
from .base import BaseRepository, RepositoryFilters


@dataclass
class OrderFilters(RepositoryFilters):
    """Filters specific to orders."""

    status: str | None = None


class OrderRepository(BaseRepository[Order]):
    """
    Repository for Order entities.

    Guarantees eager loading of items.
    """

    @property
    def model(self) -> type[Order]:
        return Order

    def _base_query(self, store_id: int) -> Select:
        return (
            select(Order)
            .where(Order.store_id == store_id)
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        if isinstance(filters, OrderFilters) and filters.status:
            query = query.where(Order.status == filters.status)
        return query

    def find_with_items(self, order_id: int) -> Order | None:
        """Order by id with its items."""
        return self._db.scalar(
            select(Order).where(Order.id == order_id).options(selectinload(Order.items))
        )

    def find_by_number(self, order_number: str) -> Order | None:
        """Order by its public number, with items."""
        return self._db.scalar(
            select(Order)
            .where(Order.order_number == order_number)
            .options(selectinload(Order.items))
        )

    def number_exists(self, order_number: str) -> bool:
        return self._db.scalar(
            select(Order.id).where(Order.order_number == order_number)
        ) is not None
