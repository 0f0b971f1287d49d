"""
Discount Repository - Data access for discount events and redemptions.

The usage counter is only ever changed through increment_usage(), a single
conditional UPDATE that cannot push usage_count past usage_limit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Select, func, or_, select, update

from rest_api.models import DiscountEvent, DiscountRedemption
from .base import BaseRepository, RepositoryFilters

if TYPE_CHECKING:
    from rest_api.services.domain.redemption_service import RedemptionRecord


@dataclass
class DiscountEventFilters(RepositoryFilters):
    """Filters specific to discount events."""

    kind: str | None = None
    # Only active events that have not ended as of this date
    current_on: date | None = None


class DiscountRepository(BaseRepository[DiscountEvent]):
    """
    Repository for DiscountEvent and its redemption log.
    """

    @property
    def model(self) -> type[DiscountEvent]:
        return DiscountEvent

    def _base_query(self, store_id: int) -> Select:
        return (
            select(DiscountEvent)
            .where(DiscountEvent.store_id == store_id)
            .order_by(DiscountEvent.priority.desc(), DiscountEvent.created_at.desc(), DiscountEvent.id.desc())
        )

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        if not isinstance(filters, DiscountEventFilters):
            return query
        if filters.kind:
            query = query.where(DiscountEvent.kind == filters.kind)
        if filters.current_on is not None:
            query = query.where(
                or_(DiscountEvent.end_date.is_(None), DiscountEvent.end_date >= filters.current_on)
            )
        return query

    def find_discount_code(self, store_id: int, code: str) -> DiscountEvent | None:
        """
        Find the event carrying a code in a store, active or not.

        Matching is exact after trimming surrounding whitespace.
        """
        code = code.strip()
        if not code:
            return None
        return self._db.scalar(
            select(DiscountEvent).where(
                DiscountEvent.store_id == store_id,
                DiscountEvent.code == code,
            )
        )

    def get(self, event_id: int) -> DiscountEvent | None:
        """Event by id, active or not."""
        return self._db.get(DiscountEvent, event_id)

    def count_redemptions(self, event_id: int, customer_phone: str | None = None) -> int:
        """
        Number of recorded redemptions of an event, optionally for one customer phone.
        """
        query = (
            select(func.count())
            .select_from(DiscountRedemption)
            .where(DiscountRedemption.event_id == event_id)
        )
        if customer_phone is not None:
            query = query.where(DiscountRedemption.customer_phone == customer_phone)
        return self._db.scalar(query) or 0

    def append_redemption(self, event_id: int, record: "RedemptionRecord") -> int:
        """
        Append a redemption row. Flushes; the caller owns the transaction.

        Returns:
            The new redemption id.
        """
        row = DiscountRedemption(
            event_id=event_id,
            order_id=record.order_id,
            customer_phone=record.customer_phone,
            code_used=record.code_used,
            discount_applied_cents=record.discount_applied_cents,
        )
        self._db.add(row)
        self._db.flush()
        return row.id

    def increment_usage(self, event_id: int) -> int | None:
        """
        Atomically increment usage_count if the usage limit allows it.

        UPDATE discount_event SET usage_count = usage_count + 1
        WHERE id = :id AND (usage_limit IS NULL OR usage_count < usage_limit)

        Returns:
            The new usage count, or None if no row was updated (limit reached
            or unknown event).
        """
        result = self._db.execute(
            update(DiscountEvent)
            .where(
                DiscountEvent.id == event_id,
                or_(
                    DiscountEvent.usage_limit.is_(None),
                    DiscountEvent.usage_count < DiscountEvent.usage_limit,
                ),
            )
            .values(usage_count=DiscountEvent.usage_count + 1)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            return None
        return self._db.scalar(
            select(DiscountEvent.usage_count).where(DiscountEvent.id == event_id)
        )
