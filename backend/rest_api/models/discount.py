"""
Discount Models: DiscountEvent, DiscountRedemption.

A DiscountEvent is a promotional event of a store that may carry a
discount code. Redemptions are append-only; usage_count is maintained by
an atomic conditional increment (see rest_api.repositories.discount).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntId


class DiscountEvent(AuditMixin, Base):
    """
    Promotional event with an optional discount code.

    Discount shape: either discount_percent (0-100) or discount_amount_cents.
    applicable_product_ids is a comma-separated list of product ids; empty
    means the discount applies to the whole order.

    usage_count never exceeds usage_limit when a limit is set.
    """

    __tablename__ = "discount_event"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    store_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("store.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    kind: Mapped[str] = mapped_column(Text, default="promocion", nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    highlight_color: Mapped[Optional[str]] = mapped_column(Text)
    show_in_banner: Mapped[bool] = mapped_column(default=True)
    show_on_home: Mapped[bool] = mapped_column(default=True)

    code: Mapped[Optional[str]] = mapped_column(Text)
    discount_percent: Mapped[Optional[int]] = mapped_column(Integer)
    discount_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    applicable_product_ids: Mapped[Optional[str]] = mapped_column(Text)

    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    usage_limit: Mapped[Optional[int]] = mapped_column(Integer)
    per_customer_limit: Mapped[Optional[int]] = mapped_column(Integer, default=1)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("store_id", "code", name="uq_discount_event_store_code"),
        CheckConstraint("usage_count >= 0", name="chk_discount_usage_positive"),
        CheckConstraint(
            "discount_percent IS NULL OR (discount_percent >= 0 AND discount_percent <= 100)",
            name="chk_discount_percent_range",
        ),
        CheckConstraint(
            "start_date IS NULL OR end_date IS NULL OR start_date <= end_date",
            name="chk_discount_dates",
        ),
    )

    redemptions: Mapped[list["DiscountRedemption"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def product_ids(self) -> list[int]:
        """Applicable product ids parsed from the stored list."""
        return parse_product_ids(self.applicable_product_ids)


class DiscountRedemption(Base):
    """
    One use of a discount code. Append-only.
    """

    __tablename__ = "discount_redemption"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    event_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("discount_event.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id: Mapped[Optional[int]] = mapped_column(BigIntId, ForeignKey("store_order.id"))
    customer_phone: Mapped[Optional[str]] = mapped_column(Text)
    code_used: Mapped[str] = mapped_column(Text, nullable=False)
    discount_applied_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_discount_redemption_event_phone", "event_id", "customer_phone"),
    )

    event: Mapped["DiscountEvent"] = relationship(back_populates="redemptions")


def parse_product_ids(raw: str | None) -> list[int]:
    """
    Parse a comma-separated product id list, ignoring blanks and non-numbers.

    >>> parse_product_ids("3, 5,,x,8")
    [3, 5, 8]
    """
    if not raw:
        return []
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit():
            ids.append(int(part))
    return ids
