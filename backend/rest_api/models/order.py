"""
Order Models: Order, OrderItem.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .store import Store


class Order(AuditMixin, Base):
    """
    A customer order placed on a storefront.

    Money columns are integer cents. total_cents = subtotal_cents - discount_cents.
    Status values: see shared.config.constants.OrderStatus.
    """

    __tablename__ = "store_order"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    order_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    store_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("store.id"), nullable=False, index=True
    )
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text)
    customer_address: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    payment_method: Mapped[str] = mapped_column(Text, default="efectivo", nullable=False)
    status: Mapped[str] = mapped_column(Text, default="pendiente", nullable=False, index=True)

    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_code: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("discount_cents >= 0", name="chk_order_discount_positive"),
        CheckConstraint("total_cents >= 0", name="chk_order_total_positive"),
        Index("ix_store_order_store_status", "store_id", "status"),
    )

    store: Mapped["Store"] = relationship()
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )


class OrderItem(Base):
    """
    One product line of an order. Prices are captured at order time.
    """

    __tablename__ = "store_order_item"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("store_order.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(BigIntId, nullable=False)
    variant_id: Mapped[Optional[int]] = mapped_column(BigIntId)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
        CheckConstraint("unit_price_cents >= 0", name="chk_order_item_price_positive"),
    )

    order: Mapped["Order"] = relationship(back_populates="items")
