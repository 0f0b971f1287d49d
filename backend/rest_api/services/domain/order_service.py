"""
Order Domain Service.

Handles order placement (with optional discount code), status changes and
order notifications. Notifications are published only after the write has
been committed.

Usage:
    from rest_api.services.domain import OrderService

    service = OrderService(db, engine, gateway)
    order, redemption = service.create_order(body, background_tasks)
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING
from urllib.parse import quote

from sqlalchemy.orm import Session

from shared.config.constants import NotificationKind, OrderStatus, PaymentMethod, Limits
from shared.config.logging import mask_phone, orders_logger as logger
from shared.infrastructure.db import safe_commit
from shared.utils.schemas import OrderCreate, OrderItemOutput, OrderOutput
from rest_api.models import Order, OrderItem, Store
from rest_api.repositories.order import OrderFilters, OrderRepository
from rest_api.services.domain.redemption_service import (
    RedemptionEngine,
    RedemptionRecord,
    RedemptionResult,
)
from rest_api.services.events import (
    publish_code_used,
    publish_custom_notification,
    publish_new_order,
    publish_order_status_changed,
)

if TYPE_CHECKING:
    from fastapi import BackgroundTasks
    from ws_gateway.gateway import NotificationGateway

ORDER_NUMBER_ATTEMPTS = 5


class OrderNotFoundError(Exception):
    """Order not found."""
    pass


class StoreNotFoundError(Exception):
    """Store not found or inactive."""
    pass


class InvalidOrderError(Exception):
    """Order input rejected. The message is user-facing."""
    pass


class InvalidOrderStatusError(Exception):
    """Unknown order status."""
    pass


class OrderTransitionError(Exception):
    """Status change not allowed from the current status."""
    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Order cannot move from {from_status} to {to_status}")


class DiscountRejectedError(Exception):
    """The discount code of the order was rejected."""
    def __init__(self, result: RedemptionResult):
        self.result = result
        super().__init__(result.message)


def generate_order_number() -> str:
    """ORD-{last 6 digits of the ms timestamp}-{3 random digits}."""
    timestamp = str(int(time.time() * 1000))
    return f"ORD-{timestamp[-6:]}-{random.randint(0, 999):03d}"


def build_whatsapp_url(whatsapp: str | None, order: OrderOutput) -> str | None:
    """
    wa.me link with the order summary, for the customer to send to the store.

    Returns None when the store has no WhatsApp number.
    """
    if not whatsapp:
        return None
    number = "".join(ch for ch in whatsapp if ch.isdigit())
    if not number:
        return None

    lines = [
        "*Nueva Orden*",
        f"*Número:* {order.numero_orden}",
        f"*Estado:* {order.estado.upper()}",
        "",
        f"*Cliente:* {order.cliente_nombre}",
    ]
    if order.cliente_telefono:
        lines.append(f"*Teléfono:* {order.cliente_telefono}")
    if order.cliente_direccion:
        lines.append(f"*Dirección:* {order.cliente_direccion}")
    lines += ["", "*Productos:*"]
    for item in order.items:
        lines.append(f"• Producto {item.producto_id} x{item.cantidad} - ${_format_cents(item.precio_unitario_cents)}")
    lines.append("")
    if order.descuento_cents:
        lines.append(f"*Descuento:* -${_format_cents(order.descuento_cents)}")
    lines.append(f"*Total: ${_format_cents(order.total_cents)}*")
    lines.append(f"*Método de pago:* {order.metodo_pago}")
    if order.notas:
        lines.append(f"*Notas:* {order.notas}")
    lines += ["", "¡Gracias por tu pedido!"]

    return f"https://wa.me/{number}?text={quote(chr(10).join(lines))}"


def _format_cents(cents: int) -> str:
    units, rest = divmod(cents, 100)
    return f"{units}.{rest:02d}" if rest else str(units)


class OrderService:
    """
    Domain service for storefront orders.

    Business rules:
    - An order needs at least one product line
    - Totals are computed server side from the lines: total = subtotal - discount
    - A discount code is redeemed in the same transaction as the order insert,
      so a rejected code or a failed insert leaves neither behind
    - Orders in a final status (entregada, cancelada) cannot change status
    """

    def __init__(
        self,
        db: Session,
        engine: RedemptionEngine | None = None,
        gateway: "NotificationGateway | None" = None,
    ):
        self._db = db
        self._engine = engine or RedemptionEngine()
        self._gateway = gateway
        self._repo = OrderRepository(db)

    # =========================================================================
    # Query Methods
    # =========================================================================

    def get(self, order_id: int) -> Order:
        order = self._repo.find_with_items(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    def get_by_number(self, order_number: str) -> Order:
        order = self._repo.find_by_number(order_number)
        if order is None:
            raise OrderNotFoundError(f"Order {order_number} not found")
        return order

    def list_for_store(
        self,
        store_id: int,
        *,
        status: str | None = None,
        limit: int = Limits.DEFAULT_PAGE_SIZE,
        page: int = 1,
    ) -> tuple[list[Order], int]:
        """
        Orders of a store, newest first.

        Returns:
            (orders of the page, total matching orders)
        """
        if status and status not in OrderStatus.ALL:
            raise InvalidOrderStatusError(status)
        limit = min(max(1, limit), Limits.MAX_PAGE_SIZE)
        filters = OrderFilters(
            limit=limit,
            offset=(max(1, page) - 1) * limit,
            include_inactive=True,
            status=status,
        )
        orders = list(self._repo.find_all(store_id, filters))
        return orders, self._repo.count(store_id, filters)

    # =========================================================================
    # Write Methods
    # =========================================================================

    def create_order(
        self,
        data: OrderCreate,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> tuple[Order, RedemptionResult | None]:
        """
        Place an order, redeeming its discount code if one was given.

        Returns:
            (committed order, redemption result or None without a code)

        Raises:
            StoreNotFoundError: Unknown or inactive store.
            InvalidOrderError: No lines or unknown payment method.
            DiscountRejectedError: The code is not redeemable.
            PersistenceFailure: The redemption could not be written.
        """
        store = self._db.get(Store, data.tienda_id)
        if store is None or not store.is_active:
            raise StoreNotFoundError(f"Store {data.tienda_id} not found")
        if not data.items:
            raise InvalidOrderError("La orden debe tener al menos un producto")
        if data.metodo_pago not in PaymentMethod.ALL:
            raise InvalidOrderError("Método de pago no válido")

        lines = [
            (item, item.cantidad * item.precio_unitario_cents)
            for item in data.items
        ]
        subtotal = sum(line_total for _, line_total in lines)

        code = (data.codigo_descuento or "").strip()
        offer: RedemptionResult | None = None
        discount = 0
        if code:
            offer = self._engine.validate(store.id, code, data.cliente_telefono, db=self._db)
            if not offer.ok:
                raise DiscountRejectedError(offer)
            discount = offer.compute_discount(
                (item.producto_id, line_total) for item, line_total in lines
            )

        order = Order(
            order_number=self._unique_order_number(),
            store_id=store.id,
            customer_name=data.cliente_nombre.strip(),
            customer_phone=data.cliente_telefono,
            customer_address=data.cliente_direccion,
            notes=data.notas,
            payment_method=data.metodo_pago,
            status=OrderStatus.PENDING,
            subtotal_cents=subtotal,
            discount_cents=discount,
            total_cents=subtotal - discount,
            discount_code=code or None,
            items=[
                OrderItem(
                    product_id=item.producto_id,
                    variant_id=item.variante_id,
                    quantity=item.cantidad,
                    unit_price_cents=item.precio_unitario_cents,
                    subtotal_cents=line_total,
                    notes=item.notas,
                )
                for item, line_total in lines
            ],
        )
        self._db.add(order)
        self._db.flush()

        redemption: RedemptionResult | None = None
        if offer is None:
            safe_commit(self._db)
        else:
            # Held until commit so a concurrent order by the same customer
            # counts this redemption.
            with self._engine.redemption_lock(offer.event_id):
                redemption = self._engine.redeem(
                    offer.event_id,
                    RedemptionRecord(
                        code_used=code,
                        discount_applied_cents=discount,
                        customer_phone=data.cliente_telefono,
                        order_id=order.id,
                    ),
                    db=self._db,
                )
                if not redemption.ok:
                    self._db.rollback()
                    raise DiscountRejectedError(redemption)
                safe_commit(self._db)
        self._db.refresh(order)

        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order.order_number,
            store_id=store.id,
            total_cents=order.total_cents,
            discount_cents=discount,
            customer=mask_phone(order.customer_phone),
        )

        output = self.to_output(order)
        publish_new_order(self._gateway, store.id, output.model_dump(mode="json"), background_tasks)
        if redemption is not None:
            publish_code_used(
                self._gateway,
                store.id,
                {
                    "eventoId": redemption.event_id,
                    "codigo": code,
                    "descuentoAplicadoCents": discount,
                    "ordenId": order.id,
                    "numeroOrden": order.order_number,
                    "usosActuales": redemption.usage_count,
                },
                background_tasks,
            )
        return order, redemption

    def update_status(
        self,
        order_id: int,
        new_status: str,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> tuple[Order, str]:
        """
        Change the status of an order and notify the store and order rooms.

        Returns:
            (updated order, previous status)
        """
        if new_status not in OrderStatus.ALL:
            raise InvalidOrderStatusError(new_status)

        order = self.get(order_id)
        previous = order.status
        if previous in OrderStatus.FINAL and new_status != previous:
            raise OrderTransitionError(previous, new_status)

        order.status = new_status
        safe_commit(self._db)
        self._db.refresh(order)

        logger.info(
            "Order status updated",
            order_id=order.id,
            order_number=order.order_number,
            from_status=previous,
            to_status=new_status,
        )
        publish_order_status_changed(
            self._gateway,
            order.store_id,
            order.id,
            order.order_number,
            previous,
            new_status,
            order.customer_name,
            background_tasks,
        )
        return order, previous

    def notify(
        self,
        order_id: int,
        kind: str | None,
        message: str | None,
        *,
        to_customers: bool = False,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> tuple[Order, str]:
        """
        Send a free-text notification about an order.

        Returns:
            (order, message actually sent)
        """
        kind = kind or NotificationKind.INFO
        if kind not in NotificationKind.ALL:
            raise InvalidOrderError("Tipo de notificación no válido")

        order = self.get(order_id)
        if not message:
            message = "Notificación para tu pedido" if to_customers else "Notificación de prueba"

        publish_custom_notification(
            self._gateway,
            order.store_id,
            order.id,
            order.order_number,
            kind,
            message,
            to_customers=to_customers,
            background_tasks=background_tasks,
        )
        logger.info(
            "Order notification sent",
            order_id=order.id,
            store_id=order.store_id,
            kind=kind,
            to_customers=to_customers,
        )
        return order, message

    # =========================================================================
    # Helpers
    # =========================================================================

    def _unique_order_number(self) -> str:
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            number = generate_order_number()
            if not self._repo.number_exists(number):
                return number
        # Fall back to a longer suffix
        return f"{generate_order_number()}-{random.randint(0, 9999):04d}"

    @staticmethod
    def to_output(order: Order) -> OrderOutput:
        return OrderOutput(
            id=order.id,
            numero_orden=order.order_number,
            tienda_id=order.store_id,
            cliente_nombre=order.customer_name,
            cliente_telefono=order.customer_phone,
            cliente_direccion=order.customer_address,
            notas=order.notes,
            metodo_pago=order.payment_method,
            estado=order.status,
            subtotal_cents=order.subtotal_cents,
            descuento_cents=order.discount_cents,
            total_cents=order.total_cents,
            codigo_descuento=order.discount_code,
            created_at=order.created_at,
            items=[
                OrderItemOutput(
                    id=item.id,
                    producto_id=item.product_id,
                    variante_id=item.variant_id,
                    cantidad=item.quantity,
                    precio_unitario_cents=item.unit_price_cents,
                    subtotal_cents=item.subtotal_cents,
                    notas=item.notes,
                )
                for item in order.items
            ],
        )
