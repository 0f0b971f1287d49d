"""
Order endpoints - /api/ordenes/*

Placing orders (public, rate limited), status changes and order
notifications. Every write is followed by a real-time notification
scheduled as a background task.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.exc import SQLAlchemyError

from shared.config.logging import orders_logger as logger
from shared.config.settings import settings
from shared.rate_limit import limiter
from shared.utils.exceptions import (
    DatabaseError,
    InvalidTransitionError,
    OrderNotFoundHTTPError,
    StoreNotFoundHTTPError,
    ValidationError,
)
from shared.utils.schemas import (
    OrderCreate,
    OrderCreateResponse,
    OrderListResponse,
    OrderNotificationRequest,
    OrderOutput,
    OrderStatusUpdate,
)
from rest_api.routers._common import (
    Pagination,
    discount_code_error,
    get_order_service,
    get_pagination,
)
from rest_api.services.domain import OrderService, PersistenceFailure
from rest_api.services.domain.order_service import (
    DiscountRejectedError,
    InvalidOrderError,
    InvalidOrderStatusError,
    OrderNotFoundError,
    OrderTransitionError,
    StoreNotFoundError,
    build_whatsapp_url,
)
from ws_gateway.components.rooms.keys import customer_room, store_room


router = APIRouter(prefix="/api/ordenes", tags=["orders"])


@router.post("", response_model=OrderCreateResponse)
@limiter.limit(settings.order_create_rate_limit)
def create_order(
    request: Request,
    body: OrderCreate,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
) -> OrderCreateResponse:
    """
    Place an order from the storefront.

    With codigo_descuento the code is validated, the discount computed
    server side and the code redeemed in the same transaction as the order.
    Notifies the store admins (nueva-orden) and, when a code was redeemed,
    codigo-discount-usado.
    """
    try:
        order, _ = service.create_order(body, background_tasks)
    except StoreNotFoundError:
        raise StoreNotFoundHTTPError(body.tienda_id)
    except InvalidOrderError as e:
        raise ValidationError(str(e), store_id=body.tienda_id)
    except DiscountRejectedError as e:
        raise discount_code_error(e.result, store_id=body.tienda_id)
    except PersistenceFailure as e:
        raise DatabaseError("el registro del código de descuento", event_id=e.event_id)
    except SQLAlchemyError as e:
        logger.error("Failed to create order", store_id=body.tienda_id, error=str(e))
        raise DatabaseError("la creación de la orden", store_id=body.tienda_id)

    output = service.to_output(order)
    return OrderCreateResponse(
        orden_id=order.id,
        numero_orden=order.order_number,
        subtotal_cents=order.subtotal_cents,
        descuento_cents=order.discount_cents,
        total_cents=order.total_cents,
        estado=order.status,
        whatsapp_url=build_whatsapp_url(order.store.whatsapp, output),
    )


@router.get("/tienda/{tienda_id}", response_model=OrderListResponse)
def list_store_orders(
    tienda_id: int,
    estado: str | None = None,
    pagination: Pagination = Depends(get_pagination),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Orders of a store, newest first, optionally filtered by status."""
    try:
        orders, total = service.list_for_store(
            tienda_id,
            status=estado,
            limit=pagination.limit,
            page=pagination.page,
        )
    except InvalidOrderStatusError:
        raise ValidationError("Estado no válido", status=estado)

    return OrderListResponse(
        ordenes=[service.to_output(o) for o in orders],
        **pagination.to_dict(total=total),
    )


@router.get("/numero/{numero_orden}", response_model=OrderOutput)
def get_order_by_number(
    numero_orden: str,
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """Order by its public number (customer tracking page)."""
    try:
        return service.to_output(service.get_by_number(numero_orden))
    except OrderNotFoundError:
        raise OrderNotFoundHTTPError(numero_orden)


@router.get("/{orden_id}", response_model=OrderOutput)
def get_order(
    orden_id: int,
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    try:
        return service.to_output(service.get(orden_id))
    except OrderNotFoundError:
        raise OrderNotFoundHTTPError(orden_id)


@router.put("/{orden_id}/estado")
def update_order_status(
    orden_id: int,
    body: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
) -> dict:
    """
    Change the status of an order.

    Notifies orden-actualizada to the store room and to clients
    following the order.
    """
    try:
        order, previous = service.update_status(orden_id, body.estado, background_tasks)
    except InvalidOrderStatusError:
        raise ValidationError("Estado no válido", status=body.estado)
    except OrderNotFoundError:
        raise OrderNotFoundHTTPError(orden_id)
    except OrderTransitionError as e:
        raise InvalidTransitionError("Orden", e.from_status, e.to_status, order_id=orden_id)
    except SQLAlchemyError as e:
        logger.error("Failed to update order status", order_id=orden_id, error=str(e))
        raise DatabaseError("la actualización del estado", order_id=orden_id)

    return {
        "message": "Estado actualizado correctamente",
        "estado": order.status,
        "estado_anterior": previous,
        "numero_orden": order.order_number,
        "notificacion_enviada": True,
    }


@router.post("/{orden_id}/notificar", status_code=status.HTTP_200_OK)
def notify_store(
    orden_id: int,
    body: OrderNotificationRequest,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
) -> dict:
    """Send a custom notification about an order to the store room."""
    try:
        order, _ = service.notify(
            orden_id, body.tipo, body.mensaje, background_tasks=background_tasks
        )
    except InvalidOrderError as e:
        raise ValidationError(str(e), kind=body.tipo)
    except OrderNotFoundError:
        raise OrderNotFoundHTTPError(orden_id)

    return {
        "message": "Notificación enviada correctamente",
        "enviada_a": store_room(order.store_id),
    }


@router.post("/{orden_id}/notificar-cliente", status_code=status.HTTP_200_OK)
def notify_customer(
    orden_id: int,
    body: OrderNotificationRequest,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
) -> dict:
    """Send a custom notification to the customers following an order."""
    try:
        order, message = service.notify(
            orden_id,
            body.tipo,
            body.mensaje,
            to_customers=True,
            background_tasks=background_tasks,
        )
    except InvalidOrderError as e:
        raise ValidationError(str(e), kind=body.tipo)
    except OrderNotFoundError:
        raise OrderNotFoundHTTPError(orden_id)

    return {
        "message": "Notificación enviada al cliente correctamente",
        "orden_numero": order.order_number,
        "cliente": order.customer_name,
        "mensaje_enviado": message,
        "enviada_a": customer_room(order.store_id),
    }
