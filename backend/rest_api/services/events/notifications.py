"""
Storefront notification publishing.

Services call these helpers after their write has been committed. Delivery
is best effort: a failure is logged and never propagates to the request
that triggered it.

In a FastAPI request, pass background_tasks so the notification is sent
after the response. Outside a request (scripts, tests) the coroutine is
scheduled on the running loop with an error-logging callback, or run to
completion when no loop is running.
"""

import asyncio
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

from shared.config.logging import get_logger
from ws_gateway.components.events.types import StoreEvent, event_name

if TYPE_CHECKING:
    from fastapi import BackgroundTasks
    from ws_gateway.gateway import NotificationGateway

logger = get_logger(__name__)


class Audience(str, Enum):
    """Room a notification is addressed to."""

    STORE = "store"
    ADMINS = "admins"
    CUSTOMERS = "customers"
    ORDER = "order"


def _task_error_callback(task: asyncio.Task) -> None:
    """
    Log errors from fire-and-forget notification tasks instead of losing them.
    """
    try:
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Notification task failed",
                task_name=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
    except asyncio.CancelledError:
        # Task was cancelled, not an error
        pass
    except asyncio.InvalidStateError:
        pass


def _run_async(coro, task_name: str = "notification") -> None:
    """
    Run an async coroutine from sync code.

    1. Inside a running loop: schedule a named task with an error callback
    2. No running loop: run it to completion
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(coro)
        return
    task = loop.create_task(coro, name=task_name)
    task.add_done_callback(_task_error_callback)


async def _publish(
    gateway: "NotificationGateway",
    audience: Audience,
    target: int | str,
    event: str,
    data: dict[str, Any],
) -> int:
    """Dispatch to the gateway method of the audience."""
    try:
        if audience is Audience.STORE:
            return await gateway.notify_store(int(target), event, data)
        if audience is Audience.ADMINS:
            return await gateway.notify_store_admins(int(target), event, data)
        if audience is Audience.CUSTOMERS:
            return await gateway.notify_store_customers(int(target), event, data)
        return await gateway.notify_order(str(target), event, data)
    except Exception as e:
        logger.error(
            "Failed to publish notification",
            audience=audience.value,
            target=target,
            event=event,
            error=str(e),
        )
        return 0


def publish_notification(
    gateway: Optional["NotificationGateway"],
    audience: Audience,
    target: int | str,
    event: StoreEvent | str,
    data: dict[str, Any],
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    """
    Publish one notification to a room.

    Args:
        gateway: Gateway to publish through; None disables publishing.
        audience: Which room of the target.
        target: Store id (store/admin/customer rooms) or order number.
        event: Event name.
        data: Event payload.
        background_tasks: FastAPI BackgroundTasks (recommended in routes).
    """
    if gateway is None:
        logger.debug("Notification skipped, no gateway", event=event_name(event), target=target)
        return

    name = event_name(event)
    if background_tasks is not None:
        background_tasks.add_task(_publish, gateway, audience, target, name, data)
    else:
        _run_async(
            _publish(gateway, audience, target, name, data),
            task_name=f"notification:{audience.value}:{target}:{name}",
        )


# =============================================================================
# Orders
# =============================================================================


def publish_new_order(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    order: dict[str, Any],
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    """Tell the store's admins about a new order."""
    publish_notification(
        gateway,
        Audience.ADMINS,
        store_id,
        StoreEvent.NEW_ORDER,
        {"orden": order, "tipo": "nueva_orden"},
        background_tasks,
    )


def publish_order_status_changed(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    order_id: int,
    order_number: str,
    previous_status: str,
    new_status: str,
    customer_name: str,
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    """Status change, to the store room and to clients tracking the order."""
    data = {
        "ordenId": order_id,
        "numeroOrden": order_number,
        "estadoAnterior": previous_status,
        "nuevoEstado": new_status,
        "clienteNombre": customer_name,
        "tipo": "cambio_estado",
    }
    publish_notification(gateway, Audience.STORE, store_id, StoreEvent.ORDER_UPDATED, data, background_tasks)
    publish_notification(gateway, Audience.ORDER, order_number, StoreEvent.ORDER_UPDATED, data, background_tasks)


def publish_custom_notification(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    order_id: int,
    order_number: str,
    kind: str,
    message: str,
    to_customers: bool = False,
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    """
    Free-text notification about an order.

    Goes to the store room, or with to_customers to the store's customer
    room and the order's tracking room.
    """
    data = {
        "ordenId": order_id,
        "numeroOrden": order_number,
        "tipo": kind,
        "mensaje": message,
    }
    if to_customers:
        publish_notification(gateway, Audience.CUSTOMERS, store_id, StoreEvent.CUSTOM_NOTIFICATION, data, background_tasks)
        publish_notification(gateway, Audience.ORDER, order_number, StoreEvent.CUSTOM_NOTIFICATION, data, background_tasks)
    else:
        publish_notification(gateway, Audience.STORE, store_id, StoreEvent.CUSTOM_NOTIFICATION, data, background_tasks)


def publish_code_used(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    code_info: dict[str, Any],
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    """Tell the store's admins a discount code was redeemed."""
    publish_notification(
        gateway,
        Audience.ADMINS,
        store_id,
        StoreEvent.DISCOUNT_CODE_USED,
        {"tiendaId": store_id, "codigoInfo": code_info},
        background_tasks,
    )


# =============================================================================
# Store configuration and promotional events
# =============================================================================


def publish_config_updated(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    fields: list[str],
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    publish_notification(
        gateway,
        Audience.STORE,
        store_id,
        StoreEvent.CONFIG_UPDATED,
        {"tiendaId": store_id, "campos": fields},
        background_tasks,
    )


def publish_discount_event_created(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    event_id: int,
    title: str,
    kind: str,
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    publish_notification(
        gateway,
        Audience.STORE,
        store_id,
        StoreEvent.DISCOUNT_EVENT_NEW,
        {"eventoId": event_id, "titulo": title, "tipo": kind},
        background_tasks,
    )


def publish_discount_event_updated(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    event_id: int,
    fields: list[str],
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    publish_notification(
        gateway,
        Audience.STORE,
        store_id,
        StoreEvent.DISCOUNT_EVENT_CHANGED,
        {"eventoId": event_id, "campos": fields},
        background_tasks,
    )


def publish_discount_event_deleted(
    gateway: Optional["NotificationGateway"],
    store_id: int,
    event_id: int,
    title: str,
    background_tasks: Optional["BackgroundTasks"] = None,
) -> None:
    publish_notification(
        gateway,
        Audience.STORE,
        store_id,
        StoreEvent.DISCOUNT_EVENT_REMOVED,
        {"eventoId": event_id, "titulo": title},
        background_tasks,
    )
