"""
Event Services - Real-time notifications for storefront clients.

Fire-and-forget publishing through the NotificationGateway, with
FastAPI BackgroundTasks inside a request and a logged asyncio task
outside one.
"""

from .notifications import (
    Audience,
    publish_notification,
    publish_new_order,
    publish_order_status_changed,
    publish_custom_notification,
    publish_code_used,
    publish_config_updated,
    publish_discount_event_created,
    publish_discount_event_updated,
    publish_discount_event_deleted,
)

__all__ = [
    "Audience",
    "publish_notification",
    "publish_new_order",
    "publish_order_status_changed",
    "publish_custom_notification",
    "publish_code_used",
    "publish_config_updated",
    "publish_discount_event_created",
    "publish_discount_event_updated",
    "publish_discount_event_deleted",
]
