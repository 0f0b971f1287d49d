"""
Centralized constants for the backend application.

Usage:
    from shared.config.constants import OrderStatus, Limits

    if status not in OrderStatus.ALL:
        ...
"""

from typing import Final


# =============================================================================
# Entity Status Constants
# =============================================================================


class OrderStatus:
    """Order status constants (wire values shared with the storefront clients)."""

    PENDING: Final[str] = "pendiente"
    CONFIRMED: Final[str] = "confirmada"
    PREPARING: Final[str] = "preparando"
    SHIPPED: Final[str] = "enviada"
    DELIVERED: Final[str] = "entregada"
    CANCELED: Final[str] = "cancelada"

    ALL: Final[list[str]] = [PENDING, CONFIRMED, PREPARING, SHIPPED, DELIVERED, CANCELED]
    FINAL: Final[frozenset[str]] = frozenset({DELIVERED, CANCELED})


class PaymentMethod:
    """Payment method labels accepted on orders."""

    CASH: Final[str] = "efectivo"
    TRANSFER: Final[str] = "transferencia"
    CARD: Final[str] = "tarjeta"

    ALL: Final[list[str]] = [CASH, TRANSFER, CARD]


class NotificationKind:
    """Kinds accepted by custom notifications (rendered by the client)."""

    INFO: Final[str] = "info"
    SUCCESS: Final[str] = "success"
    WARNING: Final[str] = "warning"
    ERROR: Final[str] = "error"

    ALL: Final[list[str]] = [INFO, SUCCESS, WARNING, ERROR]


# =============================================================================
# Limits
# =============================================================================


class Limits:
    """Pagination and size limits."""

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200
    MAX_ORDER_ITEMS: Final[int] = 100
    MAX_CODE_LENGTH: Final[int] = 64
    MAX_NOTIFICATION_LENGTH: Final[int] = 500


# Default storefront presentation for stores without a saved configuration
DEFAULT_STORE_CONFIG: Final[dict[str, object]] = {
    "color_primario": "#007bff",
    "color_secundario": "#6c757d",
    "color_acento": "#28a745",
    "color_fondo": "#ffffff",
    "estilo_layout": "moderno",
    "mostrar_busqueda": True,
    "mostrar_filtros": True,
    "mostrar_categorias": True,
    "mostrar_comentarios": True,
    "mostrar_whatsapp": True,
    "mostrar_precios": True,
    "mostrar_imagenes_productos": True,
    "tiempo_preparacion_min": 30,
    "delivery_disponible": True,
    "pickup_disponible": True,
    "pedido_minimo_cents": 0,
    "costo_delivery_cents": 0,
}
