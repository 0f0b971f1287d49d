"""
Centralized HTTP exceptions for consistent error handling.

Usage:
    from shared.utils.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Orden", order_id)
    raise ValidationError("La orden debe tener al menos un producto")
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str | dict[str, Any],
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        message = detail if isinstance(detail, str) else str(detail.get("error", detail))
        log_fn(message, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Orden", 123)
        raise NotFoundError("Tienda", store_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} con ID {entity_id} no encontrada"
        else:
            detail = f"{entity} no encontrada"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class OrderNotFoundHTTPError(NotFoundError):
    """Order not found."""

    def __init__(self, order_ref: int | str | None = None, **log_context: Any):
        super().__init__("Orden", order_ref, **log_context)


class StoreNotFoundHTTPError(NotFoundError):
    """Store not found."""

    def __init__(self, store_id: int | None = None, **log_context: Any):
        super().__init__("Tienda", store_id, **log_context)


class DiscountEventNotFoundHTTPError(NotFoundError):
    """Promotional event not found."""

    def __init__(self, event_id: int | None = None, **log_context: Any):
        super().__init__("Evento", event_id, **log_context)


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Estado no válido")
        raise ValidationError("Cantidad inválida", field="cantidad", value=-1)
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        detail = f"Transición inválida de '{from_status}' a '{to_status}' para {entity}"
        super().__init__(detail, entity=entity, from_status=from_status, to_status=to_status, **log_context)


class DiscountCodeError(AppException):
    """
    Rejected discount code.

    Carries a structured body so clients can tell "code exhausted" apart
    from "code not found":
        {"valid": false, "reason": "exhausted", "error": "Código agotado"}
    """

    def __init__(self, status_code: int, reason: str, message: str, **log_context: Any):
        super().__init__(
            status_code=status_code,
            detail={"valid": False, "reason": reason, "error": message},
            log_level="info",
            reason=reason,
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Failed to persist order", store_id=5)
    """

    def __init__(self, detail: str = "Error interno del servidor", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed."""

    def __init__(self, operation: str, **log_context: Any):
        detail = f"Error de base de datos durante {operation}. Por favor intente de nuevo."
        super().__init__(detail, operation=operation, **log_context)
