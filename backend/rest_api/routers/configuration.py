"""
Storefront configuration endpoints - /api/configuracion/*

- Store presentation (branding, layout toggles, delivery settings)
- Promotional events with optional discount codes
- Public discount code validation and use (rate limited)
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.exc import SQLAlchemyError

from shared.config.constants import Limits
from shared.config.logging import configuration_logger as logger
from shared.config.settings import settings
from shared.rate_limit import limiter
from shared.utils.exceptions import (
    DatabaseError,
    DiscountEventNotFoundHTTPError,
    StoreNotFoundHTTPError,
    ValidationError,
)
from shared.utils.schemas import (
    DiscountEventCreate,
    DiscountEventOutput,
    DiscountEventUpdate,
    StoreConfigOutput,
    StoreConfigUpdate,
    UseCodeRequest,
    ValidateCodeRequest,
)
from rest_api.routers._common import discount_code_error, get_configuration_service
from rest_api.services.domain import ConfigurationService, PersistenceFailure
from rest_api.services.domain.configuration_service import (
    DiscountEventNotFoundError,
    InvalidConfigurationError,
    StoreNotFoundError,
)


router = APIRouter(prefix="/api/configuracion", tags=["configuration"])


# =============================================================================
# Store configuration
# =============================================================================


@router.get("/tienda/{tienda_id}", response_model=StoreConfigOutput)
def get_store_config(
    tienda_id: int,
    service: ConfigurationService = Depends(get_configuration_service),
) -> StoreConfigOutput:
    """Storefront configuration; created with defaults on first read."""
    try:
        return service.get_config(tienda_id)
    except StoreNotFoundError:
        raise StoreNotFoundHTTPError(tienda_id)


@router.put("/tienda/{tienda_id}")
def update_store_config(
    tienda_id: int,
    body: StoreConfigUpdate,
    background_tasks: BackgroundTasks,
    service: ConfigurationService = Depends(get_configuration_service),
) -> dict:
    """Update the storefront configuration and notify config-updated."""
    try:
        config = service.update_config(tienda_id, body, background_tasks)
    except StoreNotFoundError:
        raise StoreNotFoundHTTPError(tienda_id)
    except InvalidConfigurationError as e:
        raise ValidationError(str(e), store_id=tienda_id)
    except SQLAlchemyError as e:
        logger.error("Failed to update store configuration", store_id=tienda_id, error=str(e))
        raise DatabaseError("la actualización de la configuración", store_id=tienda_id)

    return {
        "success": True,
        "message": "Configuración actualizada correctamente",
        "configuracion": config.model_dump(),
    }


# =============================================================================
# Promotional events
# =============================================================================


@router.get("/eventos/{tienda_id}", response_model=list[DiscountEventOutput])
def list_events(
    tienda_id: int,
    activos: bool = False,
    tipo: str | None = None,
    limit: int = Query(default=Limits.DEFAULT_PAGE_SIZE, ge=1, le=Limits.MAX_PAGE_SIZE),
    service: ConfigurationService = Depends(get_configuration_service),
) -> list[DiscountEventOutput]:
    """Events of a store by priority. activos=1 hides inactive and ended events."""
    return service.list_events(tienda_id, active_only=activos, kind=tipo, limit=limit)


@router.get("/evento/{evento_id}", response_model=DiscountEventOutput)
def get_event(
    evento_id: int,
    service: ConfigurationService = Depends(get_configuration_service),
) -> DiscountEventOutput:
    try:
        return service.get_event(evento_id)
    except DiscountEventNotFoundError:
        raise DiscountEventNotFoundHTTPError(evento_id)


@router.post("/evento", status_code=status.HTTP_201_CREATED)
def create_event(
    body: DiscountEventCreate,
    background_tasks: BackgroundTasks,
    service: ConfigurationService = Depends(get_configuration_service),
) -> dict:
    """Create a promotional event and notify nuevo-evento."""
    try:
        event = service.create_event(body, background_tasks)
    except StoreNotFoundError:
        raise StoreNotFoundHTTPError(body.tienda_id)
    except InvalidConfigurationError as e:
        raise ValidationError(str(e), store_id=body.tienda_id)
    except SQLAlchemyError as e:
        logger.error("Failed to create promotional event", store_id=body.tienda_id, error=str(e))
        raise DatabaseError("la creación del evento", store_id=body.tienda_id)

    return {
        "success": True,
        "id": event.id,
        "message": "Evento creado correctamente",
        "evento": event.model_dump(mode="json"),
    }


@router.put("/evento/{evento_id}")
def update_event(
    evento_id: int,
    body: DiscountEventUpdate,
    background_tasks: BackgroundTasks,
    service: ConfigurationService = Depends(get_configuration_service),
) -> dict:
    """Update a promotional event and notify evento-actualizado."""
    try:
        event = service.update_event(evento_id, body, background_tasks)
    except DiscountEventNotFoundError:
        raise DiscountEventNotFoundHTTPError(evento_id)
    except InvalidConfigurationError as e:
        raise ValidationError(str(e), event_id=evento_id)
    except SQLAlchemyError as e:
        logger.error("Failed to update promotional event", event_id=evento_id, error=str(e))
        raise DatabaseError("la actualización del evento", event_id=evento_id)

    return {
        "success": True,
        "message": "Evento actualizado correctamente",
        "evento": event.model_dump(mode="json"),
    }


@router.delete("/evento/{evento_id}")
def delete_event(
    evento_id: int,
    background_tasks: BackgroundTasks,
    service: ConfigurationService = Depends(get_configuration_service),
) -> dict:
    """Delete a promotional event and notify evento-eliminado."""
    try:
        service.delete_event(evento_id, background_tasks)
    except DiscountEventNotFoundError:
        raise DiscountEventNotFoundHTTPError(evento_id)
    except SQLAlchemyError as e:
        logger.error("Failed to delete promotional event", event_id=evento_id, error=str(e))
        raise DatabaseError("la eliminación del evento", event_id=evento_id)

    return {"success": True, "message": "Evento eliminado correctamente"}


# =============================================================================
# Discount codes
# =============================================================================


@router.post("/validar-codigo")
@limiter.limit(settings.discount_code_rate_limit)
def validate_code(
    request: Request,
    body: ValidateCodeRequest,
    service: ConfigurationService = Depends(get_configuration_service),
) -> dict:
    """
    Check a discount code without using it.

    200 with the discount when valid; 404 when the code does not exist,
    is inactive or outside its dates; 400 when a usage limit is reached.
    """
    try:
        result = service.validate_code(body)
    except InvalidConfigurationError as e:
        raise ValidationError(str(e))

    if not result.ok:
        raise discount_code_error(result, store_id=body.tienda_id)

    return {
        "valid": True,
        "reason": result.status.value,
        "error": None,
        "evento": result.to_event_payload(),
    }


@router.post("/usar-codigo")
@limiter.limit(settings.discount_code_rate_limit)
def use_code(
    request: Request,
    body: UseCodeRequest,
    background_tasks: BackgroundTasks,
    service: ConfigurationService = Depends(get_configuration_service),
) -> dict:
    """Redeem a discount code once and notify the store admins."""
    try:
        result = service.use_code(body, background_tasks)
    except InvalidConfigurationError as e:
        raise ValidationError(str(e))
    except PersistenceFailure as e:
        raise DatabaseError("el registro del código de descuento", event_id=e.event_id)

    if not result.ok:
        raise discount_code_error(result, event_id=body.evento_id)

    return {
        "success": True,
        "message": "Código aplicado correctamente",
        "usos_actuales": result.usage_count,
        "redemption_id": result.redemption_id,
    }
