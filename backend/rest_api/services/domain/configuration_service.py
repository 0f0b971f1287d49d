"""
Configuration Domain Service.

Storefront presentation (StoreConfig), promotional events (DiscountEvent)
and the public discount code operations. Every committed change is
published to the store's rooms.

Usage:
    from rest_api.services.domain import ConfigurationService

    service = ConfigurationService(db, engine, gateway)
    config = service.get_config(store_id)
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import DEFAULT_STORE_CONFIG, Limits
from shared.config.logging import configuration_logger as logger
from shared.infrastructure.db import safe_commit
from shared.utils.schemas import (
    DiscountEventCreate,
    DiscountEventOutput,
    DiscountEventUpdate,
    StoreConfigOutput,
    StoreConfigUpdate,
    UseCodeRequest,
    ValidateCodeRequest,
)
from rest_api.models import DiscountEvent, Store, StoreConfig
from rest_api.repositories.discount import DiscountEventFilters, DiscountRepository
from rest_api.services.domain.redemption_service import (
    RedemptionEngine,
    RedemptionRecord,
    RedemptionResult,
    RedemptionStatus,
)
from rest_api.services.events import (
    publish_code_used,
    publish_config_updated,
    publish_discount_event_created,
    publish_discount_event_deleted,
    publish_discount_event_updated,
)

if TYPE_CHECKING:
    from fastapi import BackgroundTasks
    from ws_gateway.gateway import NotificationGateway


# Wire field -> DiscountEvent attribute
EVENT_FIELDS: dict[str, str] = {
    "titulo": "title",
    "descripcion": "description",
    "tipo": "kind",
    "imagen_url": "image_url",
    "color_destacado": "highlight_color",
    "mostrar_en_banner": "show_in_banner",
    "mostrar_en_home": "show_on_home",
    "codigo_descuento": "code",
    "descuento_porcentaje": "discount_percent",
    "descuento_monto_cents": "discount_amount_cents",
    "productos_aplicables": "applicable_product_ids",
    "fecha_inicio": "start_date",
    "fecha_fin": "end_date",
    "prioridad": "priority",
    "limite_uso": "usage_limit",
    "limite_por_cliente": "per_customer_limit",
    "activo": "is_active",
}

CONFIG_FIELDS: tuple[str, ...] = tuple(StoreConfigUpdate.model_fields)


class StoreNotFoundError(Exception):
    """Store not found or inactive."""
    pass


class DiscountEventNotFoundError(Exception):
    """Promotional event not found."""
    pass


class InvalidConfigurationError(Exception):
    """Input rejected. The message is user-facing."""
    pass


class DuplicateCodeError(InvalidConfigurationError):
    """Another event of the store already uses the code."""
    def __init__(self, code: str):
        self.code = code
        super().__init__("Ya existe un evento con ese código de descuento")


class ConfigurationService:
    """
    Domain service for storefront configuration and promotional events.

    Business rules:
    - A store's configuration is created with defaults on first read
    - Updates with no fields are rejected
    - Discount codes are unique per store; blank codes are stored as NULL
    - start date must not be after end date
    """

    def __init__(
        self,
        db: Session,
        engine: RedemptionEngine | None = None,
        gateway: "NotificationGateway | None" = None,
        today: Callable[[], date] = date.today,
    ):
        self._db = db
        self._engine = engine or RedemptionEngine()
        self._gateway = gateway
        self._today = today
        self._repo = DiscountRepository(db)

    # =========================================================================
    # Store configuration
    # =========================================================================

    def get_config(self, store_id: int) -> StoreConfigOutput:
        """Configuration of a store, creating the defaults on first read."""
        return self._config_output(self._get_or_create_config(store_id))

    def update_config(
        self,
        store_id: int,
        data: StoreConfigUpdate,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> StoreConfigOutput:
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidConfigurationError("No hay campos para actualizar")

        config = self._get_or_create_config(store_id)
        for key, value in changes.items():
            # Nullable text fields may be cleared; flags and numbers keep their value
            if value is None and key in DEFAULT_STORE_CONFIG:
                continue
            setattr(config, key, value)
        safe_commit(self._db)
        self._db.refresh(config)

        fields = sorted(changes)
        logger.info("Store configuration updated", store_id=store_id, fields=fields)
        publish_config_updated(self._gateway, store_id, fields, background_tasks)
        return self._config_output(config)

    def _get_or_create_config(self, store_id: int) -> StoreConfig:
        store = self._get_store(store_id)
        if store.config is not None:
            return store.config

        config = StoreConfig(store_id=store.id, business_name=store.name, **DEFAULT_STORE_CONFIG)
        self._db.add(config)
        try:
            safe_commit(self._db)
        except IntegrityError:
            # Created concurrently by another request
            self._db.expire_all()
            store = self._get_store(store_id)
            return store.config
        self._db.refresh(config)
        logger.info("Default store configuration created", store_id=store_id)
        return config

    @staticmethod
    def _config_output(config: StoreConfig) -> StoreConfigOutput:
        values = {name: getattr(config, name) for name in CONFIG_FIELDS}
        for name, default in DEFAULT_STORE_CONFIG.items():
            if values.get(name) is None:
                values[name] = default
        return StoreConfigOutput(tienda_id=config.store_id, **values)

    # =========================================================================
    # Promotional events
    # =========================================================================

    def list_events(
        self,
        store_id: int,
        *,
        active_only: bool = False,
        kind: str | None = None,
        limit: int = Limits.DEFAULT_PAGE_SIZE,
    ) -> list[DiscountEventOutput]:
        """
        Events of a store, highest priority first.

        active_only hides inactive events and events whose end date has passed.
        """
        filters = DiscountEventFilters(
            limit=limit,
            include_inactive=not active_only,
            kind=kind,
            current_on=self._today() if active_only else None,
        )
        return [self._event_output(e) for e in self._repo.find_all(store_id, filters)]

    def get_event(self, event_id: int) -> DiscountEventOutput:
        return self._event_output(self._get_event(event_id))

    def create_event(
        self,
        data: DiscountEventCreate,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> DiscountEventOutput:
        if not data.tienda_id or not (data.titulo or "").strip():
            raise InvalidConfigurationError("tienda_id y titulo son requeridos")
        store = self._get_store(data.tienda_id)

        values = self._event_values(data.model_dump(exclude={"tienda_id"}))
        self._check_dates(values.get("start_date"), values.get("end_date"))

        event = DiscountEvent(store_id=store.id, usage_count=0, **values)
        self._db.add(event)
        self._commit_event(event.code)
        self._db.refresh(event)

        logger.info("Promotional event created", store_id=store.id, event_id=event.id, has_code=event.code is not None)
        publish_discount_event_created(
            self._gateway, store.id, event.id, event.title, event.kind, background_tasks
        )
        return self._event_output(event)

    def update_event(
        self,
        event_id: int,
        data: DiscountEventUpdate,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> DiscountEventOutput:
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidConfigurationError("No hay campos para actualizar")

        event = self._get_event(event_id)
        values = self._event_values(changes)
        if "title" in values and not values["title"]:
            raise InvalidConfigurationError("El título no puede estar vacío")
        self._check_dates(
            values.get("start_date", event.start_date),
            values.get("end_date", event.end_date),
        )

        for attr, value in values.items():
            setattr(event, attr, value)
        self._commit_event(event.code)
        self._db.refresh(event)

        fields = sorted(changes)
        logger.info("Promotional event updated", store_id=event.store_id, event_id=event.id, fields=fields)
        publish_discount_event_updated(self._gateway, event.store_id, event.id, fields, background_tasks)
        return self._event_output(event)

    def delete_event(
        self,
        event_id: int,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> None:
        """Delete an event together with its redemption log."""
        event = self._get_event(event_id)
        store_id, title = event.store_id, event.title
        self._repo.delete(event)
        safe_commit(self._db)

        logger.info("Promotional event deleted", store_id=store_id, event_id=event_id)
        publish_discount_event_deleted(self._gateway, store_id, event_id, title, background_tasks)

    # =========================================================================
    # Discount codes
    # =========================================================================

    def validate_code(self, data: ValidateCodeRequest) -> RedemptionResult:
        if not (data.codigo or "").strip() or not data.tienda_id:
            raise InvalidConfigurationError("Código y tienda_id son requeridos")
        return self._engine.validate(data.tienda_id, data.codigo, data.cliente_telefono, db=self._db)

    def use_code(
        self,
        data: UseCodeRequest,
        background_tasks: "BackgroundTasks | None" = None,
    ) -> RedemptionResult:
        """
        Record one use of a code outside order creation.

        The redemption runs in its own transaction owned by the engine.

        Raises:
            PersistenceFailure: The redemption could not be written.
        """
        code = (data.codigo_usado or "").strip()
        if not data.evento_id or not code or data.descuento_aplicado_cents is None:
            raise InvalidConfigurationError("Datos incompletos")

        event = self._repo.get(data.evento_id)
        if event is None or (event.code or "") != code:
            return RedemptionResult.rejected(RedemptionStatus.NOT_FOUND)
        # Release the read transaction before the engine takes its own session
        self._db.rollback()

        result = self._engine.redeem(
            data.evento_id,
            RedemptionRecord(
                code_used=code,
                discount_applied_cents=data.descuento_aplicado_cents,
                customer_phone=data.cliente_telefono,
                order_id=data.orden_id,
            ),
        )
        if result.ok:
            publish_code_used(
                self._gateway,
                result.store_id,
                {
                    "eventoId": result.event_id,
                    "codigo": code,
                    "descuentoAplicadoCents": data.descuento_aplicado_cents,
                    "ordenId": data.orden_id,
                    "usosActuales": result.usage_count,
                },
                background_tasks,
            )
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_store(self, store_id: int) -> Store:
        store = self._db.get(Store, store_id)
        if store is None or not store.is_active:
            raise StoreNotFoundError(f"Store {store_id} not found")
        return store

    def _get_event(self, event_id: int) -> DiscountEvent:
        event = self._repo.get(event_id)
        if event is None:
            raise DiscountEventNotFoundError(f"Event {event_id} not found")
        return event

    def _commit_event(self, code: str | None) -> None:
        try:
            safe_commit(self._db)
        except IntegrityError as e:
            logger.warning("Promotional event rejected by constraint", error=str(e.orig))
            raise DuplicateCodeError(code or "") from e

    @staticmethod
    def _event_values(wire: dict[str, Any]) -> dict[str, Any]:
        values = {EVENT_FIELDS[key]: value for key, value in wire.items() if key in EVENT_FIELDS}
        if "applicable_product_ids" in values:
            ids = values["applicable_product_ids"] or []
            values["applicable_product_ids"] = ",".join(str(i) for i in ids) or None
        if "code" in values:
            values["code"] = (values["code"] or "").strip() or None
        if "title" in values and values["title"] is not None:
            values["title"] = values["title"].strip()
        return values

    @staticmethod
    def _check_dates(start: date | None, end: date | None) -> None:
        if start is not None and end is not None and start > end:
            raise InvalidConfigurationError("La fecha de inicio debe ser anterior a la fecha de fin")

    @staticmethod
    def _event_output(event: DiscountEvent) -> DiscountEventOutput:
        return DiscountEventOutput(
            id=event.id,
            tienda_id=event.store_id,
            titulo=event.title,
            descripcion=event.description,
            tipo=event.kind,
            imagen_url=event.image_url,
            color_destacado=event.highlight_color,
            mostrar_en_banner=bool(event.show_in_banner),
            mostrar_en_home=bool(event.show_on_home),
            codigo_descuento=event.code,
            descuento_porcentaje=event.discount_percent,
            descuento_monto_cents=event.discount_amount_cents,
            productos_aplicables=event.product_ids,
            fecha_inicio=event.start_date,
            fecha_fin=event.end_date,
            prioridad=event.priority,
            limite_uso=event.usage_limit,
            limite_por_cliente=event.per_customer_limit,
            usos_actuales=event.usage_count,
            activo=event.is_active,
        )
