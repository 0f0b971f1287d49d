"""
Shared Pydantic schemas used across the application.

Field names follow the storefront wire format (Spanish, snake_case).
Money is always integer cents.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from shared.config.constants import Limits


# =============================================================================
# Order Schemas
# =============================================================================


class OrderItemInput(BaseModel):
    """One product line of a new order."""

    producto_id: int = Field(gt=0)
    variante_id: int | None = Field(default=None, gt=0)
    cantidad: int = Field(gt=0, le=1000)
    precio_unitario_cents: int = Field(ge=0)
    notas: str | None = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    """Order placed from the storefront."""

    tienda_id: int = Field(gt=0)
    cliente_nombre: str = Field(min_length=1, max_length=100)
    cliente_telefono: str | None = Field(default=None, max_length=30)
    cliente_direccion: str | None = Field(default=None, max_length=300)
    notas: str | None = Field(default=None, max_length=500)
    metodo_pago: str = "efectivo"
    # Empty list is rejected by OrderService with a user-facing message
    items: list[OrderItemInput] = Field(default_factory=list, max_length=Limits.MAX_ORDER_ITEMS)
    codigo_descuento: str | None = Field(default=None, max_length=Limits.MAX_CODE_LENGTH)


class OrderStatusUpdate(BaseModel):
    """New status for an order."""

    estado: str


class OrderNotificationRequest(BaseModel):
    """Free-text notification about an order."""

    tipo: str = "info"
    mensaje: str | None = Field(default=None, max_length=Limits.MAX_NOTIFICATION_LENGTH)


class OrderItemOutput(BaseModel):
    id: int
    producto_id: int
    variante_id: int | None = None
    cantidad: int
    precio_unitario_cents: int
    subtotal_cents: int
    notas: str | None = None


class OrderOutput(BaseModel):
    """Order as returned by the API and sent in nueva-orden events."""

    id: int
    numero_orden: str
    tienda_id: int
    cliente_nombre: str
    cliente_telefono: str | None = None
    cliente_direccion: str | None = None
    notas: str | None = None
    metodo_pago: str
    estado: str
    subtotal_cents: int
    descuento_cents: int = 0
    total_cents: int
    codigo_descuento: str | None = None
    items: list[OrderItemOutput] = []
    created_at: datetime | None = None


class OrderCreateResponse(BaseModel):
    orden_id: int
    numero_orden: str
    subtotal_cents: int
    descuento_cents: int
    total_cents: int
    estado: str
    whatsapp_url: str | None = None
    success: bool = True
    message: str = "Orden creada correctamente"


class OrderListResponse(BaseModel):
    ordenes: list[OrderOutput]
    total: int
    pagina: int
    limite: int
    paginas: int


# =============================================================================
# Store Configuration Schemas
# =============================================================================


class StoreConfigUpdate(BaseModel):
    """Partial update of the storefront presentation. Unset fields are untouched."""

    business_name: str | None = Field(default=None, max_length=100)
    logo_url: str | None = Field(default=None, max_length=500)
    banner_url: str | None = Field(default=None, max_length=500)
    slogan: str | None = Field(default=None, max_length=200)
    color_primario: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    color_secundario: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    color_acento: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    color_fondo: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    estilo_layout: str | None = Field(default=None, max_length=30)
    mostrar_busqueda: bool | None = None
    mostrar_filtros: bool | None = None
    mostrar_categorias: bool | None = None
    mostrar_comentarios: bool | None = None
    mostrar_whatsapp: bool | None = None
    mostrar_precios: bool | None = None
    mostrar_imagenes_productos: bool | None = None
    mensaje_bienvenida: str | None = Field(default=None, max_length=500)
    mensaje_pie_pagina: str | None = Field(default=None, max_length=500)
    tiempo_preparacion_min: int | None = Field(default=None, ge=0, le=1440)
    delivery_disponible: bool | None = None
    pickup_disponible: bool | None = None
    pedido_minimo_cents: int | None = Field(default=None, ge=0)
    costo_delivery_cents: int | None = Field(default=None, ge=0)
    zona_delivery: str | None = Field(default=None, max_length=300)
    facebook_url: str | None = Field(default=None, max_length=500)
    instagram_url: str | None = Field(default=None, max_length=500)
    tiktok_url: str | None = Field(default=None, max_length=500)


class StoreConfigOutput(BaseModel):
    tienda_id: int
    business_name: str | None = None
    logo_url: str | None = None
    banner_url: str | None = None
    slogan: str | None = None
    color_primario: str
    color_secundario: str
    color_acento: str
    color_fondo: str
    estilo_layout: str
    mostrar_busqueda: bool
    mostrar_filtros: bool
    mostrar_categorias: bool
    mostrar_comentarios: bool
    mostrar_whatsapp: bool
    mostrar_precios: bool
    mostrar_imagenes_productos: bool
    mensaje_bienvenida: str | None = None
    mensaje_pie_pagina: str | None = None
    tiempo_preparacion_min: int
    delivery_disponible: bool
    pickup_disponible: bool
    pedido_minimo_cents: int
    costo_delivery_cents: int
    zona_delivery: str | None = None
    facebook_url: str | None = None
    instagram_url: str | None = None
    tiktok_url: str | None = None


# =============================================================================
# Promotional Event / Discount Code Schemas
# =============================================================================


class DiscountEventCreate(BaseModel):
    """
    New promotional event.

    tienda_id and titulo are checked by the service so a missing one is a
    400 with a readable message rather than a schema error.
    """

    tienda_id: int | None = Field(default=None, gt=0)
    titulo: str | None = Field(default=None, max_length=150)
    descripcion: str | None = Field(default=None, max_length=1000)
    tipo: str = Field(default="promocion", max_length=30)
    imagen_url: str | None = Field(default=None, max_length=500)
    color_destacado: str | None = Field(default=None, max_length=20)
    mostrar_en_banner: bool = True
    mostrar_en_home: bool = True
    codigo_descuento: str | None = Field(default=None, max_length=Limits.MAX_CODE_LENGTH)
    descuento_porcentaje: int | None = Field(default=None, ge=0, le=100)
    descuento_monto_cents: int | None = Field(default=None, ge=0)
    productos_aplicables: list[int] = []
    fecha_inicio: date | None = None
    fecha_fin: date | None = None
    prioridad: int = 0
    limite_uso: int | None = Field(default=None, ge=0)
    limite_por_cliente: int | None = Field(default=1, ge=0)
    activo: bool = True


class DiscountEventUpdate(BaseModel):
    """Partial update of a promotional event. Unset fields are untouched."""

    titulo: str | None = Field(default=None, min_length=1, max_length=150)
    descripcion: str | None = Field(default=None, max_length=1000)
    tipo: str | None = Field(default=None, max_length=30)
    imagen_url: str | None = Field(default=None, max_length=500)
    color_destacado: str | None = Field(default=None, max_length=20)
    mostrar_en_banner: bool | None = None
    mostrar_en_home: bool | None = None
    codigo_descuento: str | None = Field(default=None, max_length=Limits.MAX_CODE_LENGTH)
    descuento_porcentaje: int | None = Field(default=None, ge=0, le=100)
    descuento_monto_cents: int | None = Field(default=None, ge=0)
    productos_aplicables: list[int] | None = None
    fecha_inicio: date | None = None
    fecha_fin: date | None = None
    prioridad: int | None = None
    limite_uso: int | None = Field(default=None, ge=0)
    limite_por_cliente: int | None = Field(default=None, ge=0)
    activo: bool | None = None


class DiscountEventOutput(BaseModel):
    id: int
    tienda_id: int
    titulo: str
    descripcion: str | None = None
    tipo: str
    imagen_url: str | None = None
    color_destacado: str | None = None
    mostrar_en_banner: bool
    mostrar_en_home: bool
    codigo_descuento: str | None = None
    descuento_porcentaje: int | None = None
    descuento_monto_cents: int | None = None
    productos_aplicables: list[int] = []
    fecha_inicio: date | None = None
    fecha_fin: date | None = None
    prioridad: int
    limite_uso: int | None = None
    limite_por_cliente: int | None = None
    usos_actuales: int
    activo: bool


class ValidateCodeRequest(BaseModel):
    codigo: str | None = Field(default=None, max_length=Limits.MAX_CODE_LENGTH)
    tienda_id: int | None = None
    cliente_telefono: str | None = Field(default=None, max_length=30)


class UseCodeRequest(BaseModel):
    """Record one use of a code, outside order creation."""

    evento_id: int | None = None
    codigo_usado: str | None = Field(default=None, max_length=Limits.MAX_CODE_LENGTH)
    descuento_aplicado_cents: int | None = Field(default=None, ge=0)
    cliente_telefono: str | None = Field(default=None, max_length=30)
    orden_id: int | None = None
