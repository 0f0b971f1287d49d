"""
Store Models: Store, StoreConfig.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntId


class Store(AuditMixin, Base):
    """
    A storefront (tenant). Every room, order and discount code belongs to one.
    """

    __tablename__ = "store"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    whatsapp: Mapped[Optional[str]] = mapped_column(Text)

    config: Mapped[Optional["StoreConfig"]] = relationship(
        back_populates="store", uselist=False, cascade="all, delete-orphan"
    )


class StoreConfig(AuditMixin, Base):
    """
    Storefront presentation: branding, layout toggles and delivery settings.
    One row per store, created with defaults on first read.
    """

    __tablename__ = "store_config"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    store_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("store.id"), nullable=False, unique=True, index=True
    )

    # Branding
    business_name: Mapped[Optional[str]] = mapped_column(Text)
    logo_url: Mapped[Optional[str]] = mapped_column(Text)
    banner_url: Mapped[Optional[str]] = mapped_column(Text)
    slogan: Mapped[Optional[str]] = mapped_column(Text)
    color_primario: Mapped[str] = mapped_column(Text, default="#007bff")
    color_secundario: Mapped[str] = mapped_column(Text, default="#6c757d")
    color_acento: Mapped[str] = mapped_column(Text, default="#28a745")
    color_fondo: Mapped[str] = mapped_column(Text, default="#ffffff")
    estilo_layout: Mapped[str] = mapped_column(Text, default="moderno")

    # Layout toggles
    mostrar_busqueda: Mapped[bool] = mapped_column(Boolean, default=True)
    mostrar_filtros: Mapped[bool] = mapped_column(Boolean, default=True)
    mostrar_categorias: Mapped[bool] = mapped_column(Boolean, default=True)
    mostrar_comentarios: Mapped[bool] = mapped_column(Boolean, default=True)
    mostrar_whatsapp: Mapped[bool] = mapped_column(Boolean, default=True)
    mostrar_precios: Mapped[bool] = mapped_column(Boolean, default=True)
    mostrar_imagenes_productos: Mapped[bool] = mapped_column(Boolean, default=True)

    # Texts
    mensaje_bienvenida: Mapped[Optional[str]] = mapped_column(Text)
    mensaje_pie_pagina: Mapped[Optional[str]] = mapped_column(Text)

    # Delivery
    tiempo_preparacion_min: Mapped[int] = mapped_column(Integer, default=30)
    delivery_disponible: Mapped[bool] = mapped_column(Boolean, default=True)
    pickup_disponible: Mapped[bool] = mapped_column(Boolean, default=True)
    pedido_minimo_cents: Mapped[int] = mapped_column(Integer, default=0)
    costo_delivery_cents: Mapped[int] = mapped_column(Integer, default=0)
    zona_delivery: Mapped[Optional[str]] = mapped_column(Text)

    # Social
    facebook_url: Mapped[Optional[str]] = mapped_column(Text)
    instagram_url: Mapped[Optional[str]] = mapped_column(Text)
    tiktok_url: Mapped[Optional[str]] = mapped_column(Text)

    store: Mapped["Store"] = relationship(back_populates="config")
