# cityatlas/models/taxonomy.py
"""
City-defined classification schema.

A TaxonomyType ("Size", "Script", ...) belongs to one tenant; its
TaxonomyValues ("small", "medium", ...) carry the visual attributes the map
layer uses. Names/descriptions live in per-locale translation rows.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from cityatlas.db.base import Base


class TaxonomyType(Base):
    __tablename__ = "taxonomy_types"
    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_taxonomy_types_tenant_slug"),
        CheckConstraint("display_order >= 0", name="display_order_non_negative"),
        CheckConstraint("status IN ('draft', 'active', 'retired')", name="status_known"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_multiple: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    use_for_filtering: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    use_for_map_styling: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # draft | active | retired
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TaxonomyTypeTranslation(Base):
    __tablename__ = "taxonomy_type_translations"
    __table_args__ = (
        UniqueConstraint("taxonomy_type_id", "locale_code", name="uq_taxonomy_type_translations_type_locale"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    taxonomy_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("taxonomy_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    locale_code: Mapped[str] = mapped_column(String(5), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class TaxonomyValue(Base):
    __tablename__ = "taxonomy_values"
    __table_args__ = (
        UniqueConstraint("taxonomy_type_id", "slug", name="uq_taxonomy_values_type_slug"),
        CheckConstraint("display_order >= 0", name="display_order_non_negative"),
        CheckConstraint("icon_size_multiplier > 0", name="icon_size_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    taxonomy_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("taxonomy_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    slug: Mapped[str] = mapped_column(String(100), nullable=False)

    # Visual attributes for map styling
    color_hex: Mapped[str] = mapped_column(String(7), nullable=False, default="#CCCCCC")
    icon_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    icon_size_multiplier: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False, default=Decimal("1.00"))

    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TaxonomyValueTranslation(Base):
    __tablename__ = "taxonomy_value_translations"
    __table_args__ = (
        UniqueConstraint("taxonomy_value_id", "locale_code", name="uq_taxonomy_value_translations_value_locale"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    taxonomy_value_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("taxonomy_values.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    locale_code: Mapped[str] = mapped_column(String(5), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
