# cityatlas/core/taxonomy.py
"""
Taxonomy schema store: a city's classification dimensions and their values.

Every mutation resolves write-tenant-data for the tenant that owns the type
before touching any schema table, inside the same transaction as the write.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import Mapping, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import Action
from cityatlas.core.access import authorize_tenant_action
from cityatlas.core.errors import DuplicateSlug, NotFound, RetiredTaxonomyType, ValidationError
from cityatlas.core.taxonomy_schema import TaxonomyStatus, TaxonomyTypeConfig, check_transition
from cityatlas.core.validation import (
    normalize_color,
    normalize_display_order,
    normalize_icon_name,
    normalize_locale,
    normalize_size_multiplier,
    normalize_slug,
)
from cityatlas.crud import taxonomy as crud
from cityatlas.db.session import run_in_transaction
from cityatlas.models.taxonomy import (
    TaxonomyType,
    TaxonomyTypeTranslation,
    TaxonomyValue,
    TaxonomyValueTranslation,
)

logger = logging.getLogger(__name__)

# locale -> {"name": ..., "description": ...}
Translations = Mapping[str, Mapping[str, Optional[str]]]


def _clean_translations(translations: Optional[Translations]) -> dict:
    out: dict = {}
    for locale, fields in (translations or {}).items():
        code = normalize_locale(locale)
        name = " ".join((fields.get("name") or "").split())
        if not name:
            raise ValidationError(f"translation name is required for locale {code}", field="translations")
        if len(name) > 200:
            raise ValidationError("translation name must be at most 200 characters", field="translations")
        description = fields.get("description")
        out[code] = (name, description.strip() if description else None)
    return out


def _coerce_status(status: Union[TaxonomyStatus, str]) -> TaxonomyStatus:
    try:
        return TaxonomyStatus(status)
    except ValueError:
        raise ValidationError("status must be draft, active or retired", field="status") from None


def config_of(t: TaxonomyType) -> TaxonomyTypeConfig:
    return TaxonomyTypeConfig(
        required=t.is_required,
        allow_multiple=t.allow_multiple,
        used_for_filtering=t.use_for_filtering,
        used_for_map_styling=t.use_for_map_styling,
    )


def _apply_config(t: TaxonomyType, config: TaxonomyTypeConfig) -> None:
    t.is_required = config.required
    t.allow_multiple = config.allow_multiple
    t.use_for_filtering = config.used_for_filtering
    t.use_for_map_styling = config.used_for_map_styling


async def _write_translations(session: AsyncSession, model, parent_column: str, parent_id: uuid.UUID, cleaned: dict) -> None:
    for code, (name, description) in cleaned.items():
        await crud.upsert_translation(session, model, parent_column, parent_id, code, name, description)


async def _load_type(session: AsyncSession, tenant_id: uuid.UUID, type_id: uuid.UUID) -> TaxonomyType:
    t = await crud.get_type(session, tenant_id, type_id, for_update=True)
    if t is None:
        raise NotFound("Taxonomy type not found")
    return t


# ---------------------------------------------------------
# Types
# ---------------------------------------------------------
async def create_type(
    db: AsyncSession,
    actor_id: uuid.UUID,
    tenant_id: uuid.UUID,
    *,
    slug: str,
    config: TaxonomyTypeConfig = TaxonomyTypeConfig(),
    display_order: Optional[int] = None,
    translations: Optional[Translations] = None,
) -> TaxonomyType:
    clean_slug = normalize_slug(slug)
    order = normalize_display_order(display_order)
    cleaned = _clean_translations(translations)

    async def _work(session: AsyncSession) -> TaxonomyType:
        await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)

        if await crud.get_type_by_slug(session, tenant_id, clean_slug) is not None:
            raise DuplicateSlug(clean_slug, "tenant")

        t = TaxonomyType(
            tenant_id=tenant_id,
            slug=clean_slug,
            display_order=order,
            status=TaxonomyStatus.ACTIVE.value,
        )
        _apply_config(t, config)
        session.add(t)
        await session.flush()
        await _write_translations(session, TaxonomyTypeTranslation, "taxonomy_type_id", t.id, cleaned)
        await session.flush()
        logger.info("taxonomy type created tenant=%s slug=%s by=%s", tenant_id, clean_slug, actor_id)
        return t

    t = await run_in_transaction(db, _work, operation="create_taxonomy_type")
    await db.refresh(t)
    return t


async def update_type(
    db: AsyncSession,
    actor_id: uuid.UUID,
    tenant_id: uuid.UUID,
    type_id: uuid.UUID,
    *,
    slug: Optional[str] = None,
    required: Optional[bool] = None,
    allow_multiple: Optional[bool] = None,
    used_for_filtering: Optional[bool] = None,
    used_for_map_styling: Optional[bool] = None,
    display_order: Optional[int] = None,
    status: Union[TaxonomyStatus, str, None] = None,
    translations: Optional[Translations] = None,
) -> TaxonomyType:
    """
    Partial update. Flag changes do not rewrite existing assignments; a record
    that no longer fits is caught the next time it is classified or published.
    """
    clean_slug = normalize_slug(slug) if slug is not None else None
    order = normalize_display_order(display_order) if display_order is not None else None
    target_status = _coerce_status(status) if status is not None else None
    cleaned = _clean_translations(translations)

    async def _work(session: AsyncSession) -> TaxonomyType:
        await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        t = await _load_type(session, tenant_id, type_id)

        if clean_slug is not None and clean_slug != t.slug:
            if await crud.get_type_by_slug(session, tenant_id, clean_slug) is not None:
                raise DuplicateSlug(clean_slug, "tenant")
            t.slug = clean_slug

        if target_status is not None:
            current = TaxonomyStatus(t.status)
            check_transition(current, target_status)
            t.status = target_status.value

        changes = {
            k: v
            for k, v in (
                ("required", required),
                ("allow_multiple", allow_multiple),
                ("used_for_filtering", used_for_filtering),
                ("used_for_map_styling", used_for_map_styling),
            )
            if v is not None
        }
        if changes:
            _apply_config(t, replace(config_of(t), **changes))

        if order is not None:
            t.display_order = order

        await _write_translations(session, TaxonomyTypeTranslation, "taxonomy_type_id", t.id, cleaned)
        await session.flush()
        logger.info("taxonomy type updated tenant=%s slug=%s by=%s", tenant_id, t.slug, actor_id)
        return t

    t = await run_in_transaction(db, _work, operation="update_taxonomy_type")
    await db.refresh(t)
    return t


async def retire_type(db: AsyncSession, actor_id: uuid.UUID, tenant_id: uuid.UUID, type_id: uuid.UUID) -> TaxonomyType:
    return await update_type(db, actor_id, tenant_id, type_id, status=TaxonomyStatus.RETIRED)


async def delete_type(db: AsyncSession, actor_id: uuid.UUID, tenant_id: uuid.UUID, type_id: uuid.UUID) -> int:
    """Deletes the type with its values, translations and every assignment to them."""

    async def _work(session: AsyncSession) -> int:
        await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        t = await _load_type(session, tenant_id, type_id)
        slug = t.slug
        removed = await crud.delete_type_cascade(session, t.id)
        logger.info("taxonomy type deleted tenant=%s slug=%s values=%s by=%s", tenant_id, slug, removed, actor_id)
        return removed

    return await run_in_transaction(db, _work, operation="delete_taxonomy_type")


async def list_types(db: AsyncSession, actor_id: Optional[uuid.UUID], tenant_id: uuid.UUID) -> Sequence[TaxonomyType]:
    """Schema is public; retired types are listed too, so admins can see them."""
    await authorize_tenant_action(db, actor_id, tenant_id, Action.READ_PUBLIC)
    return await crud.list_types(db, tenant_id)


# ---------------------------------------------------------
# Values
# ---------------------------------------------------------
async def create_value(
    db: AsyncSession,
    actor_id: uuid.UUID,
    tenant_id: uuid.UUID,
    type_id: uuid.UUID,
    *,
    slug: str,
    color_hex: Optional[str] = None,
    icon_name: Optional[str] = None,
    icon_size_multiplier: Union[Decimal, float, str, None] = None,
    display_order: Optional[int] = None,
    translations: Optional[Translations] = None,
) -> TaxonomyValue:
    clean_slug = normalize_slug(slug)
    color = normalize_color(color_hex)
    icon = normalize_icon_name(icon_name)
    size = normalize_size_multiplier(icon_size_multiplier)
    order = normalize_display_order(display_order)
    cleaned = _clean_translations(translations)

    async def _work(session: AsyncSession) -> TaxonomyValue:
        await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        t = await _load_type(session, tenant_id, type_id)
        if t.status == TaxonomyStatus.RETIRED.value:
            raise RetiredTaxonomyType(t.slug)

        if await crud.get_value_by_slug(session, t.id, clean_slug) is not None:
            raise DuplicateSlug(clean_slug, "taxonomy type")

        v = TaxonomyValue(
            taxonomy_type_id=t.id,
            slug=clean_slug,
            color_hex=color,
            icon_name=icon,
            icon_size_multiplier=size,
            display_order=order,
        )
        session.add(v)
        await session.flush()
        await _write_translations(session, TaxonomyValueTranslation, "taxonomy_value_id", v.id, cleaned)
        await session.flush()
        logger.info("taxonomy value created tenant=%s type=%s slug=%s by=%s", tenant_id, t.slug, clean_slug, actor_id)
        return v

    v = await run_in_transaction(db, _work, operation="create_taxonomy_value")
    await db.refresh(v)
    return v


async def update_value(
    db: AsyncSession,
    actor_id: uuid.UUID,
    tenant_id: uuid.UUID,
    type_id: uuid.UUID,
    value_id: uuid.UUID,
    *,
    slug: Optional[str] = None,
    color_hex: Optional[str] = None,
    icon_name: Optional[str] = None,
    icon_size_multiplier: Union[Decimal, float, str, None] = None,
    display_order: Optional[int] = None,
    translations: Optional[Translations] = None,
) -> TaxonomyValue:
    clean_slug = normalize_slug(slug) if slug is not None else None
    color = normalize_color(color_hex) if color_hex is not None else None
    size = normalize_size_multiplier(icon_size_multiplier) if icon_size_multiplier is not None else None
    order = normalize_display_order(display_order) if display_order is not None else None
    cleaned = _clean_translations(translations)

    async def _work(session: AsyncSession) -> TaxonomyValue:
        await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        t = await _load_type(session, tenant_id, type_id)
        v = await crud.get_value(session, t.id, value_id, for_update=True)
        if v is None:
            raise NotFound("Taxonomy value not found")

        if clean_slug is not None and clean_slug != v.slug:
            if await crud.get_value_by_slug(session, t.id, clean_slug) is not None:
                raise DuplicateSlug(clean_slug, "taxonomy type")
            v.slug = clean_slug
        if color is not None:
            v.color_hex = color
        if icon_name is not None:
            # empty string clears the icon
            v.icon_name = normalize_icon_name(icon_name)
        if size is not None:
            v.icon_size_multiplier = size
        if order is not None:
            v.display_order = order

        await _write_translations(session, TaxonomyValueTranslation, "taxonomy_value_id", v.id, cleaned)
        await session.flush()
        logger.info("taxonomy value updated tenant=%s type=%s slug=%s by=%s", tenant_id, t.slug, v.slug, actor_id)
        return v

    v = await run_in_transaction(db, _work, operation="update_taxonomy_value")
    await db.refresh(v)
    return v


async def delete_value(
    db: AsyncSession,
    actor_id: uuid.UUID,
    tenant_id: uuid.UUID,
    type_id: uuid.UUID,
    value_id: uuid.UUID,
) -> None:
    async def _work(session: AsyncSession) -> None:
        await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        t = await _load_type(session, tenant_id, type_id)
        v = await crud.get_value(session, t.id, value_id)
        if v is None:
            raise NotFound("Taxonomy value not found")
        slug = v.slug
        await crud.delete_values_cascade(session, [v.id])
        logger.info("taxonomy value deleted tenant=%s type=%s slug=%s by=%s", tenant_id, t.slug, slug, actor_id)

    await run_in_transaction(db, _work, operation="delete_taxonomy_value")


async def list_values(
    db: AsyncSession,
    actor_id: Optional[uuid.UUID],
    tenant_id: uuid.UUID,
    type_id: uuid.UUID,
) -> Sequence[TaxonomyValue]:
    await authorize_tenant_action(db, actor_id, tenant_id, Action.READ_PUBLIC)
    t = await crud.get_type(db, tenant_id, type_id)
    if t is None:
        raise NotFound("Taxonomy type not found")
    return await crud.list_values(db, [t.id])
