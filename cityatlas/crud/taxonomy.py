# cityatlas/crud/taxonomy.py
from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.core.taxonomy_schema import (
    TaxonomyStatus,
    TaxonomyTypeConfig,
    TenantSchema,
    TypeSnapshot,
    ValueSnapshot,
)
from cityatlas.models.language import LanguageTaxonomy
from cityatlas.models.taxonomy import (
    TaxonomyType,
    TaxonomyTypeTranslation,
    TaxonomyValue,
    TaxonomyValueTranslation,
)
from cityatlas.models.tenant import Tenant


# ---------------------------------------------------------
# Types
# ---------------------------------------------------------
async def get_type(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    type_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[TaxonomyType]:
    stmt = select(TaxonomyType).where(TaxonomyType.id == type_id, TaxonomyType.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_type_by_slug(db: AsyncSession, tenant_id: uuid.UUID, slug: str) -> Optional[TaxonomyType]:
    stmt = select(TaxonomyType).where(TaxonomyType.tenant_id == tenant_id, TaxonomyType.slug == slug)
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_types(db: AsyncSession, tenant_id: uuid.UUID, *, include_retired: bool = True) -> Sequence[TaxonomyType]:
    stmt = select(TaxonomyType).where(TaxonomyType.tenant_id == tenant_id)
    if not include_retired:
        stmt = stmt.where(TaxonomyType.status != TaxonomyStatus.RETIRED.value)
    stmt = stmt.order_by(TaxonomyType.display_order, TaxonomyType.slug)
    return (await db.execute(stmt)).scalars().all()


async def get_type_translations(db: AsyncSession, type_ids: Sequence[uuid.UUID]) -> Sequence[TaxonomyTypeTranslation]:
    if not type_ids:
        return []
    stmt = select(TaxonomyTypeTranslation).where(TaxonomyTypeTranslation.taxonomy_type_id.in_(type_ids))
    return (await db.execute(stmt)).scalars().all()


# ---------------------------------------------------------
# Values
# ---------------------------------------------------------
async def get_value(
    db: AsyncSession,
    type_id: uuid.UUID,
    value_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[TaxonomyValue]:
    stmt = select(TaxonomyValue).where(TaxonomyValue.id == value_id, TaxonomyValue.taxonomy_type_id == type_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_value_by_slug(db: AsyncSession, type_id: uuid.UUID, slug: str) -> Optional[TaxonomyValue]:
    stmt = select(TaxonomyValue).where(TaxonomyValue.taxonomy_type_id == type_id, TaxonomyValue.slug == slug)
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_values(db: AsyncSession, type_ids: Sequence[uuid.UUID]) -> Sequence[TaxonomyValue]:
    if not type_ids:
        return []
    stmt = (
        select(TaxonomyValue)
        .where(TaxonomyValue.taxonomy_type_id.in_(type_ids))
        .order_by(TaxonomyValue.display_order, TaxonomyValue.slug)
    )
    return (await db.execute(stmt)).scalars().all()


async def get_value_translations(db: AsyncSession, value_ids: Sequence[uuid.UUID]) -> Sequence[TaxonomyValueTranslation]:
    if not value_ids:
        return []
    stmt = select(TaxonomyValueTranslation).where(TaxonomyValueTranslation.taxonomy_value_id.in_(value_ids))
    return (await db.execute(stmt)).scalars().all()


async def upsert_translation(db: AsyncSession, model, parent_column: str, parent_id: uuid.UUID, locale_code: str, name: str, description: Optional[str]) -> None:
    """Insert or update the (parent, locale) translation row."""
    stmt = select(model).where(getattr(model, parent_column) == parent_id, model.locale_code == locale_code)
    row = (await db.execute(stmt)).scalar_one_or_none()
    if row is None:
        db.add(model(**{parent_column: parent_id}, locale_code=locale_code, name=name, description=description))
    else:
        row.name = name
        row.description = description


# ---------------------------------------------------------
# Explicit cascade (no ORM relationships)
# ---------------------------------------------------------
async def delete_values_cascade(db: AsyncSession, value_ids: Sequence[uuid.UUID]) -> int:
    if not value_ids:
        return 0
    await db.execute(delete(LanguageTaxonomy).where(LanguageTaxonomy.taxonomy_value_id.in_(value_ids)))
    await db.execute(delete(TaxonomyValueTranslation).where(TaxonomyValueTranslation.taxonomy_value_id.in_(value_ids)))
    res = await db.execute(delete(TaxonomyValue).where(TaxonomyValue.id.in_(value_ids)))
    return int(res.rowcount or 0)


async def delete_type_cascade(db: AsyncSession, type_id: uuid.UUID) -> int:
    """Removes the type, its values, their assignments and translations. Returns values removed."""
    value_ids = list((await db.execute(select(TaxonomyValue.id).where(TaxonomyValue.taxonomy_type_id == type_id))).scalars().all())
    removed = await delete_values_cascade(db, value_ids)
    await db.execute(delete(TaxonomyTypeTranslation).where(TaxonomyTypeTranslation.taxonomy_type_id == type_id))
    await db.execute(delete(TaxonomyType).where(TaxonomyType.id == type_id))
    return removed


# ---------------------------------------------------------
# Snapshots
# ---------------------------------------------------------
def _labels(rows, key: str) -> dict:
    out: dict = defaultdict(dict)
    for r in rows:
        out[getattr(r, key)][r.locale_code] = r.name
    return out


async def load_tenant_schema(db: AsyncSession, tenant: Tenant) -> TenantSchema:
    """
    Fresh snapshot of every taxonomy type of the tenant, retired ones included.
    Callers filter by status; nothing here is cached.
    """
    types = await list_types(db, tenant.id)
    type_ids = [t.id for t in types]
    values = await list_values(db, type_ids)
    type_labels = _labels(await get_type_translations(db, type_ids), "taxonomy_type_id")
    value_labels = _labels(await get_value_translations(db, [v.id for v in values]), "taxonomy_value_id")

    values_by_type: dict = defaultdict(list)
    for v in values:
        values_by_type[v.taxonomy_type_id].append(
            ValueSnapshot(
                id=v.id,
                taxonomy_type_id=v.taxonomy_type_id,
                slug=v.slug,
                color_hex=v.color_hex,
                icon_name=v.icon_name,
                size_multiplier=v.icon_size_multiplier,
                display_order=v.display_order,
                labels=dict(value_labels.get(v.id, {})),
            )
        )

    snapshots = tuple(
        TypeSnapshot(
            id=t.id,
            tenant_id=t.tenant_id,
            slug=t.slug,
            config=TaxonomyTypeConfig(
                required=t.is_required,
                allow_multiple=t.allow_multiple,
                used_for_filtering=t.use_for_filtering,
                used_for_map_styling=t.use_for_map_styling,
            ),
            status=TaxonomyStatus(t.status),
            display_order=t.display_order,
            values=tuple(values_by_type.get(t.id, ())),
            labels=dict(type_labels.get(t.id, {})),
        )
        for t in types
    )
    return TenantSchema(tenant_id=tenant.id, default_locale=tenant.default_locale, types=snapshots)
