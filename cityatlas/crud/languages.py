# cityatlas/crud/languages.py
from __future__ import annotations

import uuid
from typing import Iterable, Optional, Sequence, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.models.language import Language, LanguageTaxonomy


async def get_language(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    language_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[Language]:
    stmt = select(Language).where(Language.id == language_id, Language.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_language_by_slug(db: AsyncSession, tenant_id: uuid.UUID, slug: str) -> Optional[Language]:
    stmt = select(Language).where(Language.tenant_id == tenant_id, Language.slug == slug)
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_languages(db: AsyncSession, tenant_id: uuid.UUID, *, published_only: bool = False) -> Sequence[Language]:
    stmt = select(Language).where(Language.tenant_id == tenant_id)
    if published_only:
        stmt = stmt.where(Language.status == "published")
    return (await db.execute(stmt.order_by(Language.slug))).scalars().all()


async def list_assigned_value_ids(db: AsyncSession, language_id: uuid.UUID) -> Sequence[uuid.UUID]:
    stmt = select(LanguageTaxonomy.taxonomy_value_id).where(LanguageTaxonomy.language_id == language_id)
    return (await db.execute(stmt)).scalars().all()


async def list_assignments(db: AsyncSession, language_ids: Sequence[uuid.UUID]) -> Sequence[Tuple[uuid.UUID, uuid.UUID]]:
    """(language_id, value_id) pairs for many languages in one query."""
    if not language_ids:
        return []
    stmt = select(LanguageTaxonomy.language_id, LanguageTaxonomy.taxonomy_value_id).where(
        LanguageTaxonomy.language_id.in_(language_ids)
    )
    return [(row[0], row[1]) for row in (await db.execute(stmt)).all()]


async def replace_assignments(
    db: AsyncSession,
    language_id: uuid.UUID,
    type_value_ids: Iterable[uuid.UUID],
    new_value_ids: Iterable[uuid.UUID],
) -> None:
    """Swap the record's values for one taxonomy type (type_value_ids = all values of that type)."""
    scope = list(type_value_ids)
    if scope:
        await db.execute(
            delete(LanguageTaxonomy).where(
                LanguageTaxonomy.language_id == language_id,
                LanguageTaxonomy.taxonomy_value_id.in_(scope),
            )
        )
    for value_id in sorted(new_value_ids, key=str):
        db.add(LanguageTaxonomy(language_id=language_id, taxonomy_value_id=value_id))
    await db.flush()
