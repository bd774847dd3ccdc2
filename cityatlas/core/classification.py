# cityatlas/core/classification.py
"""
Classifying languages (the tenant's data records) against the taxonomy schema.

Drafts may be classified one dimension at a time; required dimensions are
enforced when a language is published, and stay enforced afterwards.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import Action, is_allowed
from cityatlas.core.access import authorize_tenant_action
from cityatlas.core.assignment_validator import RecordRef, validate_assignment, validate_for_publish
from cityatlas.core.errors import CrossScopeReference, DuplicateSlug, NotFound, ValidationError
from cityatlas.core.validation import normalize_slug
from cityatlas.crud import languages as crud
from cityatlas.crud.taxonomy import load_tenant_schema
from cityatlas.db.session import run_in_transaction
from cityatlas.models.language import Language

logger = logging.getLogger(__name__)

PUBLISHED = "published"
DRAFT = "draft"


def _clean_name(value: Optional[str], field: str, *, required: bool) -> Optional[str]:
    v = " ".join((value or "").split())
    if not v:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if len(v) > 200:
        raise ValidationError(f"{field} must be at most 200 characters", field=field)
    return v


async def create_language(
    db: AsyncSession,
    actor_id: uuid.UUID,
    tenant_id: uuid.UUID,
    *,
    slug: str,
    name: str,
    endonym: Optional[str] = None,
) -> Language:
    clean_slug = normalize_slug(slug)
    clean_name = _clean_name(name, "name", required=True)
    clean_endonym = _clean_name(endonym, "endonym", required=False)

    async def _work(session: AsyncSession) -> Language:
        await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        if await crud.get_language_by_slug(session, tenant_id, clean_slug) is not None:
            raise DuplicateSlug(clean_slug, "tenant")

        lang = Language(tenant_id=tenant_id, slug=clean_slug, name=clean_name, endonym=clean_endonym, status=DRAFT)
        session.add(lang)
        await session.flush()
        logger.info("language created tenant=%s slug=%s by=%s", tenant_id, clean_slug, actor_id)
        return lang

    lang = await run_in_transaction(db, _work, operation="create_language")
    await db.refresh(lang)
    return lang


async def set_classification(
    db: AsyncSession,
    actor_id: uuid.UUID,
    tenant_id: uuid.UUID,
    language_id: uuid.UUID,
    type_id: uuid.UUID,
    value_ids: Iterable[uuid.UUID],
) -> frozenset:
    """
    Replace the language's values for one taxonomy type with `value_ids`.

    The whole set is validated first; nothing is written unless it passes.
    A type id outside the tenant's schema is reported as a cross-scope
    reference whether or not it exists elsewhere.
    """
    requested = list(value_ids)

    async def _work(session: AsyncSession) -> frozenset:
        _, tenant = await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        lang = await crud.get_language(session, tenant_id, language_id, for_update=True)
        if lang is None:
            raise NotFound("Language not found")

        schema = await load_tenant_schema(session, tenant)
        type_snapshot = schema.type_by_id(type_id)
        if type_snapshot is None:
            raise CrossScopeReference(str(type_id), requested)

        normalized = validate_assignment(
            RecordRef(id=lang.id, tenant_id=lang.tenant_id),
            type_snapshot,
            requested,
            finalize=lang.status == PUBLISHED,
        )
        await crud.replace_assignments(session, lang.id, type_snapshot.value_ids(), normalized)
        logger.info(
            "classification set tenant=%s language=%s type=%s values=%s by=%s",
            tenant_id,
            lang.slug,
            type_snapshot.slug,
            len(normalized),
            actor_id,
        )
        return normalized

    return await run_in_transaction(db, _work, operation="set_classification")


async def publish_language(db: AsyncSession, actor_id: uuid.UUID, tenant_id: uuid.UUID, language_id: uuid.UUID) -> Language:
    async def _work(session: AsyncSession) -> Language:
        _, tenant = await authorize_tenant_action(session, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        lang = await crud.get_language(session, tenant_id, language_id, for_update=True)
        if lang is None:
            raise NotFound("Language not found")

        schema = await load_tenant_schema(session, tenant)
        assigned = _group_by_type(schema.value_index(), await crud.list_assigned_value_ids(session, lang.id))
        validate_for_publish(RecordRef(id=lang.id, tenant_id=lang.tenant_id), schema.types, assigned)

        if lang.status != PUBLISHED:
            lang.status = PUBLISHED
            lang.published_at = datetime.now(timezone.utc)
            await session.flush()
            logger.info("language published tenant=%s slug=%s by=%s", tenant_id, lang.slug, actor_id)
        return lang

    lang = await run_in_transaction(db, _work, operation="publish_language")
    await db.refresh(lang)
    return lang


def _group_by_type(value_index: dict, value_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, List[uuid.UUID]]:
    grouped: Dict[uuid.UUID, List[uuid.UUID]] = defaultdict(list)
    for value_id in value_ids:
        hit = value_index.get(value_id)
        if hit is not None:
            grouped[hit[0].id].append(value_id)
    return grouped


async def get_classification(
    db: AsyncSession,
    actor_id: Optional[uuid.UUID],
    tenant_id: uuid.UUID,
    language_id: uuid.UUID,
) -> Dict[str, List[str]]:
    """
    type slug -> value slugs (display order) for one language.

    Published languages are public; drafts need write access. Values of
    retired types are still reported.
    """
    _, tenant = await authorize_tenant_action(db, actor_id, tenant_id, Action.READ_PUBLIC)
    lang = await crud.get_language(db, tenant_id, language_id)
    if lang is None or lang.status != PUBLISHED:
        await authorize_tenant_action(db, actor_id, tenant_id, Action.WRITE_TENANT_DATA)
        if lang is None:
            raise NotFound("Language not found")

    schema = await load_tenant_schema(db, tenant)
    assigned = set(await crud.list_assigned_value_ids(db, lang.id))
    out: Dict[str, List[str]] = {}
    for t in schema.ordered_types():
        slugs = [v.slug for v in t.ordered_values() if v.id in assigned]
        if slugs:
            out[t.slug] = slugs
    return out


async def list_languages(db: AsyncSession, actor_id: Optional[uuid.UUID], tenant_id: uuid.UUID) -> Sequence[Language]:
    """Published languages for everyone; callers who may write tenant data also see drafts."""
    actor, tenant = await authorize_tenant_action(db, actor_id, tenant_id, Action.READ_PUBLIC)
    can_write = is_allowed(actor, tenant_id, Action.WRITE_TENANT_DATA, tenant_active=tenant.is_active)
    return await crud.list_languages(db, tenant_id, published_only=not can_write)
