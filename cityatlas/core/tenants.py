# cityatlas/core/tenants.py
"""City lifecycle. Cities are created by superusers and only ever deactivated."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import Action, ensure_allowed
from cityatlas.core.config import settings
from cityatlas.core.errors import DuplicateSlug, NotFound, ValidationError
from cityatlas.core.validation import normalize_locale, normalize_slug
from cityatlas.crud.grants import load_principal_context
from cityatlas.crud.tenants import get_tenant, get_tenant_by_slug
from cityatlas.db.session import run_in_transaction
from cityatlas.models.tenant import Tenant

logger = logging.getLogger(__name__)


async def create_tenant(
    db: AsyncSession,
    actor_id: uuid.UUID,
    *,
    slug: str,
    name: str,
    default_locale: Optional[str] = None,
) -> Tenant:
    clean_slug = normalize_slug(slug)
    clean_name = " ".join((name or "").split())
    if len(clean_name) < 2 or len(clean_name) > 200:
        raise ValidationError("name must be between 2 and 200 characters", field="name")
    locale = normalize_locale(default_locale or settings.DEFAULT_LOCALE)

    async def _work(session: AsyncSession) -> Tenant:
        actor = await load_principal_context(session, actor_id)
        ensure_allowed(actor, None, Action.MANAGE_PLATFORM)

        if await get_tenant_by_slug(session, clean_slug) is not None:
            raise DuplicateSlug(clean_slug, "platform")

        tenant = Tenant(slug=clean_slug, name=clean_name, default_locale=locale, is_active=True)
        session.add(tenant)
        await session.flush()
        logger.info("tenant created slug=%s id=%s by=%s", tenant.slug, tenant.id, actor_id)
        return tenant

    tenant = await run_in_transaction(db, _work, operation="create_tenant")
    await db.refresh(tenant)
    return tenant


async def set_tenant_active(db: AsyncSession, actor_id: uuid.UUID, tenant_id: uuid.UUID, is_active: bool) -> Tenant:
    async def _work(session: AsyncSession) -> Tenant:
        actor = await load_principal_context(session, actor_id)
        ensure_allowed(actor, None, Action.MANAGE_PLATFORM)

        tenant = await get_tenant(session, tenant_id)
        if tenant is None:
            raise NotFound("Tenant not found")
        if tenant.is_active != is_active:
            tenant.is_active = is_active
            await session.flush()
            logger.info("tenant %s slug=%s by=%s", "activated" if is_active else "deactivated", tenant.slug, actor_id)
        return tenant

    tenant = await run_in_transaction(db, _work, operation="set_tenant_active")
    await db.refresh(tenant)
    return tenant
