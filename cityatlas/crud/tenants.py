# cityatlas/crud/tenants.py
from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.models.grant import Grant
from cityatlas.models.tenant import Tenant


async def get_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> Optional[Tenant]:
    return (await db.execute(select(Tenant).where(Tenant.id == tenant_id))).scalar_one_or_none()


async def get_tenant_by_slug(db: AsyncSession, slug: str) -> Optional[Tenant]:
    stmt = select(Tenant).where(Tenant.slug == (slug or "").strip().lower())
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_tenants(db: AsyncSession, *, include_inactive: bool = False) -> Sequence[Tenant]:
    stmt = select(Tenant).order_by(Tenant.slug)
    if not include_inactive:
        stmt = stmt.where(Tenant.is_active.is_(True))
    return (await db.execute(stmt)).scalars().all()


async def list_tenants_for_principal(db: AsyncSession, principal_id: uuid.UUID) -> Sequence[Tenant]:
    """Tenants the principal holds a grant for (TenantSelection)."""
    stmt = (
        select(Tenant)
        .join(Grant, Grant.tenant_id == Tenant.id)
        .where(Grant.principal_id == principal_id)
        .order_by(Tenant.slug)
    )
    return (await db.execute(stmt)).scalars().unique().all()
