# cityatlas/crud/grants.py
from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import PrincipalContext
from cityatlas.models.grant import Grant
from cityatlas.models.principal import Principal


async def get_grant(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    principal_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[Grant]:
    stmt = select(Grant).where(Grant.tenant_id == tenant_id, Grant.principal_id == principal_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_grants_for_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> Sequence[Grant]:
    stmt = select(Grant).where(Grant.tenant_id == tenant_id).order_by(Grant.granted_at, Grant.principal_id)
    return (await db.execute(stmt)).scalars().all()


async def list_grants_for_principal(db: AsyncSession, principal_id: uuid.UUID) -> Sequence[Grant]:
    stmt = select(Grant).where(Grant.principal_id == principal_id)
    return (await db.execute(stmt)).scalars().all()


async def count_admin_grants(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    exclude_principal_id: Optional[uuid.UUID] = None,
) -> int:
    """
    Counts admin grants held by ACTIVE principals for a tenant.
    exclude_principal_id answers "how many admins remain if this one goes".
    """
    stmt = (
        select(func.count())
        .select_from(Grant)
        .join(Principal, Principal.id == Grant.principal_id)
        .where(Grant.tenant_id == tenant_id)
        .where(Grant.role == "admin")
        .where(Principal.is_active.is_(True))
    )
    if exclude_principal_id is not None:
        stmt = stmt.where(Grant.principal_id != exclude_principal_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def lock_admin_grants(db: AsyncSession, tenant_id: uuid.UUID) -> None:
    # FOR UPDATE cannot sit on the aggregate in count_admin_grants
    stmt = select(Grant.principal_id).where(Grant.tenant_id == tenant_id).where(Grant.role == "admin").with_for_update()
    await db.execute(stmt)


async def delete_grants_for_principal(db: AsyncSession, principal_id: uuid.UUID) -> int:
    res = await db.execute(delete(Grant).where(Grant.principal_id == principal_id))
    return int(res.rowcount or 0)


async def load_principal_context(db: AsyncSession, principal_id: Optional[uuid.UUID]) -> PrincipalContext:
    """
    Read the principal's role and grants straight from the store.
    No caching across requests: a revoked grant stops working immediately.
    Unknown or inactive principals get an empty context (public reads only).
    """
    if principal_id is None:
        return PrincipalContext.anonymous()
    principal = await db.get(Principal, principal_id, populate_existing=True)
    if principal is None or not principal.is_active:
        return PrincipalContext.anonymous()

    rows = await list_grants_for_principal(db, principal_id)
    return PrincipalContext.from_grants(
        principal_id=principal.id,
        platform_role=principal.platform_role,
        grants=[(g.tenant_id, g.role) for g in rows],
    )
