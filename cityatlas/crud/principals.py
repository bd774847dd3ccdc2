# cityatlas/crud/principals.py
from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.core.roles import PlatformRole
from cityatlas.models.principal import Principal


async def get_principal(db: AsyncSession, principal_id: uuid.UUID, *, for_update: bool = False) -> Optional[Principal]:
    stmt = select(Principal).where(Principal.id == principal_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_principal_by_email(db: AsyncSession, email: str) -> Optional[Principal]:
    stmt = select(Principal).where(Principal.email == Principal.normalize_email(email))
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_principal(
    db: AsyncSession,
    email: str,
    *,
    full_name: Optional[str] = None,
    platform_role: Optional[PlatformRole] = PlatformRole.OPERATOR,
) -> Principal:
    """Signup: new principals start as operators with no grants."""
    principal = Principal(
        email=Principal.normalize_email(email),
        full_name=Principal.normalize_full_name(full_name),
        platform_role=platform_role.value if platform_role else None,
        is_active=True,
    )
    db.add(principal)
    await db.flush()
    return principal


async def count_active_superusers(db: AsyncSession, *, exclude_principal_id: Optional[uuid.UUID] = None) -> int:
    stmt = (
        select(func.count(Principal.id))
        .where(Principal.platform_role == PlatformRole.SUPERUSER.value)
        .where(Principal.is_active.is_(True))
    )
    if exclude_principal_id is not None:
        stmt = stmt.where(Principal.id != exclude_principal_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)
