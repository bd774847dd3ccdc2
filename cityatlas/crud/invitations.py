# cityatlas/crud/invitations.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.models.invitation import Invitation, InvitationTenant


async def get_invitation(db: AsyncSession, invitation_id: uuid.UUID, *, for_update: bool = False) -> Optional[Invitation]:
    stmt = select(Invitation).where(Invitation.id == invitation_id)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_invitation_by_token(db: AsyncSession, token: str) -> Optional[Invitation]:
    # row lock: two concurrent accepts of the same token serialize here
    stmt = select(Invitation).where(Invitation.token == token).with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_pending_invitation_for_email(db: AsyncSession, email: str, now: datetime) -> Optional[Invitation]:
    """Pending = not accepted, not revoked, not expired."""
    stmt = (
        select(Invitation)
        .where(Invitation.email == email)
        .where(Invitation.accepted_at.is_(None))
        .where(Invitation.revoked_at.is_(None))
        .where(Invitation.expires_at > now)
    )
    return (await db.execute(stmt)).scalars().first()


async def list_invitations(db: AsyncSession, *, invited_by: Optional[uuid.UUID] = None) -> Sequence[Invitation]:
    stmt = select(Invitation).order_by(Invitation.created_at.desc(), Invitation.email)
    if invited_by is not None:
        stmt = stmt.where(Invitation.invited_by == invited_by)
    return (await db.execute(stmt)).scalars().all()


async def add_invitation_tenants(db: AsyncSession, invitation_id: uuid.UUID, tenant_ids: Iterable[uuid.UUID]) -> None:
    for tenant_id in tenant_ids:
        db.add(InvitationTenant(invitation_id=invitation_id, tenant_id=tenant_id))
    await db.flush()


async def list_invitation_tenant_ids(db: AsyncSession, invitation_id: uuid.UUID) -> Sequence[uuid.UUID]:
    stmt = (
        select(InvitationTenant.tenant_id)
        .where(InvitationTenant.invitation_id == invitation_id)
        .order_by(InvitationTenant.tenant_id)
    )
    return (await db.execute(stmt)).scalars().all()
