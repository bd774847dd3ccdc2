# cityatlas/api/v1/grants.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.api.deps.tenant import get_actor_id, get_tenant_id
from cityatlas.core import grant_management
from cityatlas.db.session import get_db
from cityatlas.schemas.grant import (
    GrantOut,
    GrantOutcomeOut,
    GrantPut,
    PlatformRoleChange,
    PlatformRoleOutcomeOut,
)

router = APIRouter(tags=["grants"])


def _grant_outcome(outcome: grant_management.GrantOutcome) -> GrantOutcomeOut:
    return GrantOutcomeOut(
        status=outcome.status,
        tenant_id=outcome.tenant_id,
        principal_id=outcome.principal_id,
        role=outcome.role.value if outcome.role else None,
    )


@router.get("/tenants/{tenant_slug}/grants", response_model=List[GrantOut])
async def list_grants(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await grant_management.list_grants(db, actor_id, tenant_id)


@router.put("/tenants/{tenant_slug}/grants/{principal_id}", response_model=GrantOutcomeOut)
async def put_grant(
    principal_id: uuid.UUID,
    payload: GrantPut,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    outcome = await grant_management.grant(db, actor_id, principal_id, tenant_id, payload.role)
    return _grant_outcome(outcome)


@router.delete("/tenants/{tenant_slug}/grants/{principal_id}", response_model=GrantOutcomeOut)
async def delete_grant(
    principal_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    outcome = await grant_management.revoke(db, actor_id, principal_id, tenant_id)
    return _grant_outcome(outcome)


@router.put("/principals/{principal_id}/role", response_model=PlatformRoleOutcomeOut)
async def put_platform_role(
    principal_id: uuid.UUID,
    payload: PlatformRoleChange,
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    """Promote or demote. Superusers only."""
    outcome = await grant_management.set_platform_role(
        db, actor_id, principal_id, payload.platform_role, direction=payload.direction
    )
    return PlatformRoleOutcomeOut(
        status=outcome.status,
        principal_id=outcome.principal_id,
        platform_role=outcome.platform_role.value,
        grants_removed=outcome.grants_removed,
        grants_downgraded=outcome.grants_downgraded,
    )
