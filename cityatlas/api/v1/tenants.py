# cityatlas/api/v1/tenants.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.api.deps.tenant import get_actor_id, get_optional_actor_id, get_tenant_id
from cityatlas.auth.permissions import Action, is_allowed
from cityatlas.core import tenants as tenant_service
from cityatlas.core.access import authorize_tenant_action
from cityatlas.crud.grants import load_principal_context
from cityatlas.crud.tenants import list_tenants
from cityatlas.db.session import get_db
from cityatlas.schemas.tenant import TenantActiveUpdate, TenantCreate, TenantOut

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=TenantOut, status_code=201)
async def create_tenant(
    payload: TenantCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await tenant_service.create_tenant(
        db,
        actor_id,
        slug=payload.slug,
        name=payload.name,
        default_locale=payload.default_locale,
    )


@router.get("", response_model=List[TenantOut])
async def get_tenants(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_optional_actor_id),
):
    """Active cities are public; inactive ones are listed for superusers only."""
    if include_inactive:
        actor = await load_principal_context(db, actor_id)
        include_inactive = is_allowed(actor, None, Action.MANAGE_PLATFORM)
    return await list_tenants(db, include_inactive=include_inactive)


@router.get("/{tenant_slug}", response_model=TenantOut)
async def get_tenant(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_optional_actor_id),
):
    _, tenant = await authorize_tenant_action(db, actor_id, tenant_id, Action.READ_PUBLIC)
    return tenant


@router.patch("/{tenant_slug}/active", response_model=TenantOut)
async def set_tenant_active(
    payload: TenantActiveUpdate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await tenant_service.set_tenant_active(db, actor_id, tenant_id, payload.is_active)
