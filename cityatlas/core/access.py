# cityatlas/core/access.py
from __future__ import annotations

import uuid
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import Action, PrincipalContext, ensure_allowed
from cityatlas.core.errors import NotFound
from cityatlas.crud.grants import load_principal_context
from cityatlas.crud.tenants import get_tenant
from cityatlas.models.tenant import Tenant


async def authorize_tenant_action(
    db: AsyncSession,
    actor_id: Optional[uuid.UUID],
    tenant_id: uuid.UUID,
    action: Action,
) -> Tuple[PrincipalContext, Tenant]:
    """
    Resolve `action` for the actor on the tenant, reading both fresh.

    The resolver runs before the existence check, so a caller without access
    gets the same denial whether or not the tenant exists.
    """
    actor = await load_principal_context(db, actor_id)
    tenant = await get_tenant(db, tenant_id)
    ensure_allowed(
        actor,
        tenant_id,
        action,
        tenant_active=tenant.is_active if tenant is not None else True,
    )
    if tenant is None:
        raise NotFound("Tenant not found")
    return actor, tenant
