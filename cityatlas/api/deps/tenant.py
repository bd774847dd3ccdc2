import uuid
from typing import Optional

from fastapi import Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.api.v1.auth import get_current_principal, get_optional_principal
from cityatlas.crud.tenants import get_tenant_by_slug
from cityatlas.db.session import get_db
from cityatlas.models.principal import Principal

# Never assigned to a tenant. Unknown slugs resolve to it so the resolver, not
# the lookup, decides what the caller sees (403 for outsiders, 404 otherwise).
UNKNOWN_TENANT_ID = uuid.UUID(int=0)


async def get_tenant_id(
    tenant_slug: str = Path(..., min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> uuid.UUID:
    tenant = await get_tenant_by_slug(db, tenant_slug)
    return tenant.id if tenant is not None else UNKNOWN_TENANT_ID


async def get_actor_id(principal: Principal = Depends(get_current_principal)) -> uuid.UUID:
    return principal.id


async def get_optional_actor_id(principal: Optional[Principal] = Depends(get_optional_principal)) -> Optional[uuid.UUID]:
    return principal.id if principal is not None else None
