# cityatlas/schemas/grant.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class GrantPut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["operator", "admin"]


class GrantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: uuid.UUID
    principal_id: uuid.UUID
    role: str
    granted_by: Optional[uuid.UUID] = None
    granted_at: datetime


class GrantOutcomeOut(BaseModel):
    status: str
    tenant_id: uuid.UUID
    principal_id: uuid.UUID
    role: Optional[str] = None


class PlatformRoleChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    platform_role: Literal["operator", "admin", "superuser"]
    # "up" rejects a demotion, "down" rejects a promotion
    direction: Optional[Literal["up", "down"]] = None


class PlatformRoleOutcomeOut(BaseModel):
    status: str
    principal_id: uuid.UUID
    platform_role: str
    grants_removed: int
    grants_downgraded: int
