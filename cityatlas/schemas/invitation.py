# cityatlas/schemas/invitation.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from cityatlas.schemas.grant import GrantOutcomeOut


class InvitationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=255)
    role: Literal["operator", "admin"] = "operator"
    tenant_ids: List[uuid.UUID] = Field(..., min_length=1)


class InvitationOut(BaseModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    role: str
    status: str
    tenant_ids: List[uuid.UUID]
    invited_by: uuid.UUID
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None


class InvitationCreated(InvitationOut):
    # only returned once, to the inviter, who delivers it to the invitee
    token: str


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1, description="Invitation token")


class InvitationAccepted(BaseModel):
    invitation_id: uuid.UUID
    principal_id: uuid.UUID
    grants: List[GrantOutcomeOut]
