# cityatlas/api/v1/invitations.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.api.deps.tenant import get_actor_id
from cityatlas.core import invitations as invitation_service
from cityatlas.db.session import get_db
from cityatlas.schemas.grant import GrantOutcomeOut
from cityatlas.schemas.invitation import (
    InvitationAccept,
    InvitationAccepted,
    InvitationCreate,
    InvitationCreated,
    InvitationOut,
)

router = APIRouter(prefix="/invitations", tags=["invitations"])


def _invitation_out(details: invitation_service.InvitationDetails) -> dict:
    inv = details.invitation
    return {
        "id": inv.id,
        "email": inv.email,
        "full_name": inv.full_name,
        "role": inv.role,
        "status": details.status,
        "tenant_ids": list(details.tenant_ids),
        "invited_by": inv.invited_by,
        "expires_at": inv.expires_at,
        "accepted_at": inv.accepted_at,
        "revoked_at": inv.revoked_at,
    }


@router.post("", response_model=InvitationCreated, status_code=201)
async def create_invitation(
    payload: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    """
    Invite someone to one or more cities.
    Admins may invite operators to cities they administer; admin invitations need a superuser.
    """
    details = await invitation_service.create_invitation(
        db,
        actor_id,
        email=str(payload.email),
        role=payload.role,
        tenant_ids=payload.tenant_ids,
        full_name=payload.full_name,
    )
    return InvitationCreated(**_invitation_out(details), token=details.invitation.token)


@router.get("", response_model=List[InvitationOut])
async def list_invitations(
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return [InvitationOut(**_invitation_out(d)) for d in await invitation_service.list_invitations(db, actor_id)]


@router.post("/{invitation_id}/revoke", response_model=InvitationOut)
async def revoke_invitation(
    invitation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    details = await invitation_service.revoke_invitation(db, actor_id, invitation_id)
    return InvitationOut(**_invitation_out(details))


@router.post("/accept", response_model=InvitationAccepted)
async def accept_invitation(payload: InvitationAccept, db: AsyncSession = Depends(get_db)):
    """Public: the token is the credential. Sign in afterwards with the invited email."""
    accepted = await invitation_service.accept_invitation(db, payload.token)
    return InvitationAccepted(
        invitation_id=accepted.invitation_id,
        principal_id=accepted.principal_id,
        grants=[
            GrantOutcomeOut(
                status=g.status,
                tenant_id=g.tenant_id,
                principal_id=g.principal_id,
                role=g.role.value if g.role else None,
            )
            for g in accepted.grants
        ],
    )
