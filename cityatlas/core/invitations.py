# cityatlas/core/invitations.py
"""
City invitations: the way new people get access.

An invitation names an email, one tenant role and one or more cities. No
grant exists until the invitee accepts; acceptance then writes the grants
through grant_management.apply_grant with the inviter's authority re-read at
that moment, so an inviter who has since lost admin rights cannot hand
anything out.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import Action
from cityatlas.core.access import authorize_tenant_action
from cityatlas.core.config import settings
from cityatlas.core.errors import AuthorizationDenied, InvariantViolation, NotFound, ValidationError
from cityatlas.core.grant_management import GrantOutcome, apply_grant, escalation_attempt
from cityatlas.core.roles import PlatformRole, TenantRole, parse_platform_role, parse_tenant_role, role_level
from cityatlas.crud import invitations as crud
from cityatlas.crud.grants import load_principal_context
from cityatlas.crud.principals import create_principal, get_principal_by_email
from cityatlas.db.session import run_in_transaction
from cityatlas.models.invitation import Invitation
from cityatlas.models.principal import Principal

logger = logging.getLogger(__name__)

# Outcome statuses
PENDING = "pending"
ACCEPTED = "accepted"
REVOKED = "revoked"
EXPIRED = "expired"


@dataclass(frozen=True)
class InvitationDetails:
    invitation: Invitation
    tenant_ids: Tuple[uuid.UUID, ...]

    @property
    def status(self) -> str:
        return invitation_status(self.invitation)


@dataclass(frozen=True)
class AcceptedInvitation:
    invitation_id: uuid.UUID
    principal_id: uuid.UUID
    grants: List[GrantOutcome] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def invitation_status(inv: Invitation, now: Optional[datetime] = None) -> str:
    if inv.accepted_at is not None:
        return ACCEPTED
    if inv.revoked_at is not None:
        return REVOKED
    if _as_aware(inv.expires_at) <= (now or _utcnow()):
        return EXPIRED
    return PENDING


def _coerce_role(role: Union[TenantRole, str]) -> TenantRole:
    parsed = parse_tenant_role(role)
    if parsed is None:
        raise ValidationError("role must be operator or admin", field="role")
    return parsed


# ---------------------------------------------------------
# create / revoke / list
# ---------------------------------------------------------
async def create_invitation(
    db: AsyncSession,
    actor_id: uuid.UUID,
    *,
    email: str,
    role: Union[TenantRole, str],
    tenant_ids: Iterable[uuid.UUID],
    full_name: Optional[str] = None,
) -> InvitationDetails:
    """
    Invite `email` to every tenant in tenant_ids with `role`.

    The actor needs manage-tenant-users on each listed tenant, and only a
    superuser may invite admins. One pending invitation per email; an email
    that already has a principal is refused (grant to it directly instead).
    """
    wanted = _coerce_role(role)
    targets = tuple(dict.fromkeys(tenant_ids))
    if not targets:
        raise ValidationError("at least one tenant is required", field="tenant_ids")
    clean_email = Principal.normalize_email(email or "")
    if "@" not in clean_email:
        raise ValidationError("Invalid email", field="email")

    async def _work(session: AsyncSession) -> InvitationDetails:
        actor = None
        for tenant_id in targets:
            actor, _ = await authorize_tenant_action(session, actor_id, tenant_id, Action.MANAGE_TENANT_USERS)
            if wanted is TenantRole.ADMIN and not actor.is_superuser:
                raise escalation_attempt(actor, tenant_id, None, f"invite {clean_email} as {wanted.value}")

        if await get_principal_by_email(session, clean_email) is not None:
            raise InvariantViolation("A principal with this email already exists; grant access directly.", email=clean_email)

        now = _utcnow()
        if await crud.get_pending_invitation_for_email(session, clean_email, now) is not None:
            raise InvariantViolation("A pending invitation already exists for this email.", email=clean_email)

        inv = Invitation(
            email=clean_email,
            full_name=Principal.normalize_full_name(full_name),
            role=wanted.value,
            token=secrets.token_urlsafe(48),
            expires_at=now + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
            invited_by=actor.principal_id,
        )
        session.add(inv)
        await session.flush()
        await crud.add_invitation_tenants(session, inv.id, targets)
        logger.info("invitation created id=%s role=%s tenants=%s by=%s", inv.id, wanted.value, len(targets), actor_id)
        return InvitationDetails(inv, tuple(sorted(targets, key=str)))

    details = await run_in_transaction(db, _work, operation="create_invitation")
    await db.refresh(details.invitation)
    return details


async def revoke_invitation(db: AsyncSession, actor_id: uuid.UUID, invitation_id: uuid.UUID) -> InvitationDetails:
    """
    Withdraw a pending invitation. Its creator or a superuser may do this;
    anyone else gets the same denial whether or not the invitation exists.
    Revoking twice is a no-op; an accepted invitation cannot be revoked.
    """

    async def _work(session: AsyncSession) -> Invitation:
        actor = await load_principal_context(session, actor_id)
        inv = await crud.get_invitation(session, invitation_id, for_update=True)
        if not actor.is_superuser and (inv is None or inv.invited_by != actor.principal_id):
            raise AuthorizationDenied()
        if inv is None:
            raise NotFound("Invitation not found")
        if inv.accepted_at is not None:
            raise InvariantViolation("Invitation has already been accepted.")
        if inv.revoked_at is None:
            inv.revoked_at = _utcnow()
            await session.flush()
            logger.info("invitation revoked id=%s by=%s", inv.id, actor_id)
        return inv

    inv = await run_in_transaction(db, _work, operation="revoke_invitation")
    await db.refresh(inv)
    return InvitationDetails(inv, tuple(await crud.list_invitation_tenant_ids(db, inv.id)))


async def list_invitations(db: AsyncSession, actor_id: uuid.UUID) -> Sequence[InvitationDetails]:
    """Superusers see every invitation; everyone else only their own."""
    actor = await load_principal_context(db, actor_id)
    if actor.principal_id is None:
        raise AuthorizationDenied()
    rows = await crud.list_invitations(db, invited_by=None if actor.is_superuser else actor.principal_id)
    return [InvitationDetails(inv, tuple(await crud.list_invitation_tenant_ids(db, inv.id))) for inv in rows]


# ---------------------------------------------------------
# accept
# ---------------------------------------------------------
async def accept_invitation(db: AsyncSession, token: str) -> AcceptedInvitation:
    """
    Redeem an invitation token (public: the token is the credential).

    Creates the invitee's principal if needed and writes one grant per
    tenant, all in one unit of work. If any grant fails (the inviter lost
    their rights, a tenant was deactivated, ...) nothing is written and the
    invitation stays pending.
    """
    clean = (token or "").strip()
    if not clean:
        raise ValidationError("token is required", field="token")

    async def _work(session: AsyncSession) -> AcceptedInvitation:
        inv = await crud.get_invitation_by_token(session, clean)
        if inv is None:
            raise NotFound("Invitation not found")

        status = invitation_status(inv)
        if status == EXPIRED:
            raise ValidationError("Invitation has expired.", field="token")
        if status == ACCEPTED:
            raise InvariantViolation("Invitation has already been accepted.")
        if status == REVOKED:
            raise InvariantViolation("Invitation has been revoked.")

        wanted = _coerce_role(inv.role)
        inviter = await load_principal_context(session, inv.invited_by)
        if wanted is TenantRole.ADMIN and not inviter.is_superuser:
            raise escalation_attempt(inviter, None, inv.id, f"invitation admin grant for {inv.email}")

        principal = await get_principal_by_email(session, inv.email)
        if principal is None:
            principal = await create_principal(
                session,
                inv.email,
                full_name=inv.full_name,
                platform_role=PlatformRole.ADMIN if wanted is TenantRole.ADMIN else PlatformRole.OPERATOR,
            )
        elif wanted is TenantRole.ADMIN:
            current = parse_platform_role(principal.platform_role)
            if role_level(current) < role_level(PlatformRole.ADMIN):
                principal.platform_role = PlatformRole.ADMIN.value
                await session.flush()

        outcomes: List[GrantOutcome] = []
        for tenant_id in await crud.list_invitation_tenant_ids(session, inv.id):
            actor, _ = await authorize_tenant_action(session, inv.invited_by, tenant_id, Action.MANAGE_TENANT_USERS)
            outcomes.append(await apply_grant(session, actor, principal.id, tenant_id, wanted))

        inv.accepted_at = _utcnow()
        inv.accepted_by = principal.id
        await session.flush()
        logger.info("invitation accepted id=%s principal=%s grants=%s", inv.id, principal.id, len(outcomes))
        return AcceptedInvitation(inv.id, principal.id, outcomes)

    # a concurrent signup with the same email fails on the unique index; the
    # retry then finds that principal instead of creating one
    return await run_in_transaction(db, _work, operation="accept_invitation", retry_on_conflict=True)
