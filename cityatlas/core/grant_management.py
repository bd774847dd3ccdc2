# cityatlas/core/grant_management.py
"""
Grant and platform-role mutations.

Every operation is one unit of work (run_in_transaction): the actor's
authority is re-read from the store inside the transaction, checked with the
resolver, and only then is anything written. Any error rolls the whole unit
back, so a half-applied promote/demote cannot be observed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import Action, PrincipalContext, ensure_allowed
from cityatlas.core.access import authorize_tenant_action
from cityatlas.core.errors import (
    InvariantViolation,
    NotFound,
    PrivilegeEscalationAttempt,
    ValidationError,
)
from cityatlas.core.logging_config import get_security_logger
from cityatlas.core.roles import (
    PlatformRole,
    TenantRole,
    parse_platform_role,
    parse_tenant_role,
    role_level,
)
from cityatlas.crud.grants import (
    count_admin_grants,
    delete_grants_for_principal,
    get_grant,
    list_grants_for_principal,
    list_grants_for_tenant,
    lock_admin_grants,
    load_principal_context,
)
from cityatlas.crud.principals import count_active_superusers, get_principal
from cityatlas.db.session import run_in_transaction
from cityatlas.models.grant import Grant
from cityatlas.models.principal import Principal

logger = logging.getLogger(__name__)
security_logger = get_security_logger()

# Outcome statuses
CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
IMPLICIT = "implicit"  # target is a superuser: access is implicit, no row stored
REVOKED = "revoked"


@dataclass(frozen=True)
class GrantOutcome:
    status: str
    tenant_id: uuid.UUID
    principal_id: uuid.UUID
    role: Optional[TenantRole]


@dataclass(frozen=True)
class RoleChangeOutcome:
    status: str
    principal_id: uuid.UUID
    platform_role: PlatformRole
    grants_removed: int = 0
    grants_downgraded: int = 0


# ---------------------------------------------------------
# Guards
# ---------------------------------------------------------
def escalation_attempt(
    actor: PrincipalContext,
    tenant_id: Optional[uuid.UUID],
    target_id: Optional[uuid.UUID],
    attempted: str,
) -> PrivilegeEscalationAttempt:
    security_logger.warning(
        "privilege escalation attempt: actor=%s role=%s tenant=%s target=%s attempted=%s",
        actor.principal_id,
        actor.platform_role.value if actor.platform_role else None,
        tenant_id,
        target_id,
        attempted,
    )
    return PrivilegeEscalationAttempt()


async def _authorize_tenant_user_management(db: AsyncSession, actor_id: uuid.UUID, tenant_id: uuid.UUID) -> PrincipalContext:
    actor, _ = await authorize_tenant_action(db, actor_id, tenant_id, Action.MANAGE_TENANT_USERS)
    return actor


async def _guard_last_admin(db: AsyncSession, tenant_id: uuid.UUID, losing_principal_id: uuid.UUID) -> None:
    """
    A tenant must keep an administration path: another admin grant, or at
    least one active superuser who can administer every tenant.
    """
    await lock_admin_grants(db, tenant_id)
    if await count_admin_grants(db, tenant_id, exclude_principal_id=losing_principal_id) > 0:
        return
    if await count_active_superusers(db) > 0:
        return
    raise InvariantViolation(
        "The tenant must keep at least one administrator.",
        tenant_id=str(tenant_id),
    )


def _coerce_tenant_role(role: Union[TenantRole, str]) -> TenantRole:
    parsed = parse_tenant_role(role)
    if parsed is None:
        raise ValidationError("role must be operator or admin", field="role")
    return parsed


# ---------------------------------------------------------
# grant / revoke
# ---------------------------------------------------------
async def apply_grant(
    session: AsyncSession,
    actor: PrincipalContext,
    target_principal_id: uuid.UUID,
    tenant_id: uuid.UUID,
    wanted: TenantRole,
) -> GrantOutcome:
    """
    Write one grant inside the caller's transaction.

    `actor` must already hold manage-tenant-users on tenant_id. Shared by
    grant() and invitation acceptance so both go through the same guards.
    """
    if not actor.is_superuser and wanted is TenantRole.ADMIN:
        raise escalation_attempt(actor, tenant_id, target_principal_id, f"grant {wanted.value}")

    target = await get_principal(session, target_principal_id, for_update=True)
    if target is None or not target.is_active:
        raise NotFound("Principal not found")

    target_platform_role = parse_platform_role(target.platform_role)
    if target_platform_role is PlatformRole.SUPERUSER:
        return GrantOutcome(IMPLICIT, tenant_id, target.id, None)

    if role_level(wanted) > role_level(target_platform_role):
        raise InvariantViolation(
            "A tenant role cannot exceed the principal's platform role.",
            platform_role=target_platform_role.value if target_platform_role else None,
            requested_role=wanted.value,
        )

    existing = await get_grant(session, tenant_id, target.id, for_update=True)
    if existing is None:
        session.add(
            Grant(
                tenant_id=tenant_id,
                principal_id=target.id,
                role=wanted.value,
                granted_by=actor.principal_id,
            )
        )
        await session.flush()
        logger.info("grant created tenant=%s principal=%s role=%s by=%s", tenant_id, target.id, wanted.value, actor.principal_id)
        return GrantOutcome(CREATED, tenant_id, target.id, wanted)

    if existing.role == wanted.value:
        return GrantOutcome(UNCHANGED, tenant_id, target.id, wanted)

    if existing.role == TenantRole.ADMIN.value:
        if not actor.is_superuser:
            raise escalation_attempt(actor, tenant_id, target.id, f"change admin grant to {wanted.value}")
        await _guard_last_admin(session, tenant_id, target.id)

    existing.role = wanted.value
    existing.granted_by = actor.principal_id
    await session.flush()
    logger.info("grant updated tenant=%s principal=%s role=%s by=%s", tenant_id, target.id, wanted.value, actor.principal_id)
    return GrantOutcome(UPDATED, tenant_id, target.id, wanted)


async def grant(
    db: AsyncSession,
    actor_id: uuid.UUID,
    target_principal_id: uuid.UUID,
    tenant_id: uuid.UUID,
    role: Union[TenantRole, str],
) -> GrantOutcome:
    """
    Give target_principal_id `role` on tenant_id.

    Same role again -> UNCHANGED (idempotent). A different role updates the
    single (tenant, principal) row in place; there is never a moment with two
    roles. Admins may only hand out `operator`.
    """
    wanted = _coerce_tenant_role(role)

    async def _work(session: AsyncSession) -> GrantOutcome:
        actor = await _authorize_tenant_user_management(session, actor_id, tenant_id)
        return await apply_grant(session, actor, target_principal_id, tenant_id, wanted)

    # retry_on_conflict: a concurrent insert of the same pair makes this
    # attempt fail on the primary key; the retry re-reads and updates instead.
    return await run_in_transaction(db, _work, operation="grant", retry_on_conflict=True)


async def revoke(
    db: AsyncSession,
    actor_id: uuid.UUID,
    target_principal_id: uuid.UUID,
    tenant_id: uuid.UUID,
) -> GrantOutcome:
    """
    Delete the (tenant, principal) grant.

    An admin may only grant or revoke the `operator` role, with one
    exception: an admin may give up their own admin grant. Removing another
    admin needs a superuser. The last admin of a tenant with no superuser
    override path cannot be revoked, whoever asks.
    """

    async def _work(session: AsyncSession) -> GrantOutcome:
        actor = await _authorize_tenant_user_management(session, actor_id, tenant_id)

        existing = await get_grant(session, tenant_id, target_principal_id, for_update=True)
        if existing is None:
            raise NotFound("Grant not found")

        if existing.role == TenantRole.ADMIN.value:
            # self-revocation is the only admin grant an admin may remove
            if not actor.is_superuser and actor.principal_id != target_principal_id:
                raise escalation_attempt(actor, tenant_id, target_principal_id, "revoke admin")
            await _guard_last_admin(session, tenant_id, target_principal_id)

        previous = parse_tenant_role(existing.role)
        await session.delete(existing)
        await session.flush()
        logger.info("grant revoked tenant=%s principal=%s role=%s by=%s", tenant_id, target_principal_id, existing.role, actor_id)
        return GrantOutcome(REVOKED, tenant_id, target_principal_id, previous)

    return await run_in_transaction(db, _work, operation="revoke")


async def list_grants(db: AsyncSession, actor_id: uuid.UUID, tenant_id: uuid.UUID) -> Sequence[Grant]:
    await _authorize_tenant_user_management(db, actor_id, tenant_id)
    return await list_grants_for_tenant(db, tenant_id)


# ---------------------------------------------------------
# Platform roles (promote / demote)
# ---------------------------------------------------------
async def set_platform_role(
    db: AsyncSession,
    actor_id: uuid.UUID,
    target_principal_id: uuid.UUID,
    new_role: Union[PlatformRole, str],
    *,
    direction: Optional[str] = None,
) -> RoleChangeOutcome:
    """
    Promote or demote a principal. direction ("up" | "down") rejects a change
    the other way. Role and grant rows change together:

      - to superuser: stored grants become implicit and are deleted
      - below admin: admin grants are downgraded to operator, so no grant
        ever exceeds the platform role
    """
    wanted = parse_platform_role(new_role)
    if wanted is None:
        raise ValidationError("platform role must be operator, admin or superuser", field="platform_role")

    async def _work(session: AsyncSession) -> RoleChangeOutcome:
        actor = await load_principal_context(session, actor_id)
        ensure_allowed(actor, None, Action.MANAGE_PLATFORM)

        target: Optional[Principal] = await get_principal(session, target_principal_id, for_update=True)
        if target is None:
            raise NotFound("Principal not found")

        current = parse_platform_role(target.platform_role)
        if current is wanted:
            return RoleChangeOutcome(UNCHANGED, target.id, wanted)

        if direction == "up" and role_level(wanted) < role_level(current):
            raise ValidationError("promote cannot lower a role; use demote", field="platform_role")
        if direction == "down" and role_level(wanted) > role_level(current):
            raise ValidationError("demote cannot raise a role; use promote", field="platform_role")

        if current is PlatformRole.SUPERUSER:
            if await count_active_superusers(session, exclude_principal_id=target.id) == 0:
                raise InvariantViolation("The platform must keep at least one superuser.")

        removed = downgraded = 0
        if wanted is PlatformRole.SUPERUSER:
            removed = await delete_grants_for_principal(session, target.id)
        elif role_level(wanted) < role_level(PlatformRole.ADMIN):
            for g in await list_grants_for_principal(session, target.id):
                if g.role != TenantRole.ADMIN.value:
                    continue
                await _guard_last_admin(session, g.tenant_id, target.id)
                g.role = TenantRole.OPERATOR.value
                downgraded += 1

        target.platform_role = wanted.value
        await session.flush()
        logger.info(
            "platform role changed principal=%s %s -> %s by=%s (grants removed=%s downgraded=%s)",
            target.id,
            current.value if current else None,
            wanted.value,
            actor_id,
            removed,
            downgraded,
        )
        return RoleChangeOutcome(UPDATED, target.id, wanted, removed, downgraded)

    return await run_in_transaction(db, _work, operation="set_platform_role")


async def promote(db: AsyncSession, actor_id: uuid.UUID, target_principal_id: uuid.UUID, new_role: Union[PlatformRole, str]) -> RoleChangeOutcome:
    return await set_platform_role(db, actor_id, target_principal_id, new_role, direction="up")


async def demote(db: AsyncSession, actor_id: uuid.UUID, target_principal_id: uuid.UUID, new_role: Union[PlatformRole, str]) -> RoleChangeOutcome:
    return await set_platform_role(db, actor_id, target_principal_id, new_role, direction="down")
