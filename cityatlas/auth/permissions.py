"""
Permission resolver.

Pure decision function: every input (principal role, grants, target tenant,
action) is passed in explicitly, nothing is read from ambient request state,
and nothing touches the database. Callers load a PrincipalContext fresh for
each request (see cityatlas.crud.grants.load_principal_context).

Rules, in order:
  - read-public is always allowed
  - a superuser is allowed everything, on every tenant
  - no platform role -> deny
  - manage-platform, or a tenant-scoped action without a tenant -> deny
  - inactive tenant -> deny
  - only the grant for the requested tenant counts; none -> deny
  - effective tenant role (grant capped by platform role) must reach the
    minimum role for the action
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple, Union

from cityatlas.core.errors import AuthorizationDenied, DuplicateGrant, InvariantViolation, UnknownAction
from cityatlas.core.roles import (
    PlatformRole,
    TenantRole,
    lower_role,
    parse_platform_role,
    parse_tenant_role,
    role_level,
)

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    READ_PUBLIC = "read-public"
    WRITE_TENANT_DATA = "write-tenant-data"
    MANAGE_TENANT_SETTINGS = "manage-tenant-settings"
    MANAGE_TENANT_USERS = "manage-tenant-users"
    MANAGE_PLATFORM = "manage-platform"


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


# Minimum tenant role per tenant-scoped action.
MINIMUM_TENANT_ROLE: Mapping[Action, TenantRole] = MappingProxyType(
    {
        Action.WRITE_TENANT_DATA: TenantRole.OPERATOR,
        Action.MANAGE_TENANT_SETTINGS: TenantRole.ADMIN,
        Action.MANAGE_TENANT_USERS: TenantRole.ADMIN,
    }
)


def parse_action(action: Union[Action, str]) -> Action:
    if isinstance(action, Action):
        return action
    try:
        return Action(str(action).strip().lower())
    except ValueError:
        raise UnknownAction(f"Unknown action: {action!r}. Allowed: {[a.value for a in Action]}") from None


@dataclass(frozen=True)
class PrincipalContext:
    """Everything the resolver needs to know about the caller."""

    principal_id: Optional[uuid.UUID]
    platform_role: Optional[PlatformRole]
    grants: Mapping[uuid.UUID, TenantRole] = field(default_factory=dict)

    @classmethod
    def from_grants(
        cls,
        principal_id: Optional[uuid.UUID],
        platform_role: Union[PlatformRole, str, None],
        grants: Iterable[Tuple[uuid.UUID, Union[TenantRole, str]]] = (),
    ) -> "PrincipalContext":
        """
        Build from (tenant_id, role) pairs.

        Identical duplicates collapse; a second pair for the same tenant with a
        different role is an inconsistent duplicate and fails loudly instead of
        silently overwriting the first.
        """
        collected: dict[uuid.UUID, TenantRole] = {}
        for tenant_id, raw_role in grants:
            role = parse_tenant_role(raw_role)
            if role is None:
                raise InvariantViolation(f"Grant for tenant {tenant_id} has an invalid role: {raw_role!r}")
            existing = collected.get(tenant_id)
            if existing is not None and existing != role:
                raise DuplicateGrant(
                    f"Conflicting grants for tenant {tenant_id}: {existing.value!r} and {role.value!r}",
                    tenant_id=str(tenant_id),
                )
            collected[tenant_id] = role

        return cls(
            principal_id=principal_id,
            platform_role=parse_platform_role(platform_role),
            grants=MappingProxyType(collected),
        )

    @classmethod
    def anonymous(cls) -> "PrincipalContext":
        return cls(principal_id=None, platform_role=None, grants=MappingProxyType({}))

    @property
    def is_superuser(self) -> bool:
        return self.platform_role == PlatformRole.SUPERUSER

    def tenant_role(self, tenant_id: Optional[uuid.UUID]) -> Optional[TenantRole]:
        """Effective role on one tenant: the grant, capped by the platform role."""
        if tenant_id is None:
            return None
        granted = self.grants.get(tenant_id)
        if granted is None:
            return None
        return parse_tenant_role(lower_role(granted, self.platform_role))


def resolve(
    principal: PrincipalContext,
    tenant_id: Optional[uuid.UUID],
    action: Union[Action, str],
    *,
    tenant_active: bool = True,
) -> Decision:
    act = parse_action(action)
    decision, reason = _decide(principal, tenant_id, act, tenant_active)
    logger.debug(
        "resolve principal=%s tenant=%s action=%s -> %s (%s)",
        principal.principal_id,
        tenant_id,
        act.value,
        decision.value,
        reason,
    )
    return decision


def _decide(
    principal: PrincipalContext,
    tenant_id: Optional[uuid.UUID],
    action: Action,
    tenant_active: bool,
) -> Tuple[Decision, str]:
    if action is Action.READ_PUBLIC:
        return Decision.ALLOW, "public read"

    if principal.is_superuser:
        return Decision.ALLOW, "superuser"

    if principal.platform_role is None:
        return Decision.DENY, "no platform role"

    if action is Action.MANAGE_PLATFORM:
        return Decision.DENY, "superuser required"

    if tenant_id is None:
        return Decision.DENY, "tenant required"

    if not tenant_active:
        return Decision.DENY, "tenant inactive"

    effective = principal.tenant_role(tenant_id)
    if effective is None:
        return Decision.DENY, "no grant"

    required = MINIMUM_TENANT_ROLE[action]
    if role_level(effective) >= role_level(required):
        return Decision.ALLOW, f"{effective.value} >= {required.value}"
    return Decision.DENY, f"{effective.value} < {required.value}"


def is_allowed(
    principal: PrincipalContext,
    tenant_id: Optional[uuid.UUID],
    action: Union[Action, str],
    *,
    tenant_active: bool = True,
) -> bool:
    return resolve(principal, tenant_id, action, tenant_active=tenant_active) is Decision.ALLOW


def ensure_allowed(
    principal: PrincipalContext,
    tenant_id: Optional[uuid.UUID],
    action: Union[Action, str],
    *,
    tenant_active: bool = True,
) -> None:
    """Raise AuthorizationDenied unless resolve() allows. Deny is a hard stop."""
    if not is_allowed(principal, tenant_id, action, tenant_active=tenant_active):
        logger.info(
            "denied principal=%s tenant=%s action=%s",
            principal.principal_id,
            tenant_id,
            parse_action(action).value,
        )
        raise AuthorizationDenied()
