# cityatlas/core/roles.py

from __future__ import annotations

import enum
from typing import Optional, Union


class PlatformRole(str, enum.Enum):
    OPERATOR = "operator"    # CRUD on data of granted cities
    ADMIN = "admin"          # + city settings and city users
    SUPERUSER = "superuser"  # every city, creates cities, manages platform roles


class TenantRole(str, enum.Enum):
    # superuser access to a city is implicit and never stored as a grant
    OPERATOR = "operator"
    ADMIN = "admin"


ROLE_LEVEL: dict[str, int] = {
    "operator": 1,
    "admin": 2,
    "superuser": 3,
}

RoleLike = Union[PlatformRole, TenantRole, str, None]


def _role_value(role: RoleLike) -> Optional[str]:
    if role is None:
        return None
    v = getattr(role, "value", role)
    if not isinstance(v, str):
        return None
    return v.strip().lower() or None


def role_level(role: RoleLike) -> int:
    """0 for missing/unknown roles, so they never satisfy a requirement."""
    v = _role_value(role)
    if v is None:
        return 0
    return ROLE_LEVEL.get(v, 0)


def has_role(actual: RoleLike, required: RoleLike) -> bool:
    needed = role_level(required)
    if needed == 0:
        raise ValueError(f"Unknown required role: {required!r}")
    return role_level(actual) >= needed


def parse_platform_role(value: RoleLike) -> Optional[PlatformRole]:
    v = _role_value(value)
    if v is None:
        return None
    try:
        return PlatformRole(v)
    except ValueError:
        return None


def parse_tenant_role(value: RoleLike) -> Optional[TenantRole]:
    v = _role_value(value)
    if v is None:
        return None
    try:
        return TenantRole(v)
    except ValueError:
        return None


def lower_role(a: RoleLike, b: RoleLike) -> Optional[str]:
    """The lesser of two roles by level; None if either is missing."""
    la, lb = role_level(a), role_level(b)
    if la == 0 or lb == 0:
        return None
    return _role_value(a) if la <= lb else _role_value(b)
