# tests/test_grant_management.py
from __future__ import annotations

import logging

import pytest
from sqlalchemy import func, select

from cityatlas.auth.permissions import Action, Decision, resolve
from cityatlas.core import grant_management as gm
from cityatlas.core.errors import (
    AuthorizationDenied,
    InvariantViolation,
    NotFound,
    PrivilegeEscalationAttempt,
    ValidationError,
)
from cityatlas.core.logging_config import SECURITY_LOGGER_NAME
from cityatlas.core.roles import PlatformRole, TenantRole
from cityatlas.crud.grants import get_grant, load_principal_context
from cityatlas.crud.principals import get_principal
from cityatlas.models.grant import Grant
from tests.factories import add_grant, create_principal, create_tenant


async def _grant_rows(db, tenant_id, principal_id):
    stmt = select(func.count()).select_from(Grant).where(Grant.tenant_id == tenant_id, Grant.principal_id == principal_id)
    return (await db.execute(stmt)).scalar()


@pytest.mark.asyncio
async def test_scenario_b_grant_turns_deny_into_allow(db):
    paris = await create_tenant(db, slug="paris")
    admin = await create_principal(db, platform_role="admin")
    x = await create_principal(db)
    await add_grant(db, paris, admin, "admin")
    await db.commit()

    before = await load_principal_context(db, x)
    assert resolve(before, paris, Action.WRITE_TENANT_DATA) is Decision.DENY

    outcome = await gm.grant(db, admin, x, paris, "operator")
    assert outcome.status == gm.CREATED
    assert outcome.role is TenantRole.OPERATOR

    after = await load_principal_context(db, x)
    assert resolve(after, paris, Action.WRITE_TENANT_DATA) is Decision.ALLOW


@pytest.mark.asyncio
async def test_scenario_c_admin_cannot_grant_admin(db, caplog):
    berlin = await create_tenant(db, slug="berlin")
    admin = await create_principal(db, platform_role="admin")
    y = await create_principal(db, platform_role="admin")
    await add_grant(db, berlin, admin, "admin")
    await db.commit()

    with caplog.at_level(logging.WARNING, logger=SECURITY_LOGGER_NAME):
        with pytest.raises(PrivilegeEscalationAttempt):
            await gm.grant(db, admin, y, berlin, "admin")
    assert any(r.name == SECURITY_LOGGER_NAME for r in caplog.records)
    assert await _grant_rows(db, berlin, y) == 0

    outcome = await gm.grant(db, admin, y, berlin, "operator")
    assert outcome.status == gm.CREATED


@pytest.mark.asyncio
async def test_scenario_d_last_admin_cannot_be_revoked(db):
    rome = await create_tenant(db, slug="rome")
    admin = await create_principal(db, platform_role="admin")
    await add_grant(db, rome, admin, "admin")
    await db.commit()

    with pytest.raises(InvariantViolation):
        await gm.revoke(db, admin, admin, rome)

    g = await get_grant(db, rome, admin)
    assert g is not None
    assert g.role == "admin"


@pytest.mark.asyncio
async def test_last_admin_can_go_when_a_superuser_exists(db):
    rome = await create_tenant(db, slug="rome")
    admin = await create_principal(db, platform_role="admin")
    su = await create_principal(db, platform_role="superuser")
    await add_grant(db, rome, admin, "admin")
    await db.commit()

    outcome = await gm.revoke(db, su, admin, rome)
    assert outcome.status == gm.REVOKED
    assert await get_grant(db, rome, admin) is None


@pytest.mark.asyncio
async def test_grant_is_idempotent(db):
    oslo = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    p = await create_principal(db)
    await db.commit()

    first = await gm.grant(db, su, p, oslo, "operator")
    second = await gm.grant(db, su, p, oslo, "operator")

    assert first.status == gm.CREATED
    assert second.status == gm.UNCHANGED
    assert await _grant_rows(db, oslo, p) == 1


@pytest.mark.asyncio
async def test_role_change_updates_the_single_row(db):
    oslo = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    p = await create_principal(db, platform_role="admin")
    await db.commit()

    await gm.grant(db, su, p, oslo, "operator")
    outcome = await gm.grant(db, su, p, oslo, "admin")

    assert outcome.status == gm.UPDATED
    assert await _grant_rows(db, oslo, p) == 1
    assert (await get_grant(db, oslo, p)).role == "admin"


@pytest.mark.asyncio
async def test_grant_cannot_exceed_platform_role(db):
    oslo = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    op = await create_principal(db, platform_role="operator")
    await db.commit()

    with pytest.raises(InvariantViolation):
        await gm.grant(db, su, op, oslo, "admin")


@pytest.mark.asyncio
async def test_grant_to_superuser_is_implicit(db):
    oslo = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    other_su = await create_principal(db, platform_role="superuser")
    await db.commit()

    outcome = await gm.grant(db, su, other_su, oslo, "admin")
    assert outcome.status == gm.IMPLICIT
    assert await _grant_rows(db, oslo, other_su) == 0


@pytest.mark.asyncio
async def test_operator_cannot_manage_grants(db):
    oslo = await create_tenant(db)
    op = await create_principal(db)
    target = await create_principal(db)
    await add_grant(db, oslo, op, "operator")
    await db.commit()

    with pytest.raises(AuthorizationDenied):
        await gm.grant(db, op, target, oslo, "operator")
    with pytest.raises(AuthorizationDenied):
        await gm.list_grants(db, op, oslo)


@pytest.mark.asyncio
async def test_admin_cannot_revoke_another_admin(db):
    oslo = await create_tenant(db)
    a1 = await create_principal(db, platform_role="admin")
    a2 = await create_principal(db, platform_role="admin")
    await add_grant(db, oslo, a1, "admin")
    await add_grant(db, oslo, a2, "admin")
    await db.commit()

    with pytest.raises(PrivilegeEscalationAttempt):
        await gm.revoke(db, a1, a2, oslo)

    # leaving is allowed while another admin remains
    outcome = await gm.revoke(db, a1, a1, oslo)
    assert outcome.status == gm.REVOKED


@pytest.mark.asyncio
async def test_revoking_missing_grant_is_not_found(db):
    oslo = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    p = await create_principal(db)
    await db.commit()

    with pytest.raises(NotFound):
        await gm.revoke(db, su, p, oslo)


@pytest.mark.asyncio
async def test_revoked_grant_stops_working_immediately(db):
    oslo = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    p = await create_principal(db)
    await add_grant(db, oslo, p, "operator")
    await db.commit()

    assert resolve(await load_principal_context(db, p), oslo, Action.WRITE_TENANT_DATA) is Decision.ALLOW
    await gm.revoke(db, su, p, oslo)
    assert resolve(await load_principal_context(db, p), oslo, Action.WRITE_TENANT_DATA) is Decision.DENY


@pytest.mark.asyncio
async def test_promote_to_superuser_drops_grants(db):
    t1 = await create_tenant(db)
    t2 = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    p = await create_principal(db, platform_role="admin")
    await add_grant(db, t1, p, "admin")
    await add_grant(db, t2, p, "operator")
    await db.commit()

    outcome = await gm.promote(db, su, p, "superuser")
    assert outcome.platform_role is PlatformRole.SUPERUSER
    assert outcome.grants_removed == 2
    assert await _grant_rows(db, t1, p) == 0

    ctx = await load_principal_context(db, p)
    assert resolve(ctx, t1, Action.MANAGE_TENANT_USERS) is Decision.ALLOW


@pytest.mark.asyncio
async def test_demote_downgrades_admin_grants(db):
    t1 = await create_tenant(db)
    su = await create_principal(db, platform_role="superuser")
    p = await create_principal(db, platform_role="admin")
    other = await create_principal(db, platform_role="admin")
    await add_grant(db, t1, p, "admin")
    await add_grant(db, t1, other, "admin")
    await db.commit()

    outcome = await gm.demote(db, su, p, "operator")
    assert outcome.grants_downgraded == 1
    assert (await get_grant(db, t1, p)).role == "operator"
    assert (await get_principal(db, p)).platform_role == "operator"


@pytest.mark.asyncio
async def test_last_superuser_cannot_be_demoted(db):
    su = await create_principal(db, platform_role="superuser")
    await db.commit()

    with pytest.raises(InvariantViolation):
        await gm.demote(db, su, su, "admin")
    assert (await get_principal(db, su)).platform_role == "superuser"


@pytest.mark.asyncio
async def test_promote_rejects_a_lower_role(db):
    su = await create_principal(db, platform_role="superuser")
    p = await create_principal(db, platform_role="admin")
    await db.commit()

    with pytest.raises(ValidationError):
        await gm.promote(db, su, p, "operator")


@pytest.mark.asyncio
async def test_only_superusers_change_platform_roles(db):
    admin = await create_principal(db, platform_role="admin")
    p = await create_principal(db)
    await db.commit()

    with pytest.raises(AuthorizationDenied):
        await gm.promote(db, admin, p, "admin")
