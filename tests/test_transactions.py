# tests/test_transactions.py
from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from cityatlas.core import grant_management as gm
from cityatlas.core.config import settings
from cityatlas.core.errors import NotFound, StoreUnavailable
from cityatlas.db.session import is_transient_store_error, run_in_transaction
from cityatlas.models.grant import Grant
from tests.factories import add_grant, create_principal, create_tenant


def _lost_connection() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


class _Counter:
    def __init__(self):
        self.calls = 0


# ---------------------------------------------------------
# run_in_transaction
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_transient_failure_is_retried_until_budget_is_spent(db):
    seen = _Counter()

    async def work(session):
        seen.calls += 1
        raise _lost_connection()

    with pytest.raises(StoreUnavailable):
        await run_in_transaction(db, work, operation="always_down")
    assert seen.calls == settings.STORE_RETRY_ATTEMPTS


@pytest.mark.asyncio
async def test_transient_failure_then_success_returns_result(db):
    seen = _Counter()

    async def work(session):
        seen.calls += 1
        if seen.calls == 1:
            raise _lost_connection()
        return "ok"

    assert await run_in_transaction(db, work, operation="flaky") == "ok"
    assert seen.calls == 2


@pytest.mark.asyncio
async def test_domain_error_is_never_retried(db):
    seen = _Counter()

    async def work(session):
        seen.calls += 1
        raise NotFound("Grant not found")

    with pytest.raises(NotFound):
        await run_in_transaction(db, work, operation="missing")
    assert seen.calls == 1


@pytest.mark.asyncio
async def test_constraint_violation_is_not_retried_without_opt_in(db):
    seen = _Counter()

    async def work(session):
        seen.calls += 1
        raise IntegrityError("INSERT INTO grants", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(IntegrityError):
        await run_in_transaction(db, work, operation="insert")
    assert seen.calls == 1


def test_transient_classification():
    assert is_transient_store_error(_lost_connection())
    assert not is_transient_store_error(IntegrityError("INSERT", {}, Exception("dup")))
    assert not is_transient_store_error(NotFound())


# ---------------------------------------------------------
# Concurrent grant of the same pair
# ---------------------------------------------------------
async def _grant_rows(db, tenant_id, principal_id):
    stmt = select(func.count()).select_from(Grant).where(Grant.tenant_id == tenant_id, Grant.principal_id == principal_id)
    return (await db.execute(stmt)).scalar()


def _stale_first_read(monkeypatch):
    """
    The first lookup misses a grant another writer committed in the meantime,
    so the insert collides with it on the primary key.
    """
    real_get_grant = gm.get_grant
    seen = _Counter()

    async def get_grant(session, tenant_id, principal_id, **kwargs):
        seen.calls += 1
        if seen.calls == 1:
            return None
        return await real_get_grant(session, tenant_id, principal_id, **kwargs)

    monkeypatch.setattr(gm, "get_grant", get_grant)
    return seen


@pytest.mark.asyncio
async def test_concurrent_identical_grant_ends_unchanged(db, monkeypatch):
    paris = await create_tenant(db, slug="paris")
    admin = await create_principal(db, platform_role="admin")
    x = await create_principal(db)
    await add_grant(db, paris, admin, "admin")
    await add_grant(db, paris, x, "operator")
    await db.commit()
    # forget the loaded rows so the insert reaches the database
    db.expunge_all()
    lookups = _stale_first_read(monkeypatch)

    outcome = await gm.grant(db, admin, x, paris, "operator")

    assert outcome.status == gm.UNCHANGED
    assert lookups.calls == 2
    assert await _grant_rows(db, paris, x) == 1


@pytest.mark.asyncio
async def test_concurrent_different_grant_ends_updated(db, monkeypatch):
    paris = await create_tenant(db, slug="paris")
    su = await create_principal(db, platform_role="superuser")
    x = await create_principal(db, platform_role="admin")
    await add_grant(db, paris, x, "operator")
    await db.commit()
    # forget the loaded rows so the insert reaches the database
    db.expunge_all()
    _stale_first_read(monkeypatch)

    outcome = await gm.grant(db, su, x, paris, "admin")

    assert outcome.status == gm.UPDATED
    rows = (await db.execute(select(Grant).where(Grant.tenant_id == paris, Grant.principal_id == x))).scalars().all()
    assert [g.role for g in rows] == ["admin"]
