# tests/test_api.py
from __future__ import annotations

import pytest

from cityatlas.core.errors import FORBIDDEN_MESSAGE
from tests.factories import (
    add_grant,
    auth_headers,
    create_language,
    create_principal,
    create_tenant,
    create_type,
    create_value,
)


@pytest.mark.asyncio
async def test_magic_code_signup_creates_operator(client):
    r = await client.post("/api/v1/auth/request-code", json={"email": "New.Person@CityAtlas.org"})
    assert r.status_code == 200, r.text
    code = r.json()["code"]

    r = await client.post("/api/v1/auth/verify-code", json={"email": "new.person@cityatlas.org", "code": code})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]

    r = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["email"] == "new.person@cityatlas.org"
    assert body["platform_role"] == "operator"
    assert body["tenants"] == []


@pytest.mark.asyncio
async def test_wrong_code_is_rejected(client):
    await client.post("/api/v1/auth/request-code", json={"email": "someone@cityatlas.org"})
    r = await client.post("/api/v1/auth/verify-code", json={"email": "someone@cityatlas.org", "code": "000000"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_superuser_creates_tenant_operator_cannot(client, db):
    su = await create_principal(db, platform_role="superuser")
    op = await create_principal(db)
    await db.commit()

    r = await client.post("/api/v1/tenants", json={"slug": "amsterdam", "name": "Amsterdam"}, headers=auth_headers(op))
    assert r.status_code == 403
    assert r.json()["detail"] == {"code": "forbidden", "message": FORBIDDEN_MESSAGE}

    r = await client.post("/api/v1/tenants", json={"slug": "amsterdam", "name": "Amsterdam"}, headers=auth_headers(su))
    assert r.status_code == 201, r.text
    assert r.json()["slug"] == "amsterdam"

    r = await client.post("/api/v1/tenants", json={"slug": "amsterdam", "name": "Amsterdam"}, headers=auth_headers(su))
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "duplicate_slug"


@pytest.mark.asyncio
async def test_unknown_and_forbidden_tenants_look_the_same(client, db):
    await create_tenant(db, slug="paris")
    op = await create_principal(db)
    await db.commit()

    existing = await client.get("/api/v1/tenants/paris/grants", headers=auth_headers(op))
    missing = await client.get("/api/v1/tenants/atlantis/grants", headers=auth_headers(op))

    assert existing.status_code == missing.status_code == 403
    assert existing.json() == missing.json()


@pytest.mark.asyncio
async def test_grant_flow_over_http(client, db):
    berlin = await create_tenant(db, slug="berlin")
    admin = await create_principal(db, platform_role="admin")
    y = await create_principal(db, platform_role="admin")
    await add_grant(db, berlin, admin, "admin")
    await db.commit()

    r = await client.put(f"/api/v1/tenants/berlin/grants/{y}", json={"role": "admin"}, headers=auth_headers(admin))
    assert r.status_code == 403

    r = await client.put(f"/api/v1/tenants/berlin/grants/{y}", json={"role": "operator"}, headers=auth_headers(admin))
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "created"

    r = await client.get("/api/v1/tenants/berlin/grants", headers=auth_headers(admin))
    assert r.status_code == 200
    assert {g["role"] for g in r.json()} == {"admin", "operator"}

    r = await client.delete(f"/api/v1/tenants/berlin/grants/{admin}", headers=auth_headers(admin))
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "invariant_violation"


@pytest.mark.asyncio
async def test_taxonomy_crud_and_map_over_http(client, db):
    ams = await create_tenant(db, slug="amsterdam")
    op = await create_principal(db)
    await add_grant(db, ams, op, "operator")
    await db.commit()
    headers = auth_headers(op)

    r = await client.post(
        "/api/v1/tenants/amsterdam/taxonomy-types",
        json={"slug": "size", "use_for_map_styling": True, "translations": {"en": {"name": "Size"}}},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    size_id = r.json()["id"]

    for slug, color, order in (("small", "#00FF00", 0), ("large", "#FF0000", 1)):
        r = await client.post(
            f"/api/v1/tenants/amsterdam/taxonomy-types/{size_id}/values",
            json={"slug": slug, "color_hex": color, "display_order": order},
            headers=headers,
        )
        assert r.status_code == 201, r.text

    # public, no token
    r = await client.get("/api/v1/tenants/amsterdam/map/style")
    assert r.status_code == 200
    assert r.json()["paint"]["circle-color"] == ["match", ["get", "size"], "small", "#00FF00", "large", "#FF0000", "#CCCCCC"]

    r = await client.get("/api/v1/tenants/amsterdam/map/filters", params={"locale": "nl"})
    assert r.status_code == 200
    filters = r.json()
    assert filters[0]["slug"] == "size"
    assert filters[0]["label"] == "Size"
    assert [o["slug"] for o in filters[0]["options"]] == ["small", "large"]


@pytest.mark.asyncio
async def test_map_style_default_for_tenant_without_styling(client, db):
    await create_tenant(db, slug="lyon")
    await db.commit()

    r = await client.get("/api/v1/tenants/lyon/map/style")
    assert r.status_code == 200
    assert r.json()["taxonomy_type"] is None
    assert r.json()["paint"]["circle-color"] == "#CCCCCC"


@pytest.mark.asyncio
async def test_classification_validation_errors_over_http(client, db):
    ams = await create_tenant(db, slug="amsterdam")
    op = await create_principal(db)
    await add_grant(db, ams, op, "operator")
    size = await create_type(db, ams, "size", required=True)
    small = await create_value(db, size, "small")
    medium = await create_value(db, size, "medium")
    lang = await create_language(db, ams)
    await db.commit()
    headers = auth_headers(op)

    r = await client.put(
        f"/api/v1/tenants/amsterdam/languages/{lang}/taxonomies/{size}",
        json={"value_ids": [str(small), str(medium)]},
        headers=headers,
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "cardinality_violation"
    assert r.json()["detail"]["taxonomy_type"] == "size"

    r = await client.post(f"/api/v1/tenants/amsterdam/languages/{lang}/publish", headers=headers)
    assert r.status_code == 422
    assert r.json()["detail"]["taxonomy_types"] == ["size"]

    r = await client.put(
        f"/api/v1/tenants/amsterdam/languages/{lang}/taxonomies/{size}",
        json={"value_ids": [str(medium)]},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["taxonomies"] == {"size": ["medium"]}

    r = await client.post(f"/api/v1/tenants/amsterdam/languages/{lang}/publish", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "published"


@pytest.mark.asyncio
async def test_me_lists_granted_tenants(client, db):
    ams = await create_tenant(db, slug="amsterdam")
    await create_tenant(db, slug="paris")
    op = await create_principal(db)
    await add_grant(db, ams, op, "operator")
    await db.commit()

    r = await client.get("/api/v1/auth/me", headers=auth_headers(op))
    assert r.status_code == 200, r.text
    assert r.json()["tenants"] == [{"slug": "amsterdam", "name": "Test City", "role": "operator"}]


@pytest.mark.asyncio
async def test_language_list_and_map_features_over_http(client, db):
    ams = await create_tenant(db, slug="amsterdam")
    op = await create_principal(db)
    await add_grant(db, ams, op, "operator")
    size = await create_type(db, ams, "size", styling=True)
    large = await create_value(db, size, "large", color="#FF0000")
    dutch = await create_language(db, ams, slug="dutch", status="published")
    await create_language(db, ams, slug="frisian")
    await db.commit()

    r = await client.put(
        f"/api/v1/tenants/amsterdam/languages/{dutch}/taxonomies/{size}",
        json={"value_ids": [str(large)]},
        headers=auth_headers(op),
    )
    assert r.status_code == 200, r.text

    r = await client.get("/api/v1/tenants/amsterdam/languages")
    assert [lang["slug"] for lang in r.json()] == ["dutch"]
    r = await client.get("/api/v1/tenants/amsterdam/languages", headers=auth_headers(op))
    assert [lang["slug"] for lang in r.json()] == ["dutch", "frisian"]

    r = await client.get("/api/v1/tenants/amsterdam/map/features")
    assert r.status_code == 200, r.text
    assert [(f["slug"], f["properties"]) for f in r.json()] == [("dutch", {"size": "large"})]
