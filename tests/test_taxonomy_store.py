# tests/test_taxonomy_store.py
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from cityatlas.core import classification
from cityatlas.core import taxonomy as taxonomy_service
from cityatlas.core.errors import (
    AuthorizationDenied,
    CardinalityViolation,
    CrossScopeReference,
    DuplicateSlug,
    InvalidTransition,
    MissingRequiredClassification,
    RetiredTaxonomyType,
    ValidationError,
)
from cityatlas.core.taxonomy_schema import TaxonomyTypeConfig
from cityatlas.models.language import LanguageTaxonomy
from cityatlas.models.taxonomy import TaxonomyTypeTranslation, TaxonomyValue
from tests.factories import add_grant, create_language, create_principal, create_tenant, create_type, create_value


async def _count(db, model, *where):
    return (await db.execute(select(func.count()).select_from(model).where(*where))).scalar()


async def _city_with_operator(db, slug="amsterdam"):
    tenant = await create_tenant(db, slug=slug)
    operator = await create_principal(db)
    await add_grant(db, tenant, operator, "operator")
    await db.commit()
    return tenant, operator


# ---------------------------------------------------------
# Schema store
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_create_type_with_translations(db):
    tenant, operator = await _city_with_operator(db)

    t = await taxonomy_service.create_type(
        db,
        operator,
        tenant,
        slug="Size",
        config=TaxonomyTypeConfig(required=True),
        translations={"en": {"name": "Size"}, "nl": {"name": "Grootte", "description": "Aantal sprekers"}},
    )

    assert t.slug == "size"
    assert t.status == "active"
    assert t.is_required is True
    assert t.allow_multiple is False
    assert await _count(db, TaxonomyTypeTranslation, TaxonomyTypeTranslation.taxonomy_type_id == t.id) == 2


@pytest.mark.asyncio
async def test_type_slug_unique_per_tenant_only(db):
    ams, operator = await _city_with_operator(db, "amsterdam")
    rtm = await create_tenant(db, slug="rotterdam")
    await add_grant(db, rtm, operator, "operator")
    await db.commit()

    await taxonomy_service.create_type(db, operator, ams, slug="size")
    with pytest.raises(DuplicateSlug):
        await taxonomy_service.create_type(db, operator, ams, slug="size")

    other = await taxonomy_service.create_type(db, operator, rtm, slug="size")
    assert other.tenant_id == rtm


@pytest.mark.asyncio
async def test_schema_writes_need_a_grant_on_that_tenant(db):
    ams, operator = await _city_with_operator(db, "amsterdam")
    paris = await create_tenant(db, slug="paris")
    await db.commit()

    with pytest.raises(AuthorizationDenied):
        await taxonomy_service.create_type(db, operator, paris, slug="size")

    anonymous_list = await taxonomy_service.list_types(db, None, ams)
    assert list(anonymous_list) == []


@pytest.mark.asyncio
async def test_invalid_slug_rejected(db):
    tenant, operator = await _city_with_operator(db)
    with pytest.raises(ValidationError):
        await taxonomy_service.create_type(db, operator, tenant, slug="not a slug!")


@pytest.mark.asyncio
async def test_value_attributes_are_normalized_and_validated(db):
    tenant, operator = await _city_with_operator(db)
    size = await create_type(db, tenant, "size")
    await db.commit()

    v = await taxonomy_service.create_value(db, operator, tenant, size, slug="small", color_hex="#ffa500", icon_size_multiplier="0.5")
    assert v.color_hex == "#FFA500"
    assert v.icon_size_multiplier == Decimal("0.50")

    with pytest.raises(ValidationError):
        await taxonomy_service.create_value(db, operator, tenant, size, slug="big", icon_size_multiplier="5")
    with pytest.raises(ValidationError):
        await taxonomy_service.create_value(db, operator, tenant, size, slug="odd", color_hex="orange")
    with pytest.raises(DuplicateSlug):
        await taxonomy_service.create_value(db, operator, tenant, size, slug="small")


@pytest.mark.asyncio
async def test_retire_type_and_lifecycle(db):
    tenant, operator = await _city_with_operator(db)
    legacy = await create_type(db, tenant, "legacy")
    await db.commit()

    retired = await taxonomy_service.retire_type(db, operator, tenant, legacy)
    assert retired.status == "retired"

    with pytest.raises(InvalidTransition):
        await taxonomy_service.update_type(db, operator, tenant, legacy, status="active")
    with pytest.raises(RetiredTaxonomyType):
        await taxonomy_service.create_value(db, operator, tenant, legacy, slug="x")


@pytest.mark.asyncio
async def test_delete_type_cascades_to_values_and_assignments(db):
    tenant, operator = await _city_with_operator(db)
    size = await create_type(db, tenant, "size")
    small = await create_value(db, size, "small")
    lang = await create_language(db, tenant)
    await db.commit()

    await classification.set_classification(db, operator, tenant, lang, size, [small])
    assert await _count(db, LanguageTaxonomy, LanguageTaxonomy.language_id == lang) == 1

    removed = await taxonomy_service.delete_type(db, operator, tenant, size)
    assert removed == 1
    assert await _count(db, TaxonomyValue, TaxonomyValue.taxonomy_type_id == size) == 0
    assert await _count(db, LanguageTaxonomy, LanguageTaxonomy.language_id == lang) == 0


# ---------------------------------------------------------
# Classification
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_scenario_a_against_the_store(db):
    tenant, operator = await _city_with_operator(db)
    size = await create_type(db, tenant, "size", required=True)
    small = await create_value(db, size, "small", display_order=0)
    medium = await create_value(db, size, "medium", display_order=1)
    await create_value(db, size, "large", display_order=2)
    lang = await create_language(db, tenant)
    await db.commit()

    with pytest.raises(CardinalityViolation):
        await classification.set_classification(db, operator, tenant, lang, size, [small, medium])
    assert await _count(db, LanguageTaxonomy, LanguageTaxonomy.language_id == lang) == 0

    await classification.set_classification(db, operator, tenant, lang, size, [])
    with pytest.raises(MissingRequiredClassification):
        await classification.publish_language(db, operator, tenant, lang)

    await classification.set_classification(db, operator, tenant, lang, size, [medium])
    published = await classification.publish_language(db, operator, tenant, lang)
    assert published.status == "published"
    assert published.published_at is not None

    assert await classification.get_classification(db, None, tenant, lang) == {"size": ["medium"]}


@pytest.mark.asyncio
async def test_published_language_cannot_drop_required_value(db):
    tenant, operator = await _city_with_operator(db)
    size = await create_type(db, tenant, "size", required=True)
    small = await create_value(db, size, "small")
    lang = await create_language(db, tenant)
    await db.commit()

    await classification.set_classification(db, operator, tenant, lang, size, [small])
    await classification.publish_language(db, operator, tenant, lang)

    with pytest.raises(MissingRequiredClassification):
        await classification.set_classification(db, operator, tenant, lang, size, [])


@pytest.mark.asyncio
async def test_set_classification_replaces_only_that_type(db):
    tenant, operator = await _city_with_operator(db)
    size = await create_type(db, tenant, "size")
    small = await create_value(db, size, "small")
    large = await create_value(db, size, "large")
    family = await create_type(db, tenant, "family", allow_multiple=True)
    germanic = await create_value(db, family, "germanic")
    lang = await create_language(db, tenant)
    await db.commit()

    await classification.set_classification(db, operator, tenant, lang, family, [germanic])
    await classification.set_classification(db, operator, tenant, lang, size, [small])
    await classification.set_classification(db, operator, tenant, lang, size, [large])

    result = await classification.get_classification(db, operator, tenant, lang)
    assert result == {"family": ["germanic"], "size": ["large"]}


@pytest.mark.asyncio
async def test_type_from_another_tenant_is_cross_scope(db):
    ams, operator = await _city_with_operator(db, "amsterdam")
    paris = await create_tenant(db, slug="paris")
    paris_size = await create_type(db, paris, "size")
    paris_small = await create_value(db, paris_size, "small")
    lang = await create_language(db, ams)
    await db.commit()

    with pytest.raises(CrossScopeReference):
        await classification.set_classification(db, operator, ams, lang, paris_size, [paris_small])


@pytest.mark.asyncio
async def test_retired_type_assignments_stay_readable(db):
    tenant, operator = await _city_with_operator(db)
    legacy = await create_type(db, tenant, "legacy")
    old = await create_value(db, legacy, "old")
    lang = await create_language(db, tenant)
    await db.commit()

    await classification.set_classification(db, operator, tenant, lang, legacy, [old])
    await taxonomy_service.retire_type(db, operator, tenant, legacy)

    assert await classification.get_classification(db, operator, tenant, lang) == {"legacy": ["old"]}
    with pytest.raises(RetiredTaxonomyType):
        await classification.set_classification(db, operator, tenant, lang, legacy, [old])


@pytest.mark.asyncio
async def test_published_language_can_clear_retired_required_type(db):
    tenant, operator = await _city_with_operator(db)
    size = await create_type(db, tenant, "size", required=True)
    small = await create_value(db, size, "small")
    lang = await create_language(db, tenant)
    await db.commit()

    await classification.set_classification(db, operator, tenant, lang, size, [small])
    await classification.publish_language(db, operator, tenant, lang)
    await taxonomy_service.retire_type(db, operator, tenant, size)

    cleared = await classification.set_classification(db, operator, tenant, lang, size, [])
    assert cleared == frozenset()
    assert await _count(db, LanguageTaxonomy, LanguageTaxonomy.language_id == lang) == 0


@pytest.mark.asyncio
async def test_language_list_hides_drafts_from_the_public(db):
    tenant, operator = await _city_with_operator(db)
    await create_language(db, tenant, slug="dutch", status="published")
    await create_language(db, tenant, slug="frisian")
    await db.commit()

    public = await classification.list_languages(db, None, tenant)
    assert [lang.slug for lang in public] == ["dutch"]

    editor_view = await classification.list_languages(db, operator, tenant)
    assert [lang.slug for lang in editor_view] == ["dutch", "frisian"]


@pytest.mark.asyncio
async def test_draft_classification_is_not_public(db):
    tenant, operator = await _city_with_operator(db)
    lang = await create_language(db, tenant)
    await db.commit()

    with pytest.raises(AuthorizationDenied):
        await classification.get_classification(db, None, tenant, lang)
    assert await classification.get_classification(db, operator, tenant, lang) == {}
