# tests/test_map_styles.py
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from cityatlas.core import classification, map_styles
from cityatlas.core import taxonomy as taxonomy_service
from cityatlas.core.taxonomy_schema import (
    TaxonomyStatus,
    TaxonomyTypeConfig,
    TenantSchema,
    TypeSnapshot,
    ValueSnapshot,
)
from tests.factories import add_grant, create_language, create_principal, create_tenant, create_type, create_value

TENANT = uuid.uuid4()


def value(type_id, slug, color, size="1.00", order=0, labels=None):
    return ValueSnapshot(
        id=uuid.uuid4(),
        taxonomy_type_id=type_id,
        slug=slug,
        color_hex=color,
        icon_name=None,
        size_multiplier=Decimal(size),
        display_order=order,
        labels=labels or {},
    )


def type_(slug, *, order=0, status=TaxonomyStatus.ACTIVE, styling=False, filtering=True, allow_multiple=False, values=(), labels=None):
    type_id = uuid.uuid4()
    return TypeSnapshot(
        id=type_id,
        tenant_id=TENANT,
        slug=slug,
        config=TaxonomyTypeConfig(
            used_for_map_styling=styling,
            used_for_filtering=filtering,
            allow_multiple=allow_multiple,
        ),
        status=status,
        display_order=order,
        values=tuple(value(type_id, *v) for v in values),
        labels=labels or {},
    )


def schema(*types, default_locale="en"):
    return TenantSchema(tenant_id=TENANT, default_locale=default_locale, types=types)


def test_scenario_e_no_styling_type_gives_default_rule():
    style = map_styles.generate_style_expression(schema(type_("script")))
    assert style.taxonomy_type is None
    assert style.color_rule.to_expression() == "#CCCCCC"
    assert style.size_rule.to_expression() == 1.0


def test_empty_schema_gives_default_rule():
    assert map_styles.generate_style_expression(schema()) == map_styles.default_style_expression()


def test_style_expression_matches_on_type_slug():
    size = type_(
        "size",
        styling=True,
        values=(("large", "#FF0000", "2.00", 2), ("small", "#00FF00", "0.50", 0), ("medium", "#0000FF", "1.00", 1)),
    )
    style = map_styles.generate_style_expression(schema(size))

    assert style.taxonomy_type == "size"
    assert style.color_rule.to_expression() == [
        "match", ["get", "size"],
        "small", "#00FF00",
        "medium", "#0000FF",
        "large", "#FF0000",
        "#CCCCCC",
    ]
    assert style.size_rule.to_expression() == [
        "match", ["get", "size"],
        "small", 0.5,
        "medium", 1.0,
        "large", 2.0,
        1.0,
    ]


def test_first_styling_type_by_display_order_wins():
    a = type_("status", order=5, styling=True, values=(("living", "#111111"),))
    b = type_("size", order=1, styling=True, values=(("small", "#222222"),))
    assert map_styles.generate_style_expression(schema(a, b)).taxonomy_type == "size"


def test_retired_types_are_ignored_for_style_and_filters():
    retired = type_("old", order=0, styling=True, status=TaxonomyStatus.RETIRED, values=(("x", "#123456"),))
    live = type_("size", order=1, values=(("small", "#222222"),))

    assert map_styles.generate_style_expression(schema(retired, live)).taxonomy_type is None
    assert [f.slug for f in map_styles.generate_filter_descriptors(schema(retired, live))] == ["size"]


def test_filter_descriptors_order_and_labels():
    size = type_(
        "size",
        order=2,
        labels={"en": "Size", "nl": "Grootte"},
        values=(("small", "#222222", "1.00", 0, {"en": "Small"}), ("large", "#333333", "1.00", 1)),
    )
    script = type_("script", order=1, labels={"en": "Script"})
    hidden = type_("internal", order=0, filtering=False)

    filters = map_styles.generate_filter_descriptors(schema(size, script, hidden), "nl")
    assert [f.slug for f in filters] == ["script", "size"]

    size_filter = filters[1]
    # requested locale, then tenant default, then slug
    assert size_filter.label == "Grootte"
    assert [o.label for o in size_filter.options] == ["Small", "large"]
    assert filters[0].label == "Script"


def test_feature_properties():
    size = type_("size", values=(("small", "#222222"), ("large", "#333333")))
    family = type_("family", allow_multiple=True, values=(("germanic", "#111111", "1.00", 0), ("romance", "#444444", "1.00", 1)))
    s = schema(size, family)
    assigned = [size.values[1].id, family.values[0].id, family.values[1].id]

    assert map_styles.feature_properties(s, assigned) == {"size": "large", "family": ["germanic", "romance"]}


@pytest.mark.asyncio
async def test_schema_edits_show_up_on_next_read(db):
    tenant = await create_tenant(db)
    operator = await create_principal(db)
    await add_grant(db, tenant, operator, "operator")
    size = await create_type(db, tenant, "size", styling=True)
    small = await create_value(db, size, "small", color="#00FF00")
    await db.commit()

    first = await map_styles.style_expression_for_tenant(db, tenant)
    assert first.color_rule.to_expression()[3] == "#00FF00"

    await taxonomy_service.update_value(db, operator, tenant, size, small, color_hex="#abcdef")

    second = await map_styles.style_expression_for_tenant(db, tenant)
    assert second.color_rule.to_expression()[3] == "#ABCDEF"


@pytest.mark.asyncio
async def test_filter_descriptors_for_tenant_fall_back_to_default_locale(db):
    tenant = await create_tenant(db, default_locale="nl")
    status = await create_type(db, tenant, "status")
    await create_value(db, status, "living", labels={"nl": "Levend"})
    await db.commit()

    filters = await map_styles.filter_descriptors_for_tenant(db, tenant, "fr")
    assert filters[0].options[0].label == "Levend"


def _match_lookup(expression, props):
    """Evaluate a ["match", ["get", p], v1, out1, ..., default] expression against feature properties."""
    if not isinstance(expression, list):
        return expression
    _, (_, prop), *pairs, default = expression
    value = props.get(prop)
    for stop, output in zip(pairs[::2], pairs[1::2]):
        if value == stop:
            return output
    return default


def test_multi_valued_styling_type_gets_scalar_property():
    family = type_(
        "family",
        styling=True,
        allow_multiple=True,
        values=(("germanic", "#FF0000", "1.50", 0), ("romance", "#00FF00", "0.75", 1)),
    )
    script = type_("script", allow_multiple=True, values=(("latin", "#111111"), ("cyrillic", "#222222", "1.00", 1)))
    s = schema(family, script)
    style = map_styles.generate_style_expression(s)

    props = map_styles.feature_properties(s, [family.values[1].id, family.values[0].id, script.values[0].id])

    assert props["family"] == "germanic"
    # non-styling multi-valued types keep every slug
    assert props["script"] == ["latin"]
    assert _match_lookup(style.color_rule.to_expression(), props) == "#FF0000"
    assert _match_lookup(style.size_rule.to_expression(), props) == 1.5


def test_style_and_feature_properties_agree_for_every_value():
    size = type_("size", styling=True, values=(("small", "#00FF00", "0.50", 0), ("large", "#FF0000", "2.00", 1)))
    s = schema(size)
    style = map_styles.generate_style_expression(s)

    for v in size.values:
        props = map_styles.feature_properties(s, [v.id])
        assert _match_lookup(style.color_rule.to_expression(), props) == v.color_hex
        assert _match_lookup(style.size_rule.to_expression(), props) == float(v.size_multiplier)

    assert _match_lookup(style.color_rule.to_expression(), map_styles.feature_properties(s, [])) == "#CCCCCC"


@pytest.mark.asyncio
async def test_language_features_list_published_languages_only(db):
    tenant = await create_tenant(db)
    operator = await create_principal(db)
    await add_grant(db, tenant, operator, "operator")
    family = await create_type(db, tenant, "family", styling=True, allow_multiple=True)
    germanic = await create_value(db, family, "germanic", color="#FF0000", display_order=0)
    romance = await create_value(db, family, "romance", color="#00FF00", display_order=1)
    dutch = await create_language(db, tenant, slug="dutch")
    await create_language(db, tenant, slug="frisian")
    await db.commit()

    await classification.set_classification(db, operator, tenant, dutch, family, [romance, germanic])
    await classification.publish_language(db, operator, tenant, dutch)

    features = await map_styles.language_features_for_tenant(db, tenant)
    assert [f.slug for f in features] == ["dutch"]
    assert features[0].properties == {"family": "germanic"}

    style = await map_styles.style_expression_for_tenant(db, tenant)
    assert _match_lookup(style.color_rule.to_expression(), features[0].properties) == "#FF0000"
