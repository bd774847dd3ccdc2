# cityatlas/core/map_styles.py
"""
Declarative map styling and filter descriptors derived from a tenant's schema.

The generators are pure functions of a TenantSchema snapshot. The async
wrappers at the bottom read the schema fresh on every call, so an edit to a
taxonomy type or value shows up on the next request.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.auth.permissions import Action
from cityatlas.core.access import authorize_tenant_action
from cityatlas.core.config import settings
from cityatlas.core.taxonomy_schema import TenantSchema, TypeSnapshot, pick_label
from cityatlas.crud import languages as languages_crud
from cityatlas.crud import taxonomy as crud

StopOutput = Union[str, float]


class StyleStop(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    output: StopOutput


class StyleRule(BaseModel):
    """One paint property: a discrete value -> output mapping keyed on a feature property."""

    model_config = ConfigDict(frozen=True)

    property: Optional[str] = None
    stops: Tuple[StyleStop, ...] = ()
    default: StopOutput

    def to_expression(self) -> Any:
        """
        ["match", ["get", <property>], v1, out1, ..., <default>], or the bare
        default when there is nothing to match on.
        """
        if not self.property or not self.stops:
            return self.default
        expr: List[Any] = ["match", ["get", self.property]]
        for stop in self.stops:
            expr.extend([stop.value, stop.output])
        expr.append(self.default)
        return expr


class StyleExpression(BaseModel):
    model_config = ConfigDict(frozen=True)

    taxonomy_type: Optional[str] = None
    color_rule: StyleRule
    size_rule: StyleRule

    def paint(self) -> Dict[str, Any]:
        return {
            "circle-color": self.color_rule.to_expression(),
            "circle-radius-multiplier": self.size_rule.to_expression(),
        }


class FilterOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    slug: str
    label: str
    color_hex: str
    icon_name: Optional[str] = None


class FilterDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    slug: str
    label: str
    allow_multiple: bool
    options: List[FilterOption] = Field(default_factory=list)


class LanguageFeature(BaseModel):
    """One published language as the map layer sees it."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    slug: str
    name: str
    endonym: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)


def default_style_expression() -> StyleExpression:
    return StyleExpression(
        taxonomy_type=None,
        color_rule=StyleRule(default=settings.DEFAULT_MARKER_COLOR),
        size_rule=StyleRule(default=float(settings.DEFAULT_MARKER_SIZE)),
    )


def styling_type(schema: TenantSchema) -> Optional[TypeSnapshot]:
    """First active type flagged for map styling, by display order then slug."""
    for t in schema.active_types():
        if t.config.used_for_map_styling:
            return t
    return None


def generate_style_expression(schema: TenantSchema) -> StyleExpression:
    t = styling_type(schema)
    if t is None:
        return default_style_expression()

    fallback = default_style_expression()
    values = t.ordered_values()
    return StyleExpression(
        taxonomy_type=t.slug,
        color_rule=StyleRule(
            property=t.slug,
            stops=tuple(StyleStop(value=v.slug, output=v.color_hex) for v in values),
            default=fallback.color_rule.default,
        ),
        size_rule=StyleRule(
            property=t.slug,
            stops=tuple(StyleStop(value=v.slug, output=float(v.size_multiplier)) for v in values),
            default=fallback.size_rule.default,
        ),
    )


def generate_filter_descriptors(schema: TenantSchema, locale: Optional[str] = None) -> List[FilterDescriptor]:
    code = (locale or "").strip().lower() or None
    out: List[FilterDescriptor] = []
    for t in schema.active_types():
        if not t.config.used_for_filtering:
            continue
        out.append(
            FilterDescriptor(
                id=t.id,
                slug=t.slug,
                label=pick_label(t.labels, code, schema.default_locale, t.slug),
                allow_multiple=t.config.allow_multiple,
                options=[
                    FilterOption(
                        id=v.id,
                        slug=v.slug,
                        label=pick_label(v.labels, code, schema.default_locale, v.slug),
                        color_hex=v.color_hex,
                        icon_name=v.icon_name,
                    )
                    for v in t.ordered_values()
                ],
            )
        )
    return out


def feature_properties(schema: TenantSchema, assigned_value_ids: Iterable[uuid.UUID]) -> Dict[str, Any]:
    """
    Per-feature properties the style expression reads: type slug -> value slug
    (a list of slugs for multi-valued types). Retired types are left out.

    The styling type is always a single slug, since `match` only compares
    scalars: a multi-valued styling type contributes its first value in
    display order.
    """
    assigned = set(assigned_value_ids)
    styled = styling_type(schema)
    props: Dict[str, Any] = {}
    for t in schema.active_types():
        slugs = [v.slug for v in t.ordered_values() if v.id in assigned]
        if not slugs:
            continue
        scalar = not t.config.allow_multiple or (styled is not None and t.id == styled.id)
        props[t.slug] = slugs[0] if scalar else slugs
    return props


# ---------------------------------------------------------
# Store-backed wrappers (fresh read per call)
# ---------------------------------------------------------
async def load_tenant_schema(db: AsyncSession, tenant_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> TenantSchema:
    _, tenant = await authorize_tenant_action(db, actor_id, tenant_id, Action.READ_PUBLIC)
    return await crud.load_tenant_schema(db, tenant)


async def style_expression_for_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> StyleExpression:
    return generate_style_expression(await load_tenant_schema(db, tenant_id))


async def filter_descriptors_for_tenant(db: AsyncSession, tenant_id: uuid.UUID, locale: Optional[str] = None) -> List[FilterDescriptor]:
    return generate_filter_descriptors(await load_tenant_schema(db, tenant_id), locale)


async def language_features_for_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> List[LanguageFeature]:
    """Published languages with the properties generate_style_expression matches on. Public."""
    schema = await load_tenant_schema(db, tenant_id)
    langs = await languages_crud.list_languages(db, tenant_id, published_only=True)

    assigned: Dict[uuid.UUID, List[uuid.UUID]] = defaultdict(list)
    for language_id, value_id in await languages_crud.list_assignments(db, [lang.id for lang in langs]):
        assigned[language_id].append(value_id)

    return [
        LanguageFeature(
            id=lang.id,
            slug=lang.slug,
            name=lang.name,
            endonym=lang.endonym,
            properties=feature_properties(schema, assigned.get(lang.id, ())),
        )
        for lang in langs
    ]
