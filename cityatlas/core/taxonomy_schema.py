# cityatlas/core/taxonomy_schema.py
"""
In-memory view of a tenant's taxonomy schema.

The validator and the map-style generator work on these frozen snapshots
rather than on ORM rows, so both stay pure and testable without a database.
Snapshots are built per call from a fresh read (crud.taxonomy) and never
cached between calls.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional, Tuple

from cityatlas.core.errors import InvalidTransition


class TaxonomyStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    RETIRED = "retired"


ALLOWED_TRANSITIONS: Mapping[TaxonomyStatus, frozenset] = {
    TaxonomyStatus.DRAFT: frozenset({TaxonomyStatus.ACTIVE, TaxonomyStatus.RETIRED}),
    TaxonomyStatus.ACTIVE: frozenset({TaxonomyStatus.RETIRED}),
    TaxonomyStatus.RETIRED: frozenset(),
}


def check_transition(current: TaxonomyStatus, target: TaxonomyStatus) -> None:
    if target == current:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot move a taxonomy type from {current.value} to {target.value}.",
            current=current.value,
            target=target.value,
        )


@dataclass(frozen=True)
class TaxonomyTypeConfig:
    """The four behaviour flags of a taxonomy type. Nothing else is configurable."""

    required: bool = False
    allow_multiple: bool = False
    used_for_filtering: bool = True
    used_for_map_styling: bool = False


@dataclass(frozen=True)
class ValueSnapshot:
    id: uuid.UUID
    taxonomy_type_id: uuid.UUID
    slug: str
    color_hex: str
    icon_name: Optional[str]
    size_multiplier: Decimal
    display_order: int
    labels: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TypeSnapshot:
    id: uuid.UUID
    tenant_id: uuid.UUID
    slug: str
    config: TaxonomyTypeConfig
    status: TaxonomyStatus
    display_order: int
    values: Tuple[ValueSnapshot, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status is TaxonomyStatus.ACTIVE

    def value_ids(self) -> frozenset:
        return frozenset(v.id for v in self.values)

    def ordered_values(self) -> Tuple[ValueSnapshot, ...]:
        return tuple(sorted(self.values, key=lambda v: (v.display_order, v.slug)))


@dataclass(frozen=True)
class TenantSchema:
    tenant_id: uuid.UUID
    default_locale: str
    types: Tuple[TypeSnapshot, ...] = ()

    def ordered_types(self) -> Tuple[TypeSnapshot, ...]:
        return tuple(sorted(self.types, key=lambda t: (t.display_order, t.slug)))

    def active_types(self) -> Tuple[TypeSnapshot, ...]:
        return tuple(t for t in self.ordered_types() if t.is_active)

    def type_by_id(self, type_id: uuid.UUID) -> Optional[TypeSnapshot]:
        for t in self.types:
            if t.id == type_id:
                return t
        return None

    def value_index(self) -> dict:
        """value id -> (type, value) across every type, retired ones included."""
        return {v.id: (t, v) for t in self.types for v in t.values}


def pick_label(labels: Mapping[str, str], locale: Optional[str], fallback_locale: str, default: str) -> str:
    """Requested locale, then the tenant's default locale, then the slug."""
    for code in (locale, fallback_locale):
        if code and labels.get(code):
            return labels[code]
    return default
