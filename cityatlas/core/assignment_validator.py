# cityatlas/core/assignment_validator.py
"""
Checks a record's classification against its tenant's taxonomy schema.

Pure functions: no I/O, the caller hands in snapshots. Required types are only
enforced at finalization (publishing), so drafts can be classified one
dimension at a time.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Mapping

from cityatlas.core.errors import (
    CardinalityViolation,
    CrossScopeReference,
    MissingRequiredClassification,
    RetiredTaxonomyType,
)
from cityatlas.core.taxonomy_schema import TaxonomyStatus, TypeSnapshot


@dataclass(frozen=True)
class RecordRef:
    id: uuid.UUID
    tenant_id: uuid.UUID


def validate_assignment(
    record: RecordRef,
    taxonomy_type: TypeSnapshot,
    value_ids: Iterable[uuid.UUID],
    *,
    finalize: bool = False,
) -> frozenset:
    """
    Validate the full value set `record` should hold for `taxonomy_type`.

    Returns the normalized (deduplicated, order-independent) set of value ids
    to persist. Raises CrossScopeReference, RetiredTaxonomyType,
    CardinalityViolation or (with finalize=True) MissingRequiredClassification.
    """
    wanted = frozenset(value_ids)

    if taxonomy_type.tenant_id != record.tenant_id:
        raise CrossScopeReference(taxonomy_type.slug, wanted)

    foreign = wanted - taxonomy_type.value_ids()
    if foreign:
        raise CrossScopeReference(taxonomy_type.slug, foreign)

    # clearing is always allowed; adding to a retired type is not
    if wanted and taxonomy_type.status is TaxonomyStatus.RETIRED:
        raise RetiredTaxonomyType(taxonomy_type.slug)

    if not taxonomy_type.config.allow_multiple and len(wanted) > 1:
        slugs = [v.slug for v in taxonomy_type.values if v.id in wanted]
        raise CardinalityViolation(taxonomy_type.slug, slugs)

    # retired types stop being required, matching validate_for_publish
    if finalize and taxonomy_type.is_active and taxonomy_type.config.required and not wanted:
        raise MissingRequiredClassification([taxonomy_type.slug])

    return wanted


def validate_for_publish(
    record: RecordRef,
    types: Iterable[TypeSnapshot],
    assigned: Mapping[uuid.UUID, Iterable[uuid.UUID]],
) -> None:
    """
    Finalization check over every dimension of the tenant.

    `assigned` maps taxonomy type id -> value ids currently held by the record.
    Every active required type needs at least one value; every type's current
    set must still satisfy cardinality. Missing types are reported together.
    """
    missing: list[str] = []
    for t in types:
        if t.tenant_id != record.tenant_id:
            continue
        current = frozenset(assigned.get(t.id, ()))
        if t.status is not TaxonomyStatus.ACTIVE:
            continue
        if not t.config.allow_multiple and len(current) > 1:
            slugs = [v.slug for v in t.values if v.id in current]
            raise CardinalityViolation(t.slug, slugs)
        if t.config.required and not current:
            missing.append(t.slug)

    if missing:
        raise MissingRequiredClassification(missing)
