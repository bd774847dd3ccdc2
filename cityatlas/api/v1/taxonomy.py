# cityatlas/api/v1/taxonomy.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.api.deps.tenant import get_actor_id, get_optional_actor_id, get_tenant_id
from cityatlas.core import taxonomy as taxonomy_service
from cityatlas.core.taxonomy_schema import TaxonomyTypeConfig
from cityatlas.db.session import get_db
from cityatlas.schemas.taxonomy import (
    TaxonomyTypeCreate,
    TaxonomyTypeOut,
    TaxonomyTypeUpdate,
    TaxonomyValueCreate,
    TaxonomyValueOut,
    TaxonomyValueUpdate,
    TranslationIn,
)

router = APIRouter(prefix="/tenants/{tenant_slug}/taxonomy-types", tags=["taxonomy"])


def _translations(raw: Optional[dict]) -> Optional[dict]:
    if raw is None:
        return None
    return {locale: t.model_dump() if isinstance(t, TranslationIn) else t for locale, t in raw.items()}


# ---------------------------------------------------------
# Types
# ---------------------------------------------------------
@router.get("", response_model=List[TaxonomyTypeOut])
async def list_types(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_optional_actor_id),
):
    return await taxonomy_service.list_types(db, actor_id, tenant_id)


@router.post("", response_model=TaxonomyTypeOut, status_code=201)
async def create_type(
    payload: TaxonomyTypeCreate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await taxonomy_service.create_type(
        db,
        actor_id,
        tenant_id,
        slug=payload.slug,
        config=TaxonomyTypeConfig(
            required=payload.is_required,
            allow_multiple=payload.allow_multiple,
            used_for_filtering=payload.use_for_filtering,
            used_for_map_styling=payload.use_for_map_styling,
        ),
        display_order=payload.display_order,
        translations=_translations(payload.translations),
    )


@router.patch("/{type_id}", response_model=TaxonomyTypeOut)
async def update_type(
    type_id: uuid.UUID,
    payload: TaxonomyTypeUpdate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await taxonomy_service.update_type(
        db,
        actor_id,
        tenant_id,
        type_id,
        slug=payload.slug,
        required=payload.is_required,
        allow_multiple=payload.allow_multiple,
        used_for_filtering=payload.use_for_filtering,
        used_for_map_styling=payload.use_for_map_styling,
        display_order=payload.display_order,
        status=payload.status,
        translations=_translations(payload.translations),
    )


@router.post("/{type_id}/retire", response_model=TaxonomyTypeOut)
async def retire_type(
    type_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await taxonomy_service.retire_type(db, actor_id, tenant_id, type_id)


@router.delete("/{type_id}", status_code=204)
async def delete_type(
    type_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    await taxonomy_service.delete_type(db, actor_id, tenant_id, type_id)
    return Response(status_code=204)


# ---------------------------------------------------------
# Values
# ---------------------------------------------------------
@router.get("/{type_id}/values", response_model=List[TaxonomyValueOut])
async def list_values(
    type_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_optional_actor_id),
):
    return await taxonomy_service.list_values(db, actor_id, tenant_id, type_id)


@router.post("/{type_id}/values", response_model=TaxonomyValueOut, status_code=201)
async def create_value(
    type_id: uuid.UUID,
    payload: TaxonomyValueCreate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await taxonomy_service.create_value(
        db,
        actor_id,
        tenant_id,
        type_id,
        slug=payload.slug,
        color_hex=payload.color_hex,
        icon_name=payload.icon_name,
        icon_size_multiplier=payload.icon_size_multiplier,
        display_order=payload.display_order,
        translations=_translations(payload.translations),
    )


@router.patch("/{type_id}/values/{value_id}", response_model=TaxonomyValueOut)
async def update_value(
    type_id: uuid.UUID,
    value_id: uuid.UUID,
    payload: TaxonomyValueUpdate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await taxonomy_service.update_value(
        db,
        actor_id,
        tenant_id,
        type_id,
        value_id,
        slug=payload.slug,
        color_hex=payload.color_hex,
        icon_name=payload.icon_name,
        icon_size_multiplier=payload.icon_size_multiplier,
        display_order=payload.display_order,
        translations=_translations(payload.translations),
    )


@router.delete("/{type_id}/values/{value_id}", status_code=204)
async def delete_value(
    type_id: uuid.UUID,
    value_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    await taxonomy_service.delete_value(db, actor_id, tenant_id, type_id, value_id)
    return Response(status_code=204)
