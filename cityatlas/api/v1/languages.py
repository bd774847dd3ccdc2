# cityatlas/api/v1/languages.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.api.deps.tenant import get_actor_id, get_optional_actor_id, get_tenant_id
from cityatlas.core import classification
from cityatlas.db.session import get_db
from cityatlas.schemas.language import ClassificationOut, ClassificationPut, LanguageCreate, LanguageOut

router = APIRouter(prefix="/tenants/{tenant_slug}/languages", tags=["languages"])


@router.get("", response_model=List[LanguageOut])
async def list_languages(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_optional_actor_id),
):
    return await classification.list_languages(db, actor_id, tenant_id)


@router.post("", response_model=LanguageOut, status_code=201)
async def create_language(
    payload: LanguageCreate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await classification.create_language(
        db, actor_id, tenant_id, slug=payload.slug, name=payload.name, endonym=payload.endonym
    )


@router.get("/{language_id}/taxonomies", response_model=ClassificationOut)
async def get_classification(
    language_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_optional_actor_id),
):
    taxonomies = await classification.get_classification(db, actor_id, tenant_id, language_id)
    return ClassificationOut(language_id=language_id, taxonomies=taxonomies)


@router.put("/{language_id}/taxonomies/{type_id}", response_model=ClassificationOut)
async def put_classification(
    language_id: uuid.UUID,
    type_id: uuid.UUID,
    payload: ClassificationPut,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    """Replaces the language's values for one taxonomy type."""
    await classification.set_classification(db, actor_id, tenant_id, language_id, type_id, payload.value_ids)
    taxonomies = await classification.get_classification(db, actor_id, tenant_id, language_id)
    return ClassificationOut(language_id=language_id, taxonomies=taxonomies)


@router.post("/{language_id}/publish", response_model=LanguageOut)
async def publish_language(
    language_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
    actor_id: uuid.UUID = Depends(get_actor_id),
):
    return await classification.publish_language(db, actor_id, tenant_id, language_id)
