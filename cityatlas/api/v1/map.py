# cityatlas/api/v1/map.py
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.api.deps.tenant import get_tenant_id
from cityatlas.core import map_styles
from cityatlas.db.session import get_db

router = APIRouter(prefix="/tenants/{tenant_slug}/map", tags=["map"])


@router.get("/style")
async def get_style(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Circle paint for the language layer. Public."""
    style = await map_styles.style_expression_for_tenant(db, tenant_id)
    return {
        "taxonomy_type": style.taxonomy_type,
        "color_rule": style.color_rule.model_dump(),
        "size_rule": style.size_rule.model_dump(),
        "paint": style.paint(),
    }


@router.get("/filters", response_model=List[map_styles.FilterDescriptor])
async def get_filters(
    locale: Optional[str] = Query(None, max_length=5),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    return await map_styles.filter_descriptors_for_tenant(db, tenant_id, locale)


@router.get("/features", response_model=List[map_styles.LanguageFeature])
async def get_features(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    """Published languages with the properties the style expression reads. Public."""
    return await map_styles.language_features_for_tenant(db, tenant_id)
