# cityatlas/schemas/taxonomy.py
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TranslationIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class TaxonomyTypeCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    slug: str = Field(..., min_length=1, max_length=100)
    is_required: bool = False
    allow_multiple: bool = False
    use_for_filtering: bool = True
    use_for_map_styling: bool = False
    display_order: int = Field(default=0, ge=0)
    translations: Dict[str, TranslationIn] = Field(default_factory=dict)


class TaxonomyTypeUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    slug: Optional[str] = Field(None, min_length=1, max_length=100)
    is_required: Optional[bool] = None
    allow_multiple: Optional[bool] = None
    use_for_filtering: Optional[bool] = None
    use_for_map_styling: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)
    status: Optional[str] = None
    translations: Optional[Dict[str, TranslationIn]] = None


class TaxonomyTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    slug: str
    is_required: bool
    allow_multiple: bool
    use_for_filtering: bool
    use_for_map_styling: bool
    display_order: int
    status: str


class TaxonomyValueCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    slug: str = Field(..., min_length=1, max_length=100)
    color_hex: Optional[str] = None
    icon_name: Optional[str] = Field(None, max_length=50)
    icon_size_multiplier: Optional[Decimal] = None
    display_order: int = Field(default=0, ge=0)
    translations: Dict[str, TranslationIn] = Field(default_factory=dict)


class TaxonomyValueUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    slug: Optional[str] = Field(None, min_length=1, max_length=100)
    color_hex: Optional[str] = None
    icon_name: Optional[str] = Field(None, max_length=50)
    icon_size_multiplier: Optional[Decimal] = None
    display_order: Optional[int] = Field(None, ge=0)
    translations: Optional[Dict[str, TranslationIn]] = None


class TaxonomyValueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    taxonomy_type_id: uuid.UUID
    slug: str
    color_hex: str
    icon_name: Optional[str] = None
    icon_size_multiplier: Decimal
    display_order: int
