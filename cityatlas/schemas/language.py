# cityatlas/schemas/language.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LanguageCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    slug: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    endonym: Optional[str] = Field(None, max_length=200)


class LanguageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    slug: str
    name: str
    endonym: Optional[str] = None
    status: str
    published_at: Optional[datetime] = None


class ClassificationPut(BaseModel):
    model_config = ConfigDict(extra="forbid")

    value_ids: List[uuid.UUID] = Field(default_factory=list)


class ClassificationOut(BaseModel):
    language_id: uuid.UUID
    # type slug -> value slugs
    taxonomies: Dict[str, List[str]]
