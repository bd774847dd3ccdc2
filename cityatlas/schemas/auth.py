# cityatlas/schemas/auth.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


def _normalize_full_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = " ".join(value.strip().split())
    return v or None


class MagicCodeRequest(BaseModel):
    email: EmailStr
    full_name: Optional[str] = Field(default=None, max_length=200)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_full_name(v)


class MagicCodeVerify(BaseModel):
    email: EmailStr
    code: str = Field(min_length=4, max_length=64)


class MagicCodeIssued(BaseModel):
    status: str = "ok"
    expires_in_minutes: int
    code: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeTenant(BaseModel):
    slug: str
    name: str
    role: str


class MeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: EmailStr
    full_name: Optional[str] = None
    platform_role: Optional[str] = None
    is_active: bool
    tenants: List[MeTenant] = Field(default_factory=list)
