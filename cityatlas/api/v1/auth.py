# cityatlas/api/v1/auth.py
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from cityatlas.core.config import settings
from cityatlas.core.security import bearer_scheme, create_access_token, decode_access_token, optional_bearer_scheme
from cityatlas.crud.grants import list_grants_for_principal
from cityatlas.crud.principals import create_principal, get_principal, get_principal_by_email
from cityatlas.crud.tenants import list_tenants_for_principal
from cityatlas.db.session import get_db
from cityatlas.models.principal import Principal
from cityatlas.schemas.auth import MagicCodeIssued, MagicCodeRequest, MagicCodeVerify, MeResponse, MeTenant, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _should_return_magic_code_in_response() -> bool:
    """Never in production; elsewhere only when RETURN_MAGIC_CODE_IN_RESPONSE is on."""
    if settings.is_production:
        return False
    return settings.RETURN_MAGIC_CODE_IN_RESPONSE


async def purge_expired_magic_codes(db: AsyncSession) -> None:
    stmt = (
        update(Principal)
        .where(Principal.magic_code_expires_at.is_not(None))
        .where(Principal.magic_code_expires_at < _utcnow())
        .values(magic_code=None, magic_code_expires_at=None)
    )
    await db.execute(stmt)


@router.post("/request-code", response_model=MagicCodeIssued)
async def request_code(payload: MagicCodeRequest, db: AsyncSession = Depends(get_db)) -> MagicCodeIssued:
    """
    Body: {"email": "someone@city.org"}
    Signs up unknown emails as operator principals with no grants.
    """
    await purge_expired_magic_codes(db)

    principal = await get_principal_by_email(db, payload.email)
    if principal is None:
        principal = await create_principal(db, payload.email, full_name=payload.full_name)
        logger.info("principal signed up id=%s", principal.id)

    code = str(secrets.randbelow(900000) + 100000)  # 6 digits
    principal.magic_code = code
    principal.magic_code_expires_at = _utcnow() + timedelta(minutes=settings.MAGIC_CODE_EXPIRY_MINUTES)
    await db.commit()

    resp = MagicCodeIssued(expires_in_minutes=settings.MAGIC_CODE_EXPIRY_MINUTES)
    if _should_return_magic_code_in_response():
        resp.code = code
    return resp


@router.post("/verify-code", response_model=TokenResponse)
async def verify_code(payload: MagicCodeVerify, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    code = payload.code.strip()
    if not code:
        raise HTTPException(status_code=400, detail="code is required")

    principal = await get_principal_by_email(db, payload.email)
    if not principal or not principal.is_active or not principal.magic_code or not principal.magic_code_expires_at:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if not secrets.compare_digest(principal.magic_code, code):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if _as_aware(principal.magic_code_expires_at) < _utcnow():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Code expired")

    # one-time use
    principal.magic_code = None
    principal.magic_code_expires_at = None
    await db.commit()

    return TokenResponse(access_token=create_access_token(principal.id))


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    principal_id = decode_access_token(credentials.credentials)

    principal = await get_principal(db, principal_id)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Principal not found")
    if not principal.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Principal inactive")
    return principal


async def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[Principal]:
    """Public endpoints: anonymous callers get None, a bad token is still rejected."""
    if credentials is None:
        return None
    return await get_current_principal(credentials, db)


@router.get("/me", response_model=MeResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> MeResponse:
    """Identity plus the tenants the principal holds a grant for."""
    roles = {g.tenant_id: g.role for g in await list_grants_for_principal(db, principal.id)}
    tenants = [
        MeTenant(slug=t.slug, name=t.name, role=roles[t.id])
        for t in await list_tenants_for_principal(db, principal.id)
    ]

    return MeResponse(
        id=str(principal.id),
        email=principal.email,
        full_name=principal.full_name,
        platform_role=principal.platform_role,
        is_active=principal.is_active,
        tenants=tenants,
    )
