from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from cityatlas.core.config import settings

bearer_scheme = HTTPBearer(auto_error=True)
# public endpoints: a token is honoured when present, never required
optional_bearer_scheme = HTTPBearer(auto_error=False)


def _normalize_token(token: Optional[str]) -> str:
    """
    Tolerate copy-paste noise: whitespace, surrounding quotes and an
    accidental 'Bearer ' prefix in the token field.
    """
    if token is None:
        return ""

    t = token.strip()
    if (t.startswith('"') and t.endswith('"')) or (t.startswith("'") and t.endswith("'")):
        t = t[1:-1].strip()
    if t.lower().startswith("bearer "):
        t = t[7:].strip()
    return t


def _unauthorized(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def create_access_token(principal_id: uuid.UUID, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    expire_dt = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode: dict[str, Any] = {
        "sub": str(principal_id),
        "exp": int(expire_dt.timestamp()),
        "iat": int(now.timestamp()),
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: Optional[str]) -> uuid.UUID:
    """
    Returns the principal id carried in `sub`. Roles are never read from the
    token; they are loaded from the store on every request.
    """
    token = _normalize_token(token)
    if not token:
        raise _unauthorized()

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError:
        # expired, malformed, bad signature, wrong algorithm
        raise _unauthorized() from None

    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid token subject") from None
