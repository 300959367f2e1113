# backend/stockdb/security.py

"""
Security helpers for stockdb.

Identity and sessions are owned by the external auth service. This module only:
- decodes the bearer JWT that service issues,
- turns its claims into an explicit `EngineerContext`,
- exposes FastAPI dependencies for engineer-scoped routes.

`create_access_token` is kept for tests and local tooling.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from .context import EngineerContext

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

ENGINEER_ROLE = "engineer"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    The `data` dict should already include the subject, e.g.:
        {"sub": engineer_id, "name": "...", "role": "engineer"}
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def context_from_claims(payload: dict) -> EngineerContext:
    subject = payload.get("sub")
    if subject is None or not str(subject).strip():
        raise ValueError("token has no subject")
    return EngineerContext(
        engineer_id=str(subject).strip(),
        name=str(payload.get("name") or ""),
        location=payload.get("location"),
        role=str(payload.get("role") or ENGINEER_ROLE),
    )


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_context(token: str = Depends(oauth2_scheme)) -> EngineerContext:
    """
    Decode the JWT access token into an EngineerContext.

    The token is expected to contain a `sub` claim with the engineer id.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
        return context_from_claims(payload)
    except (JWTError, ValueError):
        raise _credentials_exception()


def get_current_engineer(
    ctx: EngineerContext = Depends(get_current_context),
) -> EngineerContext:
    """
    Dependency for engineer-scoped routes (requests, stock, usage reports).
    """
    if ctx.role != ENGINEER_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Engineer role required for this operation",
        )
    return ctx
