"""
kudos.api.deps — FastAPI dependency injection
==============================================

Staff authenticate with an HS256 bearer token whose payload carries
``sub`` (staff id) and ``role`` (``coach`` or the configured admin role).
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from kudos.config import KudosConfig, load_config
from kudos.database.engine import create_db_engine
from kudos.errors import AuthorizationError

_WEAK_SECRETS = frozenset({
    "kudos-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"
STAFF_ROLES = frozenset({"coach", "admin"})


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> KudosConfig:
    return load_config()


def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_staff(
    authorization: Annotated[str | None, Header()] = None,
    config: KudosConfig = Depends(get_config),
) -> dict:
    """Validate JWT and return the staff payload.

    401 for a missing or bad token; :class:`AuthorizationError` (403) for a
    role outside the staff set.
    """
    payload = _decode_bearer(authorization)
    if payload.get("role") not in STAFF_ROLES | {config.admin_role}:
        raise AuthorizationError("Not staff")
    return payload


def get_current_admin(
    staff: dict = Depends(get_current_staff),
    config: KudosConfig = Depends(get_config),
) -> dict:
    if staff.get("role") != config.admin_role:
        raise AuthorizationError("Not admin")
    return staff


def actor_of(payload: dict) -> str | None:
    """Value stored in ``created_by`` columns for the calling staff member."""
    sub = payload.get("sub")
    return str(sub)[:64] if sub is not None else None
