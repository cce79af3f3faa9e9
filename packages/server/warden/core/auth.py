"""
Authentication provider binding.

Warden never issues credentials. Requests carry a bearer JWT minted by the
external identity service; this module verifies it and turns its claims into
a ``Principal`` (the ``current_principal()`` interface of the core).
"""

from __future__ import annotations

import uuid
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from warden.core.config import Settings
from warden.core.errors import Unauthenticated
from warden_shared.schemas.principals import Principal

log = structlog.get_logger()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def decode_jwt(token: str, settings: Settings) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    options = {"require": ["sub", "exp"]}
    if settings.jwt_audience:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        options={**options, "verify_aud": False},
    )


def principal_from_token(token: str, settings: Settings) -> Principal:
    try:
        payload = decode_jwt(token, settings)
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid or expired credentials")

    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise Unauthenticated("Invalid subject claim")

    return Principal(user_id=user_id, email=payload.get("email"))


async def get_current_principal(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
) -> Principal:
    """FastAPI dependency: the authenticated principal or Unauthenticated."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated()

    token = authorization[7:].strip()
    principal = principal_from_token(token, request.app.state.settings)
    structlog.contextvars.bind_contextvars(user_id=str(principal.user_id))
    return principal
