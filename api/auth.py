from __future__ import annotations

from dataclasses import dataclass
import os
from uuid import UUID

import jwt

from core.errors import ConfigurationError, NotAuthenticatedError


@dataclass(frozen=True)
class AuthConfig:
    jwt_secret: str = ""
    audience: str = "authenticated"


@dataclass(frozen=True)
class AuthenticatedUser:
    id: UUID
    email: str | None = None


def load_auth_config() -> AuthConfig:
    return AuthConfig(
        jwt_secret=os.getenv("SUPABASE_JWT_SECRET", "").strip(),
        audience=os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated").strip() or "authenticated",
    )


def authenticate(authorization: str | None, config: AuthConfig) -> AuthenticatedUser:
    """Resolve a ``Bearer <jwt>`` header issued by the auth provider to a user."""
    if not config.jwt_secret:
        raise ConfigurationError("SUPABASE_JWT_SECRET not configured")
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise NotAuthenticatedError()
    try:
        payload = jwt.decode(
            token.strip(),
            config.jwt_secret,
            algorithms=["HS256"],
            audience=config.audience,
        )
    except jwt.PyJWTError as exc:
        raise NotAuthenticatedError() from exc
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as exc:
        raise NotAuthenticatedError() from exc
    return AuthenticatedUser(id=user_id, email=payload.get("email"))
