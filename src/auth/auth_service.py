# src/auth/auth_service.py

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import jwt

from src.auth.schemas import Actor, ActorRole
from src.common.config import settings


def create_access_token(actor: Actor, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT for an actor, including an expiration date."""
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta else timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    )
    to_encode = {"sub": actor.id, "role": actor.role.value, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Actor:
    """Decode a JWT into an actor.

    Raises ``jwt.InvalidTokenError`` (or a subclass) when the token is expired,
    malformed, or lacks the subject/role claims.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    subject = payload.get("sub")
    role = payload.get("role")
    if subject is None or role is None:
        raise jwt.InvalidTokenError("Token is missing subject or role")
    try:
        actor_role = ActorRole(role)
    except ValueError as exc:
        raise jwt.InvalidTokenError(f"Unknown role {role!r}") from exc

    # Clinician subjects double as availability record keys
    if actor_role is ActorRole.CLINICIAN:
        try:
            UUID(str(subject))
        except ValueError as exc:
            raise jwt.InvalidTokenError("Clinician subject must be a UUID") from exc
    return Actor(id=str(subject), role=actor_role)
