# src/auth/dependencies.py

from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt

from src.auth.auth_service import decode_access_token
from src.auth.schemas import Actor, ActorRole
from src.common.utils.global_messages import GlobalMessages

bearer_scheme = HTTPBearer()

async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Actor:
    """
    Dependency to retrieve the acting staff member or clinician from the JWT in the Authorization header.
    """
    token = credentials.credentials

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=GlobalMessages.INVALID_CREDENTIALS,
        headers={"WWW-Authenticate": "Bearer"}
    )
    try:
        return decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise credentials_exception
    except jwt.InvalidTokenError:
        raise credentials_exception


def require_roles(*roles: ActorRole) -> Callable:
    """Dependency factory restricting a route to the given roles (admins always pass)."""
    allowed = set(roles) | {ActorRole.ADMIN}

    async def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=GlobalMessages.FORBIDDEN)
        return actor

    return checker
