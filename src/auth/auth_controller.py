# src/auth/auth_controller.py

from fastapi import APIRouter, Depends

from src.auth.dependencies import get_current_actor
from src.auth.schemas import Actor

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/me", response_model=Actor)
async def get_current_actor_info(actor: Actor = Depends(get_current_actor)):
    """Return the actor encoded in the bearer token."""
    return actor
