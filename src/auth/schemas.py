# src/auth/schemas.py

from enum import Enum
from pydantic import BaseModel


class ActorRole(str, Enum):
    """Who is acting on the clinic flow."""
    STAFF = "staff"          # front desk / nurses: check-in, enqueue, manual assignment
    CLINICIAN = "clinician"  # doctors: accept, complete, transfer their own visits
    ADMIN = "admin"
    SYSTEM = "system"        # background jobs such as the stale session reaper


class Actor(BaseModel):
    """Identity attached to every state change and audit event."""
    id: str
    role: ActorRole

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.role.value}:{self.id}"


SYSTEM_REAPER = Actor(id="stale-session-reaper", role=ActorRole.SYSTEM)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
