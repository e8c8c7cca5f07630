"""Test helpers shared across modules."""

import asyncio
import uuid

from src.auth.schemas import Actor, ActorRole
from src.common.container import ClinicServices
from src.models.models import VisitPriority
from src.modules.visits.state_machine import VisitEvent
from src.store.memory_store import InMemoryClinicStore


def clinician_actor(ref: uuid.UUID) -> Actor:
    return Actor(id=str(ref), role=ActorRole.CLINICIAN)


async def queued_visit(services: ClinicServices, actor: Actor, priority=VisitPriority.NORMAL, patient_ref=None):
    """Check a new patient in and send them to the waiting room."""
    session = await services.sessions.check_in(
        patient_ref or uuid.uuid4(), "general-consultation", priority, actor,
    )
    return await services.sessions.transition(session.id, VisitEvent.ENQUEUE, actor)


class YieldingStore(InMemoryClinicStore):
    """In-memory store that yields to the event loop on every read.

    Lets ``asyncio.gather`` interleave two callers between their reads and
    their writes, the way two requests against a database would.
    """

    async def get_session(self, session_id):
        await asyncio.sleep(0)
        return await super().get_session(session_id)

    async def get_clinician(self, clinician_ref):
        await asyncio.sleep(0)
        return await super().get_clinician(clinician_ref)

    async def list_sessions(self, session_filter):
        await asyncio.sleep(0)
        return await super().list_sessions(session_filter)

    async def find_active_session(self, patient_ref, service_day):
        await asyncio.sleep(0)
        return await super().find_active_session(patient_ref, service_day)
