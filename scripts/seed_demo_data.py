# scripts/seed_demo_data.py
"""
Demo seed script for the clinic flow API.

Recreates a Monday morning at the walk-in clinic:
- Two doctors log in, a third has not arrived yet
- Five patients check in at the front desk, four are sent to the waiting room
- Dr. Adeyemi takes the first patient off the queue

Prints bearer tokens for a front desk user, each doctor and an admin so the
API can be explored from /docs straight away.

Run: python -m scripts.seed_demo_data
"""

import asyncio
import uuid

from sqlalchemy import delete

from src.auth.auth_service import create_access_token
from src.auth.schemas import Actor, ActorRole
from src.common.config import settings
from src.common.container import ClinicServices
from src.common.database.database import close_db_connection, create_engine_and_sessionmaker, create_tables
from src.models.models import ClinicianAvailabilityRow, VisitPriority, VisitSessionRow
from src.modules.visits.state_machine import VisitEvent
from src.store.sql_store import SqlAlchemyClinicStore


# =============================================================================
# CONSTANTS - Demo identities
# =============================================================================

FRONT_DESK = Actor(id="front-desk-ngozi", role=ActorRole.STAFF)
ADMIN = Actor(id="admin", role=ActorRole.ADMIN)

DOCTORS = {
    "Dr. Emeka Adeyemi": uuid.UUID("7d3c6a52-1f0e-4c8e-9a51-5b0b8f1c2a01"),
    "Dr. Funmi Bello": uuid.UUID("7d3c6a52-1f0e-4c8e-9a51-5b0b8f1c2a02"),
    "Dr. Tunde Okafor": uuid.UUID("7d3c6a52-1f0e-4c8e-9a51-5b0b8f1c2a03"),
}

# (patient name, service type, priority, send to waiting room)
WALK_INS = [
    ("Adebayo Ogundimu", "general-consultation", VisitPriority.NORMAL, True),
    ("Chiamaka Obi", "general-consultation", VisitPriority.NORMAL, True),
    ("Ibrahim Musa", "wound-dressing", VisitPriority.PRIORITY, True),
    ("Aisha Bello", "antenatal", VisitPriority.NORMAL, True),
    ("Kunle Adewale", "general-consultation", VisitPriority.NORMAL, False),
]


# =============================================================================
# SEEDING
# =============================================================================

async def clear_existing_data(services: ClinicServices, session_factory):
    """Clear clinic flow tables."""
    print("🧹 Clearing existing data...")
    async with session_factory() as db:
        async with db.begin():
            await db.execute(delete(VisitSessionRow))
            await db.execute(delete(ClinicianAvailabilityRow))
    print("✅ Data cleared")


async def seed_clinicians(services: ClinicServices):
    print("👨‍⚕️ Logging in doctors...")
    for name, ref in list(DOCTORS.items())[:2]:
        await services.availability.login(ref, Actor(id=str(ref), role=ActorRole.CLINICIAN))
        print(f"   {name} is online")


async def seed_walk_ins(services: ClinicServices):
    print("🚶 Checking in walk-in patients...")
    for name, service_type, priority, enqueue in WALK_INS:
        session = await services.sessions.check_in(uuid.uuid4(), service_type, priority, FRONT_DESK)
        if enqueue:
            await services.sessions.transition(session.id, VisitEvent.ENQUEUE, FRONT_DESK)
        print(f"   {name}: {service_type} ({priority.value}){' -> waiting room' if enqueue else ''}")


async def seed_first_assignment(services: ClinicServices):
    print("🩺 Dr. Adeyemi calls the next patient...")
    doctor_ref = DOCTORS["Dr. Emeka Adeyemi"]
    session = await services.queue.assign_next(doctor_ref, Actor(id=str(doctor_ref), role=ActorRole.CLINICIAN))
    print(f"   Visit {session.id} started ({session.service_type}, {session.priority.value})")


async def seed_all_data(services: ClinicServices, session_factory):
    print("\n🌱 Starting Clinic Flow Demo Seed")
    print("=" * 50)

    await clear_existing_data(services, session_factory)
    await seed_clinicians(services)
    await seed_walk_ins(services)
    await seed_first_assignment(services)

    stats = await services.sessions.queue_stats()
    print("\n" + "=" * 50)
    print(f"✅ Seed complete! {stats['waiting']} waiting, {stats['in_progress']} in progress")
    print("   Bearer tokens:")
    print(f"   Front desk: {create_access_token(FRONT_DESK)}")
    for name, ref in DOCTORS.items():
        print(f"   {name}: {create_access_token(Actor(id=str(ref), role=ActorRole.CLINICIAN))}")
    print(f"   Admin: {create_access_token(ADMIN)}")
    print("=" * 50 + "\n")


# =============================================================================
# MAIN
# =============================================================================

async def main():
    """Run the seed script."""
    engine, session_factory = create_engine_and_sessionmaker(settings.DATABASE_URL)
    try:
        await create_tables(engine)
        services = ClinicServices.from_settings(settings, SqlAlchemyClinicStore(session_factory))
        await seed_all_data(services, session_factory)
    except Exception as e:
        print(f"\n❌ Error during seeding: {e}")
        raise
    finally:
        await close_db_connection(engine)


if __name__ == "__main__":
    asyncio.run(main())
