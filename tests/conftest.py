"""
Shared pytest fixtures.

Services are wired against the in-memory store and a manual clock, so every
test controls time explicitly and starts from an empty clinic.
"""

import uuid
from datetime import timedelta

import pytest

from src.auth.schemas import Actor, ActorRole
from src.common.audit import MemoryAuditSink
from src.common.clock import ManualClock
from src.common.container import ClinicServices
from src.common.events import ChangeNotifier
from src.common.patient_directory import PatientSummary, StaticPatientDirectory
from src.store.memory_store import InMemoryClinicStore


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def store(notifier) -> InMemoryClinicStore:
    return InMemoryClinicStore(notifier)


@pytest.fixture
def audit() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def patients() -> StaticPatientDirectory:
    return StaticPatientDirectory()


@pytest.fixture
def services(store, clock, audit, patients) -> ClinicServices:
    return ClinicServices.build(
        store=store,
        clock=clock,
        audit=audit,
        patients=patients,
        stale_threshold=timedelta(minutes=5),
        assign_max_attempts=2,
    )


# ============================================================================
# ACTORS
# ============================================================================


@pytest.fixture
def front_desk() -> Actor:
    return Actor(id="front-desk-1", role=ActorRole.STAFF)


@pytest.fixture
def doctor_a() -> uuid.UUID:
    return uuid.UUID("00000000-0000-0000-0000-00000000000a")


@pytest.fixture
def doctor_b() -> uuid.UUID:
    return uuid.UUID("00000000-0000-0000-0000-00000000000b")


# ============================================================================
# PATIENTS
# ============================================================================


@pytest.fixture
def named_patient(patients) -> PatientSummary:
    summary = PatientSummary(patient_ref=uuid.uuid4(), name="Adebayo Ogundimu", demographics={"age": "34"})
    patients.add(summary)
    return summary
