"""End-to-end walk-in flows across check-in, queue, availability and reaper."""

import uuid

import pytest

from src.common.exceptions import DuplicateActiveVisit
from src.models.models import AvailabilityState, VisitPriority, VisitState
from src.modules.visits.state_machine import VisitEvent

from tests.helpers import clinician_actor


@pytest.mark.asyncio
async def test_patient_seen_and_discharged(services, front_desk, doctor_a):
    patient = uuid.uuid4()
    doctor = clinician_actor(doctor_a)

    session = await services.sessions.check_in(patient, "general-consultation", VisitPriority.NORMAL, front_desk)
    assert session.state is VisitState.CHECKED_IN

    session = await services.sessions.transition(session.id, VisitEvent.ENQUEUE, front_desk)
    assert session.state is VisitState.QUEUED

    clinician = await services.availability.login(doctor_a, doctor)
    assert clinician.state is AvailabilityState.ONLINE

    started = await services.queue.assign_next(doctor_a, doctor)
    clinician = await services.availability.get(doctor_a)
    assert started.id == session.id
    assert started.state is VisitState.STARTED
    assert clinician.state is AvailabilityState.BUSY
    assert clinician.current_visit_ref == session.id

    completed = await services.sessions.transition(session.id, VisitEvent.COMPLETE, doctor)
    clinician = await services.availability.get(doctor_a)
    assert completed.state is VisitState.COMPLETED
    assert clinician.state is AvailabilityState.ONLINE
    assert clinician.current_visit_ref is None


@pytest.mark.asyncio
async def test_second_check_in_same_day_rejected(services, front_desk):
    patient = uuid.uuid4()
    first = await services.sessions.check_in(patient, "general-consultation", VisitPriority.NORMAL, front_desk)
    await services.sessions.transition(first.id, VisitEvent.ENQUEUE, front_desk)

    with pytest.raises(DuplicateActiveVisit) as exc_info:
        await services.sessions.check_in(patient, "general-consultation", VisitPriority.NORMAL, front_desk)
    assert exc_info.value.existing_session_id == first.id


@pytest.mark.asyncio
async def test_silent_clinician_is_reaped(services, front_desk, doctor_a, clock):
    doctor = clinician_actor(doctor_a)
    session = await services.sessions.check_in(uuid.uuid4(), "general-consultation", VisitPriority.NORMAL, front_desk)
    await services.sessions.transition(session.id, VisitEvent.ENQUEUE, front_desk)
    await services.availability.login(doctor_a, doctor)
    await services.queue.assign_next(doctor_a, doctor)

    clock.advance(minutes=6)
    await services.reaper.sweep()

    clinician = await services.availability.get(doctor_a)
    session = await services.sessions.get(session.id)
    assert clinician.state is AvailabilityState.OFFLINE
    assert session.state is VisitState.QUEUED
    assert session.assigned_clinician_ref is None

    # The patient is picked up again by the next clinician
    other = uuid.uuid4()
    await services.availability.login(other, clinician_actor(other))
    again = await services.queue.assign_next(other, clinician_actor(other))
    assert again.id == session.id
    assert again.assigned_clinician_ref == other


@pytest.mark.asyncio
async def test_started_visits_always_have_busy_clinicians(services, front_desk, doctor_a, doctor_b, clock):
    """After any mix of operations, STARTED visits and BUSY clinicians point at each other."""
    a, b = clinician_actor(doctor_a), clinician_actor(doctor_b)
    for _ in range(4):
        session = await services.sessions.check_in(uuid.uuid4(), "general-consultation", VisitPriority.NORMAL, front_desk)
        await services.sessions.transition(session.id, VisitEvent.ENQUEUE, front_desk)
        clock.advance(seconds=30)
    await services.availability.login(doctor_a, a)
    await services.availability.login(doctor_b, b)

    first = await services.queue.assign_next(doctor_a, a)
    await services.queue.assign_next(doctor_b, b)
    await services.sessions.transition(first.id, VisitEvent.COMPLETE, a)
    third = await services.queue.assign_next(doctor_a, a)
    await services.availability.logout(doctor_b, b, force_release=True)
    await services.sessions.transition(third.id, VisitEvent.TRANSFER, a)

    sessions = {s.id: s for s in await services.sessions.list_active()}
    clinicians = await services.availability.list_all()
    for clinician in clinicians:
        if clinician.state is AvailabilityState.BUSY:
            held = sessions[clinician.current_visit_ref]
            assert held.state is VisitState.STARTED
            assert held.assigned_clinician_ref == clinician.clinician_ref
    for session in sessions.values():
        if session.state is VisitState.STARTED:
            holder = next(c for c in clinicians if c.clinician_ref == session.assigned_clinician_ref)
            assert holder.state is AvailabilityState.BUSY
            assert holder.current_visit_ref == session.id
