"""Tests for the SQLAlchemy store against a throwaway SQLite database."""

import uuid
from dataclasses import replace
from datetime import timedelta, timezone

import pytest
import pytest_asyncio

from src.common.audit import MemoryAuditSink
from src.common.clock import ManualClock
from src.common.container import ClinicServices
from src.common.database.database import close_db_connection, create_engine_and_sessionmaker, create_tables
from src.common.exceptions import DuplicateActiveVisit, StaleWrite
from src.models.models import AvailabilityState, VisitPriority, VisitSession, VisitState
from src.modules.visits.state_machine import VisitEvent
from src.store.base import RecordChange, SessionFilter
from src.store.sql_store import SqlAlchemyClinicStore

from tests.helpers import clinician_actor, queued_visit


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    engine, session_factory = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path / 'clinic.db'}")
    await create_tables(engine)
    yield SqlAlchemyClinicStore(session_factory)
    await close_db_connection(engine)


@pytest.fixture
def sql_services(sql_store) -> ClinicServices:
    return ClinicServices.build(
        store=sql_store,
        clock=ManualClock(),
        audit=MemoryAuditSink(),
        stale_threshold=timedelta(minutes=5),
    )


def new_session(clock: ManualClock, patient_ref=None) -> VisitSession:
    now = clock.now()
    return VisitSession(
        id=uuid.uuid4(),
        patient_ref=patient_ref or uuid.uuid4(),
        service_type="general-consultation",
        priority=VisitPriority.NORMAL,
        state=VisitState.CHECKED_IN,
        check_in_time=now,
        service_day=clock.day_of(now),
        updated_at=now,
    )


class TestSqlStore:

    @pytest.mark.asyncio
    async def test_round_trip(self, sql_store):
        clock = ManualClock()
        session = new_session(clock)
        await sql_store.apply([RecordChange.create_session(session)])

        loaded = await sql_store.get_session(session.id)
        assert loaded == session
        assert loaded.check_in_time.tzinfo is not None
        assert loaded.check_in_time.astimezone(timezone.utc) == clock.now()

    @pytest.mark.asyncio
    async def test_versioned_update(self, sql_store):
        session = new_session(ManualClock())
        await sql_store.apply([RecordChange.create_session(session)])

        applied = await sql_store.apply([RecordChange.update_session(session, state=VisitState.QUEUED)])
        assert applied.session(session.id).version == 2
        assert applied.session(session.id).state is VisitState.QUEUED

        # Second writer computed its change from version 1
        with pytest.raises(StaleWrite):
            await sql_store.apply([RecordChange.update_session(session, state=VisitState.CANCELLED)])
        assert (await sql_store.get_session(session.id)).state is VisitState.QUEUED

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, sql_store):
        clock = ManualClock()
        session = new_session(clock)
        await sql_store.apply([RecordChange.create_session(session)])
        ghost = replace(new_session(clock), version=1)

        with pytest.raises(StaleWrite):
            await sql_store.apply([
                RecordChange.update_session(session, state=VisitState.QUEUED),
                RecordChange.update_session(ghost, state=VisitState.QUEUED),
            ])
        assert (await sql_store.get_session(session.id)).version == 1

    @pytest.mark.asyncio
    async def test_unique_active_session_per_patient_day(self, sql_store):
        clock = ManualClock()
        patient = uuid.uuid4()
        first = new_session(clock, patient)
        await sql_store.apply([RecordChange.create_session(first)])

        with pytest.raises(DuplicateActiveVisit) as exc_info:
            await sql_store.apply([RecordChange.create_session(new_session(clock, patient))])
        assert exc_info.value.existing_session_id == first.id

        await sql_store.apply([RecordChange.update_session(first, state=VisitState.CANCELLED)])
        assert await sql_store.find_active_session(patient, first.service_day) is None
        await sql_store.apply([RecordChange.create_session(new_session(clock, patient))])

    @pytest.mark.asyncio
    async def test_list_sessions_filters(self, sql_store):
        clock = ManualClock()
        kept = new_session(clock)
        cancelled = new_session(clock)
        await sql_store.apply([RecordChange.create_session(kept), RecordChange.create_session(cancelled)])
        await sql_store.apply([RecordChange.update_session(cancelled, state=VisitState.CANCELLED)])

        active = await sql_store.list_sessions(SessionFilter(service_day=kept.service_day))
        everything = await sql_store.list_sessions(SessionFilter(states=None))
        assert [s.id for s in active] == [kept.id]
        assert {s.id for s in everything} == {kept.id, cancelled.id}

    @pytest.mark.asyncio
    async def test_touch_only_logged_in_clinicians(self, sql_services, doctor_a):
        clock = sql_services.clock
        record = await sql_services.availability.login(doctor_a, clinician_actor(doctor_a))
        clock.advance(seconds=45)

        touched = await sql_services.store.touch_clinician(doctor_a, clock.now())
        assert touched.last_activity_time == clock.now()
        assert touched.version == record.version

        await sql_services.availability.logout(doctor_a, clinician_actor(doctor_a))
        assert await sql_services.store.touch_clinician(doctor_a, clock.now()) is None

    @pytest.mark.asyncio
    async def test_activity_guarded_update_fails_after_heartbeat(self, sql_services, doctor_a):
        clock = sql_services.clock
        store = sql_services.store
        seen = await sql_services.availability.login(doctor_a, clinician_actor(doctor_a))
        clock.advance(minutes=6)
        await store.touch_clinician(doctor_a, clock.now())

        offline = RecordChange.update_clinician(seen, state=AvailabilityState.OFFLINE)
        with pytest.raises(StaleWrite):
            await store.apply([offline.with_activity_guard(seen.last_activity_time)])
        assert (await store.get_clinician(doctor_a)).state is AvailabilityState.ONLINE

        fresh = await store.get_clinician(doctor_a)
        applied = await store.apply([
            RecordChange.update_clinician(fresh, state=AvailabilityState.OFFLINE)
            .with_activity_guard(fresh.last_activity_time)
        ])
        assert applied.clinician(doctor_a).state is AvailabilityState.OFFLINE


class TestServicesOnSql:

    @pytest.mark.asyncio
    async def test_full_visit_flow(self, sql_services, front_desk, doctor_a):
        services = sql_services
        doctor = clinician_actor(doctor_a)
        queued = await queued_visit(services, front_desk)
        await services.availability.login(doctor_a, doctor)

        started = await services.queue.assign_next(doctor_a, doctor)
        busy = await services.availability.get(doctor_a)
        assert started.id == queued.id
        assert busy.state is AvailabilityState.BUSY
        assert busy.current_visit_ref == queued.id

        completed = await services.sessions.transition(started.id, VisitEvent.COMPLETE, doctor)
        assert completed.state is VisitState.COMPLETED
        assert (await services.availability.get(doctor_a)).state is AvailabilityState.ONLINE

    @pytest.mark.asyncio
    async def test_reaper_requeues(self, sql_services, front_desk, doctor_a):
        services = sql_services
        await queued_visit(services, front_desk)
        await services.availability.login(doctor_a, clinician_actor(doctor_a))
        session = await services.queue.assign_next(doctor_a, clinician_actor(doctor_a))
        services.clock.advance(minutes=6)

        report = await services.reaper.sweep()
        assert report.requeued_visits == [session.id]
        assert (await services.sessions.get(session.id)).state is VisitState.QUEUED
        assert (await services.availability.get(doctor_a)).state is AvailabilityState.OFFLINE

    @pytest.mark.asyncio
    async def test_duplicate_check_in(self, sql_services, front_desk):
        patient = uuid.uuid4()
        first = await sql_services.sessions.check_in(patient, "antenatal", VisitPriority.NORMAL, front_desk)

        with pytest.raises(DuplicateActiveVisit) as exc_info:
            await sql_services.sessions.check_in(patient, "antenatal", VisitPriority.NORMAL, front_desk)
        assert exc_info.value.existing_session_id == first.id
