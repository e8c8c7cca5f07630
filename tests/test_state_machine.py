"""Tests for the visit transition table and planner."""

import uuid
from datetime import datetime, timezone

import pytest

from src.common.exceptions import IllegalTransition
from src.models.models import (
    AvailabilityState, BusyReason, ClinicianAvailability, VisitPriority, VisitSession, VisitState,
)
from src.modules.visits.state_machine import TRANSITIONS, VisitEvent, VisitStateMachine
from src.store.base import RecordKind

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
DOCTOR_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
DOCTOR_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")


def make_session(state: VisitState, **overrides) -> VisitSession:
    values = dict(
        id=uuid.uuid4(),
        patient_ref=uuid.uuid4(),
        service_type="general-consultation",
        priority=VisitPriority.NORMAL,
        state=state,
        check_in_time=datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc),
        service_day=NOW.date(),
        version=3,
    )
    values.update(overrides)
    return VisitSession(**values)


def online(ref=DOCTOR_A) -> ClinicianAvailability:
    return ClinicianAvailability(clinician_ref=ref, state=AvailabilityState.ONLINE, login_time=NOW, last_activity_time=NOW)


def busy_with(session: VisitSession, ref=DOCTOR_A) -> ClinicianAvailability:
    return ClinicianAvailability(
        clinician_ref=ref,
        state=AvailabilityState.BUSY,
        current_visit_ref=session.id,
        busy_reason=BusyReason.ASSIGNMENT,
        login_time=NOW,
        last_activity_time=NOW,
        version=5,
    )


@pytest.fixture
def machine() -> VisitStateMachine:
    return VisitStateMachine()


class TestTransitionTable:

    @pytest.mark.parametrize("state, event, expected", [
        (VisitState.CHECKED_IN, VisitEvent.ENQUEUE, VisitState.QUEUED),
        (VisitState.QUEUED, VisitEvent.ASSIGN, VisitState.STARTED),
        (VisitState.STARTED, VisitEvent.COMPLETE, VisitState.COMPLETED),
        (VisitState.CHECKED_IN, VisitEvent.CANCEL, VisitState.CANCELLED),
        (VisitState.QUEUED, VisitEvent.CANCEL, VisitState.CANCELLED),
        (VisitState.STARTED, VisitEvent.FORCE_REAP, VisitState.QUEUED),
        (VisitState.STARTED, VisitEvent.RELEASE, VisitState.QUEUED),
    ])
    def test_allowed(self, machine, state, event, expected):
        assert machine.next_state(state, event) is expected

    def test_transfer_without_target_ends_visit(self, machine):
        assert machine.next_state(VisitState.STARTED, VisitEvent.TRANSFER, transfer_target=False) is VisitState.TRANSFERRED
        assert machine.next_state(VisitState.STARTED, VisitEvent.TRANSFER, transfer_target=True) is VisitState.STARTED

    @pytest.mark.parametrize("state, event", [
        (VisitState.CHECKED_IN, VisitEvent.ASSIGN),
        (VisitState.QUEUED, VisitEvent.ENQUEUE),
        (VisitState.QUEUED, VisitEvent.COMPLETE),
        (VisitState.STARTED, VisitEvent.CANCEL),
        (VisitState.CHECKED_IN, VisitEvent.TRANSFER),
    ])
    def test_rejected(self, machine, state, event):
        with pytest.raises(IllegalTransition) as exc_info:
            machine.next_state(state, event)
        assert exc_info.value.current_state is state
        assert exc_info.value.event is event

    @pytest.mark.parametrize("terminal", [VisitState.COMPLETED, VisitState.CANCELLED, VisitState.TRANSFERRED])
    def test_terminal_states_accept_nothing(self, machine, terminal):
        for event in VisitEvent:
            assert not machine.can_apply(terminal, event)

    def test_force_reap_never_targets_terminal_state(self):
        for (state, event), _ in TRANSITIONS.items():
            if event is VisitEvent.FORCE_REAP:
                assert not state.is_terminal


class TestPlans:

    def test_assign_pairs_session_and_clinician(self, machine):
        session = make_session(VisitState.QUEUED, queued_at=NOW)
        plan = machine.plan(session, VisitEvent.ASSIGN, NOW, target=online())

        assert [c.kind for c in plan.changes] == [RecordKind.VISIT_SESSION, RecordKind.CLINICIAN]
        session_change, clinician_change = plan.changes
        assert session_change.expected_version == 3
        assert session_change.values["state"] is VisitState.STARTED
        assert session_change.values["assigned_clinician_ref"] == DOCTOR_A
        assert clinician_change.values["state"] is AvailabilityState.BUSY
        assert clinician_change.values["current_visit_ref"] == session.id
        assert clinician_change.values["busy_reason"] is BusyReason.ASSIGNMENT

    def test_assign_requires_online_clinician(self, machine):
        session = make_session(VisitState.QUEUED)
        other = make_session(VisitState.STARTED)

        with pytest.raises(IllegalTransition):
            machine.plan(session, VisitEvent.ASSIGN, NOW, target=busy_with(other))
        with pytest.raises(IllegalTransition):
            machine.plan(session, VisitEvent.ASSIGN, NOW, target=None)

    def test_complete_frees_clinician(self, machine):
        session = make_session(VisitState.STARTED, assigned_clinician_ref=DOCTOR_A)
        plan = machine.plan(session, VisitEvent.COMPLETE, NOW, clinician=busy_with(session))

        clinician_change = plan.changes[1]
        assert clinician_change.expected_version == 5
        assert clinician_change.values["state"] is AvailabilityState.ONLINE
        assert clinician_change.values["current_visit_ref"] is None

    def test_complete_leaves_unrelated_clinician_alone(self, machine):
        session = make_session(VisitState.STARTED, assigned_clinician_ref=DOCTOR_A)
        elsewhere = busy_with(make_session(VisitState.STARTED))
        plan = machine.plan(session, VisitEvent.COMPLETE, NOW, clinician=elsewhere)

        assert len(plan.changes) == 1

    def test_transfer_to_colleague_moves_busy_flag(self, machine):
        session = make_session(VisitState.STARTED, assigned_clinician_ref=DOCTOR_A)
        plan = machine.plan(
            session, VisitEvent.TRANSFER, NOW,
            clinician=busy_with(session), target=online(DOCTOR_B), reason="needs paediatrics",
        )

        assert plan.next_state is VisitState.STARTED
        by_key = {c.key: c for c in plan.changes}
        assert by_key[session.id].values["assigned_clinician_ref"] == DOCTOR_B
        assert by_key[DOCTOR_A].values["state"] is AvailabilityState.ONLINE
        assert by_key[DOCTOR_B].values["state"] is AvailabilityState.BUSY
        assert plan.metadata["reason"] == "needs paediatrics"

    def test_transfer_to_same_clinician_rejected(self, machine):
        session = make_session(VisitState.STARTED, assigned_clinician_ref=DOCTOR_A)
        with pytest.raises(IllegalTransition):
            machine.plan(session, VisitEvent.TRANSFER, NOW, clinician=busy_with(session), target=online(DOCTOR_A))

    def test_transfer_out_of_clinic(self, machine):
        session = make_session(VisitState.STARTED, assigned_clinician_ref=DOCTOR_A)
        plan = machine.plan(session, VisitEvent.TRANSFER, NOW, clinician=busy_with(session))

        assert plan.next_state is VisitState.TRANSFERRED
        assert plan.changes[0].values["transferred_at"] == NOW
        assert plan.changes[1].values["state"] is AvailabilityState.ONLINE

    def test_cancel_records_reason(self, machine):
        session = make_session(VisitState.QUEUED)
        plan = machine.plan(session, VisitEvent.CANCEL, NOW, reason="left the clinic")

        assert plan.changes[0].values["cancellation_reason"] == "left the clinic"
        assert plan.changes[0].values["cancelled_at"] == NOW

    def test_force_reap_keeps_queue_position(self, machine):
        queued_at = datetime(2025, 1, 6, 8, 5, tzinfo=timezone.utc)
        session = make_session(VisitState.STARTED, assigned_clinician_ref=DOCTOR_A, queued_at=queued_at)
        plan = machine.plan(session, VisitEvent.FORCE_REAP, NOW, clinician=busy_with(session))

        session_change, clinician_change = plan.changes
        assert session_change.values["state"] is VisitState.QUEUED
        assert session_change.values["assigned_clinician_ref"] is None
        assert session_change.values["queued_at"] == queued_at
        assert clinician_change.values["state"] is AvailabilityState.OFFLINE
        assert clinician_change.values["logout_time"] == NOW
