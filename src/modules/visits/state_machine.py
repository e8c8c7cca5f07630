# src/modules/visits/state_machine.py
"""
Transition rules for visit sessions.

Every change to a visit session's state is planned here. A plan is the full
set of record writes for one transition: the session itself plus any
clinician availability records it pairs with (the clinician accepting a
visit becomes BUSY, the clinician finishing one becomes ONLINE again). The
caller applies the plan's changes as one atomic batch, so a visit is never
STARTED while its clinician is not BUSY, or the other way round.

The planner does no I/O; it only reads the snapshots it is given.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from src.common.exceptions import IllegalTransition
from src.common.utils.global_messages import GlobalMessages
from src.models.models import (
    ACTIVE_VISIT_STATES, AvailabilityState, BusyReason, ClinicianAvailability, VisitSession, VisitState,
)
from src.store.base import RecordChange


class VisitEvent(str, Enum):
    ENQUEUE = "enqueue"
    ASSIGN = "assign"
    COMPLETE = "complete"
    TRANSFER = "transfer"
    CANCEL = "cancel"
    FORCE_REAP = "force-reap"  # stale session reaper only
    RELEASE = "release"        # clinician logs out and hands the visit back


TRANSITIONS: Dict[Tuple[VisitState, VisitEvent], VisitState] = {
    (VisitState.CHECKED_IN, VisitEvent.ENQUEUE): VisitState.QUEUED,
    (VisitState.QUEUED, VisitEvent.ASSIGN): VisitState.STARTED,
    (VisitState.STARTED, VisitEvent.COMPLETE): VisitState.COMPLETED,
    (VisitState.STARTED, VisitEvent.TRANSFER): VisitState.STARTED,
    (VisitState.CHECKED_IN, VisitEvent.CANCEL): VisitState.CANCELLED,
    (VisitState.QUEUED, VisitEvent.CANCEL): VisitState.CANCELLED,
    (VisitState.STARTED, VisitEvent.RELEASE): VisitState.QUEUED,
}
# Forced requeue is accepted from every non-terminal state.
TRANSITIONS.update({(state, VisitEvent.FORCE_REAP): VisitState.QUEUED for state in ACTIVE_VISIT_STATES})


@dataclass
class TransitionPlan:
    session: VisitSession
    event: VisitEvent
    next_state: VisitState
    changes: List[RecordChange] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


class VisitStateMachine:

    def next_state(self, state: VisitState, event: VisitEvent, transfer_target: bool = True) -> VisitState:
        """Look up the transition table; raise ``IllegalTransition`` for unknown pairs."""
        next_state = TRANSITIONS.get((state, event))
        if next_state is None:
            raise IllegalTransition(
                state, event,
                message=f"Cannot {event.value} a visit that is {state.value}.",
            )
        if event is VisitEvent.TRANSFER and not transfer_target:
            return VisitState.TRANSFERRED
        return next_state

    def can_apply(self, state: VisitState, event: VisitEvent) -> bool:
        return (state, event) in TRANSITIONS

    def plan(
        self,
        session: VisitSession,
        event: VisitEvent,
        now: datetime,
        clinician: Optional[ClinicianAvailability] = None,
        target: Optional[ClinicianAvailability] = None,
        reason: Optional[str] = None,
    ) -> TransitionPlan:
        """
        Build the writes for applying ``event`` to ``session``.

        Args:
            session: Snapshot of the visit session.
            event: The event to apply.
            now: Transition timestamp.
            clinician: Availability record of the clinician currently holding
                the visit (COMPLETE, TRANSFER, RELEASE, FORCE_REAP).
            target: Availability record of the clinician taking the visit
                (ASSIGN, TRANSFER to another clinician).
            reason: Free-text reason (CANCEL, TRANSFER, FORCE_REAP).
        """
        next_state = self.next_state(session.state, event, transfer_target=target is not None)
        plan = TransitionPlan(
            session=session,
            event=event,
            next_state=next_state,
            metadata={"from_state": session.state.value, "to_state": next_state.value},
        )
        if reason:
            plan.metadata["reason"] = reason

        builder = getattr(self, f"_plan_{event.name.lower()}")
        builder(plan, now, clinician, target, reason)
        return plan

    # ------------------------------------------------------------ per event

    def _plan_enqueue(self, plan, now, clinician, target, reason):
        plan.changes.append(RecordChange.update_session(
            plan.session, state=VisitState.QUEUED, queued_at=now, updated_at=now,
        ))

    def _plan_assign(self, plan, now, clinician, target, reason):
        self._require_available(plan.session, plan.event, target)
        plan.changes.append(RecordChange.update_session(
            plan.session,
            state=VisitState.STARTED,
            assigned_clinician_ref=target.clinician_ref,
            started_at=now,
            updated_at=now,
        ))
        plan.changes.append(self._occupy(target, plan.session, now))
        plan.metadata["clinician_ref"] = str(target.clinician_ref)

    def _plan_complete(self, plan, now, clinician, target, reason):
        plan.changes.append(RecordChange.update_session(
            plan.session, state=VisitState.COMPLETED, completed_at=now, updated_at=now,
        ))
        self._release_holder(plan, clinician, now, AvailabilityState.ONLINE)

    def _plan_transfer(self, plan, now, clinician, target, reason):
        if target is None:
            # Hand-off outside the clinic flow ends the visit here
            plan.changes.append(RecordChange.update_session(
                plan.session, state=VisitState.TRANSFERRED, transferred_at=now, updated_at=now,
            ))
            self._release_holder(plan, clinician, now, AvailabilityState.ONLINE)
            return

        if target.clinician_ref == plan.session.assigned_clinician_ref:
            raise IllegalTransition(
                plan.session.state, plan.event,
                message="Visit is already assigned to this clinician.",
            )
        self._require_available(plan.session, plan.event, target)
        plan.changes.append(RecordChange.update_session(
            plan.session, assigned_clinician_ref=target.clinician_ref, updated_at=now,
        ))
        self._release_holder(plan, clinician, now, AvailabilityState.ONLINE)
        plan.changes.append(self._occupy(target, plan.session, now))
        plan.metadata["clinician_ref"] = str(target.clinician_ref)

    def _plan_cancel(self, plan, now, clinician, target, reason):
        plan.changes.append(RecordChange.update_session(
            plan.session,
            state=VisitState.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason,
            updated_at=now,
        ))

    def _plan_force_reap(self, plan, now, clinician, target, reason):
        self._requeue(plan, now)
        self._release_holder(plan, clinician, now, AvailabilityState.OFFLINE)

    def _plan_release(self, plan, now, clinician, target, reason):
        self._requeue(plan, now)
        self._release_holder(plan, clinician, now, AvailabilityState.OFFLINE)

    # -------------------------------------------------------------- helpers

    @staticmethod
    def _requeue(plan: TransitionPlan, now: datetime) -> None:
        # The patient keeps their original place in the queue
        plan.changes.append(RecordChange.update_session(
            plan.session,
            state=VisitState.QUEUED,
            assigned_clinician_ref=None,
            started_at=None,
            queued_at=plan.session.queued_at or now,
            updated_at=now,
        ))

    @staticmethod
    def _require_available(session: VisitSession, event: VisitEvent, target: Optional[ClinicianAvailability]) -> None:
        if target is None or target.state is not AvailabilityState.ONLINE or target.current_visit_ref is not None:
            raise IllegalTransition(session.state, event, message=GlobalMessages.CLINICIAN_NOT_AVAILABLE)

    @staticmethod
    def _occupy(target: ClinicianAvailability, session: VisitSession, now: datetime) -> RecordChange:
        return RecordChange.update_clinician(
            target,
            state=AvailabilityState.BUSY,
            busy_reason=BusyReason.ASSIGNMENT,
            current_visit_ref=session.id,
            last_activity_time=now,
            updated_at=now,
        )

    @staticmethod
    def _release_holder(
        plan: TransitionPlan,
        clinician: Optional[ClinicianAvailability],
        now: datetime,
        to_state: AvailabilityState,
    ) -> None:
        """Free the clinician holding the visit, if the record still says so."""
        if clinician is None or clinician.current_visit_ref != plan.session.id:
            return
        values = dict(
            state=to_state,
            busy_reason=None,
            current_visit_ref=None,
            updated_at=now,
        )
        if to_state is AvailabilityState.OFFLINE:
            values["logout_time"] = now
        plan.changes.append(RecordChange.update_clinician(clinician, **values))
        plan.metadata["released_clinician_ref"] = str(clinician.clinician_ref)
