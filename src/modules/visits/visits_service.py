# src/modules/visits/visits_service.py
"""Visit session store: check-in, lookups and the single mutation path."""

import logging
from collections import Counter
from datetime import date
from typing import Dict, Iterator, List, Optional
from uuid import UUID

from src.auth.schemas import Actor, ActorRole
from src.common.audit import AuditEvent, AuditSink, record_audit
from src.common.clock import Clock
from src.common.exceptions import DuplicateActiveVisit, IllegalTransition, NotFound, StaleWrite
from src.common.utils.global_messages import GlobalMessages
from src.models.models import VisitPriority, VisitSession, VisitState
from src.store.base import ClinicStore, RecordChange, SessionFilter

from .state_machine import VisitEvent, VisitStateMachine

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Durable record of every check-in and its lifecycle state.

    ``transition()`` is the only way a session changes after check-in; it
    delegates legality to ``VisitStateMachine`` and applies the resulting
    session and clinician writes as one atomic batch.
    """

    def __init__(
        self,
        store: ClinicStore,
        clock: Clock,
        audit: AuditSink,
        machine: Optional[VisitStateMachine] = None,
    ):
        self.store = store
        self.clock = clock
        self.audit = audit
        self.machine = machine or VisitStateMachine()

    async def check_in(
        self,
        patient_ref: UUID,
        service_type: str,
        priority: VisitPriority,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> VisitSession:
        """Create a CHECKED_IN session; raises ``DuplicateActiveVisit`` if the patient already has one today."""
        now = self.clock.now()
        service_day = self.clock.day_of(now)

        existing = await self.store.find_active_session(patient_ref, service_day)
        if existing is not None:
            logger.info("Patient %s already checked in as session %s", patient_ref, existing.id)
            raise DuplicateActiveVisit(existing.id)

        session = VisitSession(
            id=self.clock.new_id(),
            patient_ref=patient_ref,
            service_type=service_type,
            priority=priority,
            state=VisitState.CHECKED_IN,
            check_in_time=now,
            service_day=service_day,
            notes=notes,
            created_by=str(actor),
            updated_at=now,
        )
        # The store re-checks the one-active-session rule atomically
        applied = await self.store.apply([RecordChange.create_session(session)], occurred_at=now)
        created = applied.session(session.id)

        record_audit(self.audit, AuditEvent(
            actor=str(actor),
            action="visit.checked-in",
            target_type="visit_session",
            target_id=str(created.id),
            timestamp=now,
            metadata={
                "patient_ref": str(patient_ref),
                "service_type": service_type,
                "priority": priority.value,
            },
        ))
        logger.info("Checked in patient %s as session %s", patient_ref, created.id)
        return created

    async def get(self, session_id: UUID) -> VisitSession:
        session = await self.store.get_session(session_id)
        if session is None:
            raise NotFound(GlobalMessages.VISIT_NOT_FOUND)
        return session

    async def list_active(self, session_filter: Optional[SessionFilter] = None) -> Iterator[VisitSession]:
        """
        Iterate over sessions matching ``session_filter``.

        The result is a snapshot of the store at call time, ordered by
        check-in time. Defaults to today's non-terminal sessions.
        """
        if session_filter is None:
            session_filter = SessionFilter(service_day=self.clock.today())
        snapshot = await self.store.list_sessions(session_filter)
        snapshot.sort(key=lambda s: (s.check_in_time, str(s.id)))
        return iter(snapshot)

    async def list_queue(self) -> List[VisitSession]:
        """All QUEUED sessions: highest priority first, then FIFO, then id."""
        queued = await self.store.list_sessions(SessionFilter(states=frozenset({VisitState.QUEUED})))
        return sorted(queued, key=VisitSession.queue_key)

    async def queue_stats(self, service_day: Optional[date] = None) -> Dict[str, int]:
        """Per-state counts for one clinic day."""
        service_day = service_day or self.clock.today()
        sessions = await self.store.list_sessions(SessionFilter(states=None, service_day=service_day))
        counts = Counter(s.state for s in sessions)
        return {
            "total": len(sessions),
            "checked_in": counts[VisitState.CHECKED_IN],
            "waiting": counts[VisitState.QUEUED],
            "in_progress": counts[VisitState.STARTED],
            "completed": counts[VisitState.COMPLETED],
            "cancelled": counts[VisitState.CANCELLED],
            "transferred": counts[VisitState.TRANSFERRED],
        }

    async def transition(
        self,
        session_id: UUID,
        event: VisitEvent,
        actor: Actor,
        *,
        clinician_ref: Optional[UUID] = None,
        expected_version: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> VisitSession:
        """
        Apply ``event`` to a session.

        Args:
            session_id: The session to change.
            event: The visit event.
            actor: Who is asking.
            clinician_ref: Clinician taking the visit (ASSIGN, or TRANSFER to
                another clinician; TRANSFER without one ends the visit as
                TRANSFERRED).
            expected_version: Version the caller last read. A mismatch raises
                ``StaleWrite`` before anything is written.
            reason: Free-text reason for cancel or transfer.

        Raises:
            NotFound, IllegalTransition, StaleWrite
        """
        session = await self.get(session_id)
        if expected_version is not None and session.version != expected_version:
            raise StaleWrite(session_id)

        if event is VisitEvent.FORCE_REAP and actor.role is not ActorRole.SYSTEM:
            raise IllegalTransition(session.state, event, message="Forced requeue is reserved for the stale session reaper.")
        if event is VisitEvent.ASSIGN and clinician_ref is None:
            raise IllegalTransition(session.state, event, message="A clinician is required to start a visit.")

        holder = None
        if session.assigned_clinician_ref is not None:
            holder = await self.store.get_clinician(session.assigned_clinician_ref)
        target = None
        if clinician_ref is not None and event in (VisitEvent.ASSIGN, VisitEvent.TRANSFER):
            target = await self.store.get_clinician(clinician_ref)
            if target is None:
                raise IllegalTransition(session.state, event, message=GlobalMessages.CLINICIAN_NOT_AVAILABLE)

        now = self.clock.now()
        plan = self.machine.plan(session, event, now, clinician=holder, target=target, reason=reason)
        applied = await self.store.apply(plan.changes, occurred_at=now)
        updated = applied.session(session.id)

        record_audit(self.audit, AuditEvent(
            actor=str(actor),
            action=f"visit.{event.value}",
            target_type="visit_session",
            target_id=str(session.id),
            timestamp=now,
            metadata=plan.metadata,
        ))
        logger.info(
            "Visit %s: %s -> %s (%s by %s)",
            session.id, session.state.value, updated.state.value, event.value, actor,
        )
        return updated
