# src/modules/availability/availability_service.py
"""
Clinician availability tracking.

Login, heartbeat, manual status changes and logout. Status changes that
touch an assignment go through the visit state machine so the clinician
record and the visit never disagree.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from src.auth.schemas import Actor
from src.common.audit import AuditEvent, AuditSink, record_audit
from src.common.clock import Clock
from src.common.exceptions import HasActiveVisit, IllegalTransition, NotFound, NotLoggedIn, StaleWrite
from src.common.utils.global_messages import GlobalMessages
from src.models.models import AvailabilityState, BusyReason, ClinicianAvailability, VisitState
from src.modules.visits.state_machine import VisitEvent
from src.modules.visits.visits_service import SessionStore
from src.store.base import ClinicStore, RecordChange

logger = logging.getLogger(__name__)

_STATE_ORDER = {
    AvailabilityState.ONLINE: 0,
    AvailabilityState.BUSY: 1,
    AvailabilityState.OFFLINE: 2,
}


class AvailabilityTracker:

    def __init__(self, store: ClinicStore, clock: Clock, audit: AuditSink, sessions: SessionStore):
        self.store = store
        self.clock = clock
        self.audit = audit
        self.sessions = sessions

    def _audit(self, actor: Actor, action: str, record: ClinicianAvailability, now: datetime, **metadata) -> None:
        record_audit(self.audit, AuditEvent(
            actor=str(actor),
            action=action,
            target_type="clinician",
            target_id=str(record.clinician_ref),
            timestamp=now,
            metadata={"state": record.state.value, **metadata},
        ))

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get(self, clinician_ref: UUID) -> ClinicianAvailability:
        record = await self.store.get_clinician(clinician_ref)
        if record is None:
            raise NotFound(GlobalMessages.CLINICIAN_NOT_FOUND)
        return record

    async def list_available(self) -> List[ClinicianAvailability]:
        """ONLINE clinicians, longest idle first."""
        online = await self.store.list_clinicians([AvailabilityState.ONLINE])
        return sorted(online, key=lambda r: (r.last_activity_time or r.login_time, str(r.clinician_ref)))

    async def list_all(self) -> List[ClinicianAvailability]:
        records = await self.store.list_clinicians()
        return sorted(records, key=lambda r: (_STATE_ORDER[r.state], str(r.clinician_ref)))

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def login(self, clinician_ref: UUID, actor: Actor) -> ClinicianAvailability:
        """
        Mark a clinician ONLINE.

        Idempotent: logging in while already ONLINE or BUSY only refreshes
        the activity time and keeps any current assignment.
        """
        for _ in range(2):
            now = self.clock.now()
            record = await self.store.get_clinician(clinician_ref)

            if record is not None and record.is_logged_in:
                touched = await self.store.touch_clinician(clinician_ref, now)
                if touched is not None:
                    return touched
                continue  # logged out underneath us; log in again

            if record is None:
                change = RecordChange.create_clinician(ClinicianAvailability(
                    clinician_ref=clinician_ref,
                    state=AvailabilityState.ONLINE,
                    login_time=now,
                    last_activity_time=now,
                    updated_at=now,
                ))
            else:
                change = RecordChange.update_clinician(
                    record,
                    state=AvailabilityState.ONLINE,
                    login_time=now,
                    last_activity_time=now,
                    current_visit_ref=None,
                    busy_reason=None,
                    updated_at=now,
                )
            try:
                applied = await self.store.apply([change], occurred_at=now)
            except StaleWrite:
                logger.debug("Concurrent login for clinician %s, re-reading", clinician_ref)
                continue

            updated = applied.clinician(clinician_ref)
            self._audit(actor, "clinician.login", updated, now)
            logger.info("Clinician %s logged in", clinician_ref)
            return updated

        # Second attempt lost too; whoever won left the clinician logged in
        return await self.get(clinician_ref)

    async def heartbeat(self, clinician_ref: UUID) -> ClinicianAvailability:
        """Record activity. Raises ``NotLoggedIn`` for OFFLINE or unknown clinicians."""
        touched = await self.store.touch_clinician(clinician_ref, self.clock.now())
        if touched is None:
            raise NotLoggedIn()
        logger.debug("Heartbeat from clinician %s", clinician_ref)
        return touched

    async def set_status(
        self,
        clinician_ref: UUID,
        status: AvailabilityState,
        actor: Actor,
        visit_ref: Optional[UUID] = None,
        administrative: bool = False,
    ) -> ClinicianAvailability:
        """
        Manually change a clinician's availability.

        - ONLINE: refused with ``HasActiveVisit`` while a visit is assigned.
        - BUSY with ``visit_ref``: the visit must be STARTED and assigned to
          this clinician.
        - BUSY without ``visit_ref``: administrative override only.
        - OFFLINE: same as ``logout`` without forced release.
        """
        if status is AvailabilityState.OFFLINE:
            return await self.logout(clinician_ref, actor)

        record = await self.store.get_clinician(clinician_ref)
        if record is None or not record.is_logged_in:
            raise NotLoggedIn()

        now = self.clock.now()
        if status is AvailabilityState.ONLINE:
            if record.busy_reason is BusyReason.ASSIGNMENT and record.current_visit_ref is not None:
                raise HasActiveVisit(record.current_visit_ref)
            if record.state is AvailabilityState.ONLINE:
                return await self.heartbeat(clinician_ref)
            values = dict(state=AvailabilityState.ONLINE, busy_reason=None, current_visit_ref=None)

        elif visit_ref is None:
            if not administrative:
                raise IllegalTransition(
                    message="Marking a clinician busy without a visit requires an administrative override.",
                )
            if record.busy_reason is BusyReason.ASSIGNMENT and record.current_visit_ref is not None:
                raise HasActiveVisit(record.current_visit_ref)
            values = dict(state=AvailabilityState.BUSY, busy_reason=BusyReason.ADMINISTRATIVE, current_visit_ref=None)

        else:
            if record.current_visit_ref == visit_ref and record.state is AvailabilityState.BUSY:
                return record
            if record.current_visit_ref is not None:
                raise HasActiveVisit(record.current_visit_ref)
            session = await self.sessions.get(visit_ref)
            if session.state is not VisitState.STARTED or session.assigned_clinician_ref != clinician_ref:
                raise IllegalTransition(
                    session.state,
                    message="Busy can only reference a started visit assigned to this clinician.",
                )
            values = dict(state=AvailabilityState.BUSY, busy_reason=BusyReason.ASSIGNMENT, current_visit_ref=visit_ref)

        applied = await self.store.apply(
            [RecordChange.update_clinician(record, last_activity_time=now, updated_at=now, **values)],
            occurred_at=now,
        )
        updated = applied.clinician(clinician_ref)
        self._audit(
            actor, "clinician.status-changed", updated, now,
            previous_state=record.state.value,
            busy_reason=updated.busy_reason.value if updated.busy_reason else None,
        )
        logger.info("Clinician %s: %s -> %s", clinician_ref, record.state.value, updated.state.value)
        return updated

    async def logout(self, clinician_ref: UUID, actor: Actor, force_release: bool = False) -> ClinicianAvailability:
        """
        Mark a clinician OFFLINE.

        With an assigned visit this raises ``HasActiveVisit`` unless
        ``force_release`` is set, in which case the visit goes back to the
        queue in the same write that takes the clinician offline.
        """
        record = await self.store.get_clinician(clinician_ref)
        if record is None:
            raise NotLoggedIn()
        if record.state is AvailabilityState.OFFLINE:
            return record

        now = self.clock.now()
        if record.busy_reason is BusyReason.ASSIGNMENT and record.current_visit_ref is not None:
            session = await self.store.get_session(record.current_visit_ref)
            holds_visit = (
                session is not None
                and session.state is VisitState.STARTED
                and session.assigned_clinician_ref == clinician_ref
            )
            if holds_visit:
                if not force_release:
                    raise HasActiveVisit(record.current_visit_ref)
                await self.sessions.transition(
                    session.id, VisitEvent.RELEASE, actor,
                    expected_version=session.version, reason="clinician logged out",
                )
                updated = await self.get(clinician_ref)
                self._audit(actor, "clinician.logout", updated, now, released_visit=str(session.id))
                logger.info("Clinician %s logged out and released visit %s", clinician_ref, session.id)
                return updated

        applied = await self.store.apply([RecordChange.update_clinician(
            record,
            state=AvailabilityState.OFFLINE,
            busy_reason=None,
            current_visit_ref=None,
            logout_time=now,
            updated_at=now,
        )], occurred_at=now)
        updated = applied.clinician(clinician_ref)
        self._audit(actor, "clinician.logout", updated, now, previous_state=record.state.value)
        logger.info("Clinician %s logged out", clinician_ref)
        return updated
