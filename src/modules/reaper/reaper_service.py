# src/modules/reaper/reaper_service.py
"""
Stale clinician session reaper.

A clinician whose dashboard stopped sending heartbeats (closed tab, lost
network, crashed laptop) would otherwise stay ONLINE or BUSY forever and
hold their patient hostage. Each sweep takes such clinicians OFFLINE and
puts any visit they were holding back in the queue at its original place.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from src.auth.schemas import SYSTEM_REAPER
from src.common.audit import AuditEvent, AuditSink, record_audit
from src.common.clock import Clock
from src.common.exceptions import IllegalTransition, StaleWrite
from src.models.models import AvailabilityState, ClinicianAvailability, VisitState
from src.modules.visits.state_machine import VisitEvent, VisitStateMachine
from src.store.base import ClinicStore, RecordChange, RecordKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReapCorrection:
    clinician_ref: UUID
    previous_state: AvailabilityState
    idle_seconds: int
    requeued_visit_ref: Optional[UUID] = None


@dataclass
class ReapReport:
    started_at: datetime
    checked: int = 0
    corrections: List[ReapCorrection] = field(default_factory=list)
    skipped: List[UUID] = field(default_factory=list)  # changed while we were looking

    @property
    def requeued_visits(self) -> List[UUID]:
        return [c.requeued_visit_ref for c in self.corrections if c.requeued_visit_ref is not None]


class StaleSessionReaper:

    def __init__(
        self,
        store: ClinicStore,
        clock: Clock,
        audit: AuditSink,
        machine: Optional[VisitStateMachine] = None,
        stale_threshold: timedelta = timedelta(seconds=300),
    ):
        self.store = store
        self.clock = clock
        self.audit = audit
        self.machine = machine or VisitStateMachine()
        self.stale_threshold = stale_threshold

    def is_stale(self, record: ClinicianAvailability, now: datetime) -> bool:
        if not record.is_logged_in:
            return False
        last_seen = record.last_activity_time or record.login_time
        return last_seen is None or now - last_seen > self.stale_threshold

    async def sweep(self) -> ReapReport:
        """
        Run one pass over all logged-in clinicians.

        Safe to run concurrently with normal traffic: every correction is a
        versioned write, so a clinician who acted in the meantime is skipped
        rather than overwritten.
        """
        now = self.clock.now()
        report = ReapReport(started_at=now)

        candidates = await self.store.list_clinicians([AvailabilityState.ONLINE, AvailabilityState.BUSY])
        report.checked = len(candidates)
        for record in candidates:
            if not self.is_stale(record, now):
                continue
            try:
                correction = await self._reap(record.clinician_ref, now)
            except (StaleWrite, IllegalTransition) as e:
                logger.info("Skipping clinician %s, record changed during sweep: %s", record.clinician_ref, e)
                report.skipped.append(record.clinician_ref)
                continue
            if correction is not None:
                report.corrections.append(correction)

        if report.corrections:
            logger.info(
                "Reaper took %d stale clinician(s) offline and requeued %d visit(s)",
                len(report.corrections), len(report.requeued_visits),
            )
        return report

    async def _reap(self, clinician_ref: UUID, now: datetime) -> Optional[ReapCorrection]:
        record = await self.store.get_clinician(clinician_ref)
        if record is None or not self.is_stale(record, now):
            return None

        session = None
        if record.current_visit_ref is not None:
            session = await self.store.get_session(record.current_visit_ref)
            if session is None or session.state is not VisitState.STARTED or session.assigned_clinician_ref != clinician_ref:
                logger.warning(
                    "Clinician %s pointed at visit %s which it does not hold; clearing",
                    clinician_ref, record.current_visit_ref,
                )
                session = None

        if session is not None:
            plan = self.machine.plan(
                session, VisitEvent.FORCE_REAP, now, clinician=record, reason="stale clinician session",
            )
            changes = plan.changes
        else:
            changes = [RecordChange.update_clinician(
                record,
                state=AvailabilityState.OFFLINE,
                busy_reason=None,
                current_visit_ref=None,
                logout_time=now,
                updated_at=now,
            )]
        # A heartbeat since our read fails the batch with StaleWrite
        changes = [
            c.with_activity_guard(record.last_activity_time)
            if c.kind is RecordKind.CLINICIAN and c.key == clinician_ref else c
            for c in changes
        ]
        await self.store.apply(changes, occurred_at=now)

        last_seen = record.last_activity_time or record.login_time
        idle_seconds = int((now - last_seen).total_seconds()) if last_seen else 0
        correction = ReapCorrection(
            clinician_ref=clinician_ref,
            previous_state=record.state,
            idle_seconds=idle_seconds,
            requeued_visit_ref=session.id if session is not None else None,
        )

        record_audit(self.audit, AuditEvent(
            actor=str(SYSTEM_REAPER),
            action="clinician.reaped",
            target_type="clinician",
            target_id=str(clinician_ref),
            timestamp=now,
            metadata={"previous_state": record.state.value, "idle_seconds": idle_seconds},
        ))
        if session is not None:
            record_audit(self.audit, AuditEvent(
                actor=str(SYSTEM_REAPER),
                action=f"visit.{VisitEvent.FORCE_REAP.value}",
                target_type="visit_session",
                target_id=str(session.id),
                timestamp=now,
                metadata={**plan.metadata, "clinician_ref": str(clinician_ref)},
            ))
        logger.info(
            "Reaped clinician %s (%s, idle %ss)%s",
            clinician_ref, record.state.value, idle_seconds,
            f", requeued visit {session.id}" if session is not None else "",
        )
        return correction
