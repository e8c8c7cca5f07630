# src/common/container.py
"""
Wiring for the clinic flow services.

One ``ClinicServices`` is built per application in the lifespan hook and kept
on ``app.state``; routes get it through ``get_services``. Tests build their
own with an in-memory store and a manual clock.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request

from src.common.audit import AuditSink, LoggingAuditSink
from src.common.clock import Clock
from src.common.config import Settings
from src.common.events import ChangeNotifier
from src.common.patient_directory import HttpPatientDirectory, PatientDirectory, StaticPatientDirectory
from src.modules.availability.availability_service import AvailabilityTracker
from src.modules.queue.queue_service import QueueAssignmentEngine
from src.modules.reaper.reaper_service import StaleSessionReaper
from src.modules.visits.state_machine import VisitStateMachine
from src.modules.visits.visits_service import SessionStore
from src.store.base import ClinicStore

logger = logging.getLogger(__name__)


@dataclass
class ClinicServices:
    store: ClinicStore
    clock: Clock
    audit: AuditSink
    notifier: ChangeNotifier
    patients: PatientDirectory
    sessions: SessionStore
    availability: AvailabilityTracker
    queue: QueueAssignmentEngine
    reaper: StaleSessionReaper

    @classmethod
    def build(
        cls,
        store: ClinicStore,
        clock: Optional[Clock] = None,
        audit: Optional[AuditSink] = None,
        patients: Optional[PatientDirectory] = None,
        stale_threshold: timedelta = timedelta(seconds=300),
        assign_max_attempts: int = 2,
    ) -> "ClinicServices":
        clock = clock or Clock()
        audit = audit or LoggingAuditSink()
        patients = patients or StaticPatientDirectory()
        machine = VisitStateMachine()
        if store.notifier is None:
            store.notifier = ChangeNotifier()

        sessions = SessionStore(store, clock, audit, machine)
        availability = AvailabilityTracker(store, clock, audit, sessions)
        queue = QueueAssignmentEngine(store, sessions, max_attempts=assign_max_attempts)
        reaper = StaleSessionReaper(store, clock, audit, machine, stale_threshold=stale_threshold)

        return cls(
            store=store,
            clock=clock,
            audit=audit,
            notifier=store.notifier,
            patients=patients,
            sessions=sessions,
            availability=availability,
            queue=queue,
            reaper=reaper,
        )

    @classmethod
    def from_settings(cls, settings: Settings, store: ClinicStore) -> "ClinicServices":
        if settings.PATIENT_DIRECTORY_URL:
            patients = HttpPatientDirectory(
                settings.PATIENT_DIRECTORY_URL,
                timeout=settings.PATIENT_DIRECTORY_TIMEOUT_SECONDS,
            )
        else:
            logger.info("PATIENT_DIRECTORY_URL not set; patient names will not be resolved")
            patients = StaticPatientDirectory()

        return cls.build(
            store=store,
            clock=Clock(settings.CLINIC_TIMEZONE),
            audit=LoggingAuditSink(),
            patients=patients,
            stale_threshold=timedelta(seconds=settings.STALE_THRESHOLD_SECONDS),
            assign_max_attempts=settings.ASSIGN_MAX_ATTEMPTS,
        )


def get_services(request: Request) -> ClinicServices:
    """FastAPI dependency returning the application's services."""
    return request.app.state.services
