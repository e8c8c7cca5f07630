# src/store/base.py
"""Storage boundary for visit sessions and clinician availability records.

Records are read as immutable snapshots. Writes go through ``apply()``, which
takes a batch of ``RecordChange`` objects and commits all of them or none:
each update names the version it was computed from, and the batch fails with
``StaleWrite`` when any record has moved on since.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence
from uuid import UUID

from src.common.events import ChangeEvent, ChangeNotifier
from src.models.models import (
    ACTIVE_VISIT_STATES, AvailabilityState, ClinicianAvailability, VisitSession, VisitState,
)


class RecordKind(enum.Enum):
    VISIT_SESSION = "visit_session"
    CLINICIAN = "clinician"


@dataclass(frozen=True)
class RecordChange:
    """One record write inside an atomic batch.

    ``expected_version`` is the version the change was computed from; ``None``
    means the record is being created and must not exist yet.

    Heartbeats do not bump a clinician's version. A clinician change built
    with ``guard_activity`` also requires ``last_activity_time`` to still
    equal ``expected_last_activity``, so a heartbeat landing after the read
    fails the batch.
    """
    kind: RecordKind
    key: UUID
    values: Dict[str, Any]
    expected_version: Optional[int] = None
    guard_activity: bool = False
    expected_last_activity: Optional[datetime] = None

    @property
    def is_create(self) -> bool:
        return self.expected_version is None

    @classmethod
    def create_session(cls, session: VisitSession) -> "RecordChange":
        values = {name: getattr(session, name) for name in session.__dataclass_fields__}
        values["version"] = 1
        return cls(RecordKind.VISIT_SESSION, session.id, values)

    @classmethod
    def update_session(cls, session: VisitSession, **values) -> "RecordChange":
        return cls(RecordKind.VISIT_SESSION, session.id, values, session.version)

    @classmethod
    def create_clinician(cls, record: ClinicianAvailability) -> "RecordChange":
        values = {name: getattr(record, name) for name in record.__dataclass_fields__}
        values["version"] = 1
        return cls(RecordKind.CLINICIAN, record.clinician_ref, values)

    @classmethod
    def update_clinician(cls, record: ClinicianAvailability, **values) -> "RecordChange":
        return cls(RecordKind.CLINICIAN, record.clinician_ref, values, record.version)

    def with_activity_guard(self, last_activity_time: Optional[datetime]) -> "RecordChange":
        return replace(self, guard_activity=True, expected_last_activity=last_activity_time)


@dataclass
class AppliedChanges:
    """Records as they stand right after a successful batch."""
    sessions: Dict[UUID, VisitSession] = field(default_factory=dict)
    clinicians: Dict[UUID, ClinicianAvailability] = field(default_factory=dict)

    def session(self, session_id: UUID) -> VisitSession:
        return self.sessions[session_id]

    def clinician(self, clinician_ref: UUID) -> ClinicianAvailability:
        return self.clinicians[clinician_ref]


@dataclass(frozen=True)
class SessionFilter:
    """Selection for session listings. ``None`` fields do not filter."""
    states: Optional[FrozenSet[VisitState]] = ACTIVE_VISIT_STATES
    service_day: Optional[date] = None
    clinician_ref: Optional[UUID] = None
    patient_ref: Optional[UUID] = None

    def matches(self, session: VisitSession) -> bool:
        if self.states is not None and session.state not in self.states:
            return False
        if self.service_day is not None and session.service_day != self.service_day:
            return False
        if self.clinician_ref is not None and session.assigned_clinician_ref != self.clinician_ref:
            return False
        if self.patient_ref is not None and session.patient_ref != self.patient_ref:
            return False
        return True


class ClinicStore(ABC):
    """Abstract store. Backends implement the underscore methods."""

    def __init__(self, notifier: Optional[ChangeNotifier] = None):
        self.notifier = notifier

    # ------------------------------------------------------------------ reads

    @abstractmethod
    async def get_session(self, session_id: UUID) -> Optional[VisitSession]:
        ...

    @abstractmethod
    async def find_active_session(self, patient_ref: UUID, service_day: date) -> Optional[VisitSession]:
        """The patient's non-terminal session for that day, if any."""

    @abstractmethod
    async def list_sessions(self, session_filter: SessionFilter) -> List[VisitSession]:
        ...

    @abstractmethod
    async def get_clinician(self, clinician_ref: UUID) -> Optional[ClinicianAvailability]:
        ...

    @abstractmethod
    async def list_clinicians(
        self, states: Optional[Iterable[AvailabilityState]] = None
    ) -> List[ClinicianAvailability]:
        ...

    # ----------------------------------------------------------------- writes

    async def apply(self, changes: Sequence[RecordChange], occurred_at: Optional[datetime] = None) -> AppliedChanges:
        """Atomically apply a batch of changes and publish the results.

        Raises ``StaleWrite`` when an update's expected version does not match
        or a created record already exists, and ``DuplicateActiveVisit`` when
        a created session would give the patient a second active session.
        """
        applied = await self._apply(changes)
        if self.notifier is not None:
            moment = occurred_at or datetime.now().astimezone()
            for record in applied.sessions.values():
                self.notifier.publish(ChangeEvent(RecordKind.VISIT_SESSION.value, record, moment))
            for record in applied.clinicians.values():
                self.notifier.publish(ChangeEvent(RecordKind.CLINICIAN.value, record, moment))
        return applied

    @abstractmethod
    async def _apply(self, changes: Sequence[RecordChange]) -> AppliedChanges:
        ...

    @abstractmethod
    async def touch_clinician(self, clinician_ref: UUID, moment: datetime) -> Optional[ClinicianAvailability]:
        """Refresh ``last_activity_time`` of a logged-in clinician.

        Does not bump the record version, so heartbeats never invalidate an
        in-flight assignment. Returns ``None`` when the clinician is not
        ONLINE or BUSY.
        """

    async def close(self) -> None:
        """Release backend resources."""
