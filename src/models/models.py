# src/models/models.py

import enum
from dataclasses import dataclass, fields
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Column, Date, DateTime, Integer, String, Text, Uuid,
    Enum as SAEnum, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class VisitState(enum.Enum):
    CHECKED_IN = "checked-in"
    QUEUED = "queued"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TRANSFERRED = "transferred"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_VISIT_STATES


ACTIVE_VISIT_STATES = frozenset({VisitState.CHECKED_IN, VisitState.QUEUED, VisitState.STARTED})
TERMINAL_VISIT_STATES = frozenset({VisitState.COMPLETED, VisitState.CANCELLED, VisitState.TRANSFERRED})


class VisitPriority(enum.Enum):
    NORMAL = "normal"
    PRIORITY = "priority"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        """Higher rank is served first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    VisitPriority.NORMAL: 0,
    VisitPriority.PRIORITY: 1,
    VisitPriority.EMERGENCY: 2,
}


class AvailabilityState(enum.Enum):
    OFFLINE = "offline"
    ONLINE = "online"
    BUSY = "busy"


class BusyReason(enum.Enum):
    ASSIGNMENT = "assignment"          # busy with a tracked visit
    ADMINISTRATIVE = "administrative"  # manual override, no tracked visit


# ============================================================================
# DOMAIN RECORDS
# ============================================================================

@dataclass(frozen=True)
class VisitSession:
    """One patient's tracked presence for one service episode."""
    id: UUID
    patient_ref: UUID
    service_type: str
    priority: VisitPriority
    state: VisitState
    check_in_time: datetime
    service_day: date
    assigned_clinician_ref: Optional[UUID] = None
    queued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    transferred_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_VISIT_STATES

    def queue_key(self):
        """Sort key for the waiting queue: priority, then FIFO, then id."""
        return (-self.priority.rank, self.queued_at or self.check_in_time, str(self.id))


@dataclass(frozen=True)
class ClinicianAvailability:
    """A clinician's current reachability and assignment status."""
    clinician_ref: UUID
    state: AvailabilityState
    login_time: Optional[datetime] = None
    last_activity_time: Optional[datetime] = None
    current_visit_ref: Optional[UUID] = None
    busy_reason: Optional[BusyReason] = None
    logout_time: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    @property
    def is_logged_in(self) -> bool:
        return self.state in (AvailabilityState.ONLINE, AvailabilityState.BUSY)


VISIT_SESSION_FIELDS = tuple(f.name for f in fields(VisitSession))
CLINICIAN_AVAILABILITY_FIELDS = tuple(f.name for f in fields(ClinicianAvailability))


# ============================================================================
# TABLES
# ============================================================================

class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that comes back as UTC on every backend."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        # SQLite drops the offset, so store everything as UTC
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class VisitSessionRow(Base):
    __tablename__ = "visit_sessions"

    id = Column(Uuid, primary_key=True, nullable=False)
    patient_ref = Column(Uuid, nullable=False, index=True)
    service_type = Column(String(100), nullable=False)
    priority = Column(SAEnum(VisitPriority), nullable=False, default=VisitPriority.NORMAL)
    state = Column(SAEnum(VisitState), nullable=False, default=VisitState.CHECKED_IN, index=True)
    assigned_clinician_ref = Column(Uuid, nullable=True, index=True)
    check_in_time = Column(UTCDateTime, nullable=False)
    service_day = Column(Date, nullable=False, index=True)
    # Equal to service_day while the session is non-terminal, NULL afterwards.
    # NULLs never collide, so the unique constraint only covers active sessions.
    active_day = Column(Date, nullable=True)
    queued_at = Column(UTCDateTime, nullable=True)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    transferred_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)
    updated_at = Column(UTCDateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("patient_ref", "active_day", name="uq_visit_sessions_active_patient_day"),
        Index("ix_visit_sessions_queue", "state", "priority", "queued_at"),
    )

    def to_entity(self) -> VisitSession:
        return VisitSession(**{name: getattr(self, name) for name in VISIT_SESSION_FIELDS})

    def __repr__(self):
        return f"<VisitSessionRow(id={self.id}, state={self.state.value}, version={self.version})>"


class ClinicianAvailabilityRow(Base):
    __tablename__ = "clinician_availability"

    clinician_ref = Column(Uuid, primary_key=True, nullable=False)
    state = Column(SAEnum(AvailabilityState), nullable=False, default=AvailabilityState.OFFLINE, index=True)
    login_time = Column(UTCDateTime, nullable=True)
    last_activity_time = Column(UTCDateTime, nullable=True)
    current_visit_ref = Column(Uuid, nullable=True)
    busy_reason = Column(SAEnum(BusyReason), nullable=True)
    logout_time = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    def to_entity(self) -> ClinicianAvailability:
        return ClinicianAvailability(**{name: getattr(self, name) for name in CLINICIAN_AVAILABILITY_FIELDS})

    def __repr__(self):
        return f"<ClinicianAvailabilityRow(clinician_ref={self.clinician_ref}, state={self.state.value})>"
