# src/modules/visits/schemas.py
"""Schemas for visit session requests and responses."""

from typing import List, Optional
from datetime import date, datetime
from uuid import UUID
from pydantic import BaseModel, Field

from src.common.patient_directory import PatientSummary
from src.models.models import VisitPriority, VisitSession, VisitState


# =============================================================================
# REQUESTS
# =============================================================================

class CheckInRequest(BaseModel):
    """Front desk check-in."""
    patient_ref: UUID
    service_type: str = Field(..., min_length=1, max_length=100)
    priority: VisitPriority = VisitPriority.NORMAL
    notes: Optional[str] = Field(None, max_length=500)


class TransitionRequest(BaseModel):
    """Body for enqueue / complete. ``expected_version`` guards against lost updates."""
    expected_version: Optional[int] = Field(None, ge=1)


class AssignRequest(TransitionRequest):
    """Manual assignment of a visit to a specific clinician."""
    clinician_ref: UUID


class TransferRequest(TransitionRequest):
    """
    Transfer a started visit.

    With ``clinician_ref`` the visit moves to that clinician and stays
    started; without it the visit leaves the clinic flow as transferred.
    """
    clinician_ref: Optional[UUID] = None
    reason: Optional[str] = Field(None, max_length=500)


class CancelRequest(TransitionRequest):
    reason: Optional[str] = Field(None, max_length=500)


# =============================================================================
# RESPONSES
# =============================================================================

class VisitSessionResponse(BaseModel):
    id: UUID
    patient_ref: UUID
    patient_name: Optional[str] = None
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
    version: int

    @classmethod
    def from_entity(cls, session: VisitSession, patient: Optional[PatientSummary] = None) -> "VisitSessionResponse":
        return cls(
            id=session.id,
            patient_ref=session.patient_ref,
            patient_name=patient.name if patient else None,
            service_type=session.service_type,
            priority=session.priority,
            state=session.state,
            check_in_time=session.check_in_time,
            service_day=session.service_day,
            assigned_clinician_ref=session.assigned_clinician_ref,
            queued_at=session.queued_at,
            started_at=session.started_at,
            completed_at=session.completed_at,
            cancelled_at=session.cancelled_at,
            transferred_at=session.transferred_at,
            cancellation_reason=session.cancellation_reason,
            notes=session.notes,
            version=session.version,
        )


class VisitListResponse(BaseModel):
    sessions: List[VisitSessionResponse]
    total: int
