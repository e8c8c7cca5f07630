# src/modules/availability/schemas.py
"""Schemas for clinician availability."""

from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel

from src.models.models import AvailabilityState, BusyReason, ClinicianAvailability


class SetStatusRequest(BaseModel):
    """Manual status change from the clinician dashboard."""
    status: AvailabilityState
    visit_ref: Optional[UUID] = None
    administrative: bool = False  # busy without a tracked visit


class LogoutRequest(BaseModel):
    force_release: bool = False  # send an in-progress visit back to the queue


class ClinicianAvailabilityResponse(BaseModel):
    clinician_ref: UUID
    state: AvailabilityState
    login_time: Optional[datetime] = None
    last_activity_time: Optional[datetime] = None
    logout_time: Optional[datetime] = None
    current_visit_ref: Optional[UUID] = None
    busy_reason: Optional[BusyReason] = None
    version: int

    @classmethod
    def from_entity(cls, record: ClinicianAvailability) -> "ClinicianAvailabilityResponse":
        return cls(
            clinician_ref=record.clinician_ref,
            state=record.state,
            login_time=record.login_time,
            last_activity_time=record.last_activity_time,
            logout_time=record.logout_time,
            current_visit_ref=record.current_visit_ref,
            busy_reason=record.busy_reason,
            version=record.version,
        )


class ClinicianListResponse(BaseModel):
    clinicians: List[ClinicianAvailabilityResponse]
    total: int
