# src/modules/reaper/schemas.py

from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel

from src.models.models import AvailabilityState

from .reaper_service import ReapReport


class ReapCorrectionResponse(BaseModel):
    clinician_ref: UUID
    previous_state: AvailabilityState
    idle_seconds: int
    requeued_visit_ref: Optional[UUID] = None


class ReapReportResponse(BaseModel):
    started_at: datetime
    checked: int
    corrections: List[ReapCorrectionResponse]
    skipped: List[UUID]

    @classmethod
    def from_report(cls, report: ReapReport) -> "ReapReportResponse":
        return cls(
            started_at=report.started_at,
            checked=report.checked,
            corrections=[
                ReapCorrectionResponse(
                    clinician_ref=c.clinician_ref,
                    previous_state=c.previous_state,
                    idle_seconds=c.idle_seconds,
                    requeued_visit_ref=c.requeued_visit_ref,
                )
                for c in report.corrections
            ],
            skipped=report.skipped,
        )
