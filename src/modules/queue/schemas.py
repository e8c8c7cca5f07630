# src/modules/queue/schemas.py
"""Schemas for the waiting queue."""

from typing import List, Optional
from datetime import date
from uuid import UUID
from pydantic import BaseModel

from src.modules.visits.schemas import VisitSessionResponse


class QueueEntry(VisitSessionResponse):
    """A waiting visit with its place in line."""
    position: int
    waiting_minutes: int


class QueueResponse(BaseModel):
    entries: List[QueueEntry]
    total: int


class QueueStatsResponse(BaseModel):
    """Per-state counts for one clinic day."""
    service_day: date
    total: int
    checked_in: int
    waiting: int
    in_progress: int
    completed: int
    cancelled: int
    transferred: int


class AssignNextRequest(BaseModel):
    # Defaults to the calling clinician
    clinician_ref: Optional[UUID] = None
