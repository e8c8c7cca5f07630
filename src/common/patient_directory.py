# src/common/patient_directory.py
"""
Read-only client for the patient directory.

Patient demographics live outside the clinic flow core; queue and visit
listings only need a display name, resolved here.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional
from uuid import UUID

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class PatientSummary(BaseModel):
    """Display information for a patient."""
    patient_ref: UUID
    name: str
    demographics: Dict[str, str] = {}


class PatientDirectory(ABC):

    @abstractmethod
    async def resolve_patient(self, patient_ref: UUID) -> Optional[PatientSummary]:
        ...


class StaticPatientDirectory(PatientDirectory):
    """Directory backed by a dict, used when no directory service is configured."""

    def __init__(self, patients: Optional[Dict[UUID, PatientSummary]] = None):
        self._patients = dict(patients or {})

    def add(self, summary: PatientSummary) -> None:
        self._patients[summary.patient_ref] = summary

    async def resolve_patient(self, patient_ref: UUID) -> Optional[PatientSummary]:
        return self._patients.get(patient_ref)


class HttpPatientDirectory(PatientDirectory):
    """
    Resolves patients from ``GET {base_url}/patients/{patient_ref}``.

    The service is expected to answer with ``{"name": ..., "demographics": {...}}``.
    Lookups are for display only, so failures are logged and resolve to ``None``.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def resolve_patient(self, patient_ref: UUID) -> Optional[PatientSummary]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/patients/{patient_ref}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            logger.warning("Patient directory timed out resolving %s", patient_ref)
            return None
        except httpx.HTTPError as e:
            logger.warning("Patient directory lookup failed for %s: %s", patient_ref, e)
            return None

        return PatientSummary(
            patient_ref=patient_ref,
            name=data.get("name", "Unknown Patient"),
            demographics={k: str(v) for k, v in (data.get("demographics") or {}).items()},
        )
