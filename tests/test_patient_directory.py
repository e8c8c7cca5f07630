"""Tests for the patient directory clients."""

import uuid

import httpx
import pytest

from src.common.patient_directory import HttpPatientDirectory, PatientSummary, StaticPatientDirectory


def directory_with(handler) -> HttpPatientDirectory:
    return HttpPatientDirectory("http://patients.local/api/", timeout=1.0, transport=httpx.MockTransport(handler))


class TestHttpPatientDirectory:

    @pytest.mark.asyncio
    async def test_resolves_patient(self):
        patient_ref = uuid.uuid4()

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/api/patients/{patient_ref}"
            return httpx.Response(200, json={"name": "Chiamaka Obi", "demographics": {"age": 29}})

        summary = await directory_with(handler).resolve_patient(patient_ref)
        assert summary == PatientSummary(patient_ref=patient_ref, name="Chiamaka Obi", demographics={"age": "29"})

    @pytest.mark.asyncio
    async def test_unknown_patient(self):
        summary = await directory_with(lambda request: httpx.Response(404)).resolve_patient(uuid.uuid4())
        assert summary is None

    @pytest.mark.asyncio
    async def test_server_error_resolves_to_none(self):
        summary = await directory_with(lambda request: httpx.Response(503)).resolve_patient(uuid.uuid4())
        assert summary is None

    @pytest.mark.asyncio
    async def test_timeout_resolves_to_none(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        assert await directory_with(handler).resolve_patient(uuid.uuid4()) is None


class TestStaticPatientDirectory:

    @pytest.mark.asyncio
    async def test_lookup(self):
        summary = PatientSummary(patient_ref=uuid.uuid4(), name="Ibrahim Musa")
        directory = StaticPatientDirectory({summary.patient_ref: summary})

        assert await directory.resolve_patient(summary.patient_ref) == summary
        assert await directory.resolve_patient(uuid.uuid4()) is None
