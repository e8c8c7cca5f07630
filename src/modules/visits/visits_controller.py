# src/modules/visits/visits_controller.py
"""Visit session controller with API endpoints."""

import asyncio
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.auth.dependencies import require_roles
from src.auth.schemas import Actor, ActorRole
from src.common.container import ClinicServices, get_services
from src.common.exceptions import ClinicFlowError, StaleWrite
from src.common.utils.global_functions import claim_lost_exception, to_http_exception
from src.common.utils.global_messages import GlobalMessages
from src.models.models import ACTIVE_VISIT_STATES, VisitSession, VisitState
from src.store.base import SessionFilter

from .schemas import (
    AssignRequest, CancelRequest, CheckInRequest, TransferRequest, TransitionRequest,
    VisitListResponse, VisitSessionResponse,
)
from .state_machine import VisitEvent


router = APIRouter(prefix="/visits", tags=["Visits"])

front_desk = require_roles(ActorRole.STAFF)
clinical_staff = require_roles(ActorRole.STAFF, ActorRole.CLINICIAN)


async def to_response(services: ClinicServices, session: VisitSession) -> VisitSessionResponse:
    patient = await services.patients.resolve_patient(session.patient_ref)
    return VisitSessionResponse.from_entity(session, patient)


async def to_responses(services: ClinicServices, sessions: List[VisitSession]) -> List[VisitSessionResponse]:
    return list(await asyncio.gather(*(to_response(services, s) for s in sessions)))


async def ensure_own_visit(services: ClinicServices, actor: Actor, session_id: UUID) -> None:
    """Clinicians may only finish or hand off visits assigned to them."""
    if actor.role is not ActorRole.CLINICIAN:
        return
    session = await services.sessions.get(session_id)
    if str(session.assigned_clinician_ref) != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=GlobalMessages.FORBIDDEN)


@router.post("/check-in", response_model=VisitSessionResponse, status_code=status.HTTP_201_CREATED)
async def check_in(
    request: CheckInRequest,
    actor: Actor = Depends(front_desk),
    services: ClinicServices = Depends(get_services),
):
    """
    Check a patient in for today.

    Returns 409 with the existing session id if the patient already has an
    active visit today.
    """
    try:
        session = await services.sessions.check_in(
            request.patient_ref, request.service_type, request.priority, actor, notes=request.notes,
        )
        return await to_response(services, session)
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.get("", response_model=VisitListResponse)
async def list_visits(
    service_day: Optional[date] = Query(None, description="Clinic day; defaults to today"),
    state: Optional[List[VisitState]] = Query(None, description="Filter by state; defaults to active states"),
    clinician_ref: Optional[UUID] = None,
    patient_ref: Optional[UUID] = None,
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    session_filter = SessionFilter(
        states=frozenset(state) if state else ACTIVE_VISIT_STATES,
        service_day=service_day or services.clock.today(),
        clinician_ref=clinician_ref,
        patient_ref=patient_ref,
    )
    sessions = list(await services.sessions.list_active(session_filter))
    return VisitListResponse(sessions=await to_responses(services, sessions), total=len(sessions))


@router.get("/{session_id}", response_model=VisitSessionResponse)
async def get_visit(
    session_id: UUID,
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    try:
        return await to_response(services, await services.sessions.get(session_id))
    except ClinicFlowError as e:
        raise to_http_exception(e)


# =============================================================================
# TRANSITIONS
# =============================================================================

@router.post("/{session_id}/enqueue", response_model=VisitSessionResponse)
async def enqueue_visit(
    session_id: UUID,
    request: TransitionRequest = TransitionRequest(),
    actor: Actor = Depends(front_desk),
    services: ClinicServices = Depends(get_services),
):
    """Place a checked-in patient in the waiting queue."""
    try:
        session = await services.sessions.transition(
            session_id, VisitEvent.ENQUEUE, actor, expected_version=request.expected_version,
        )
        return await to_response(services, session)
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.post("/{session_id}/assign", response_model=VisitSessionResponse)
async def assign_visit(
    session_id: UUID,
    request: AssignRequest,
    actor: Actor = Depends(front_desk),
    services: ClinicServices = Depends(get_services),
):
    """
    Pre-assign a queued visit to a specific online clinician.

    Returns 409 "no longer available" if the visit was claimed or changed first.
    """
    try:
        session = await services.sessions.transition(
            session_id,
            VisitEvent.ASSIGN,
            actor,
            clinician_ref=request.clinician_ref,
            expected_version=request.expected_version,
        )
        return await to_response(services, session)
    except StaleWrite as e:
        raise claim_lost_exception(e)
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.post("/{session_id}/transfer", response_model=VisitSessionResponse)
async def transfer_visit(
    session_id: UUID,
    request: TransferRequest = TransferRequest(),
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    """
    Transfer a started visit.

    - With ``clinician_ref``: the visit stays started under the new clinician.
    - Without: the visit ends as transferred and the clinician is free again.
    """
    try:
        await ensure_own_visit(services, actor, session_id)
        session = await services.sessions.transition(
            session_id,
            VisitEvent.TRANSFER,
            actor,
            clinician_ref=request.clinician_ref,
            expected_version=request.expected_version,
            reason=request.reason,
        )
        return await to_response(services, session)
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.post("/{session_id}/complete", response_model=VisitSessionResponse)
async def complete_visit(
    session_id: UUID,
    request: TransitionRequest = TransitionRequest(),
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    try:
        await ensure_own_visit(services, actor, session_id)
        session = await services.sessions.transition(
            session_id, VisitEvent.COMPLETE, actor, expected_version=request.expected_version,
        )
        return await to_response(services, session)
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.post("/{session_id}/cancel", response_model=VisitSessionResponse)
async def cancel_visit(
    session_id: UUID,
    request: CancelRequest = CancelRequest(),
    actor: Actor = Depends(front_desk),
    services: ClinicServices = Depends(get_services),
):
    """Cancel a visit that has not started yet."""
    try:
        session = await services.sessions.transition(
            session_id,
            VisitEvent.CANCEL,
            actor,
            expected_version=request.expected_version,
            reason=request.reason,
        )
        return await to_response(services, session)
    except ClinicFlowError as e:
        raise to_http_exception(e)
