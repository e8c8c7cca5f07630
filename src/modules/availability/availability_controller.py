# src/modules/availability/availability_controller.py
"""Clinician availability controller with API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from src.auth.dependencies import require_roles
from src.auth.schemas import Actor, ActorRole
from src.common.container import ClinicServices, get_services
from src.common.exceptions import ClinicFlowError
from src.common.utils.global_functions import to_http_exception
from src.common.utils.global_messages import GlobalMessages

from .schemas import ClinicianAvailabilityResponse, ClinicianListResponse, LogoutRequest, SetStatusRequest


router = APIRouter(prefix="/clinicians", tags=["Clinicians"])

clinical_staff = require_roles(ActorRole.STAFF, ActorRole.CLINICIAN)


def ensure_self(actor: Actor, clinician_ref: UUID) -> None:
    """Clinicians manage their own availability; staff and admins may manage anyone's."""
    if actor.role is ActorRole.CLINICIAN and actor.id != str(clinician_ref):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=GlobalMessages.FORBIDDEN)


@router.get("", response_model=ClinicianListResponse)
async def list_clinicians(
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    """All clinicians that have ever logged in, online first."""
    records = await services.availability.list_all()
    return ClinicianListResponse(
        clinicians=[ClinicianAvailabilityResponse.from_entity(r) for r in records],
        total=len(records),
    )


@router.get("/available", response_model=ClinicianListResponse)
async def list_available_clinicians(
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    """Clinicians free to take a visit, longest idle first."""
    records = await services.availability.list_available()
    return ClinicianListResponse(
        clinicians=[ClinicianAvailabilityResponse.from_entity(r) for r in records],
        total=len(records),
    )


@router.get("/{clinician_ref}", response_model=ClinicianAvailabilityResponse)
async def get_clinician_status(
    clinician_ref: UUID,
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    try:
        return ClinicianAvailabilityResponse.from_entity(await services.availability.get(clinician_ref))
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.post("/{clinician_ref}/login", response_model=ClinicianAvailabilityResponse)
async def login(
    clinician_ref: UUID,
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    ensure_self(actor, clinician_ref)
    try:
        return ClinicianAvailabilityResponse.from_entity(await services.availability.login(clinician_ref, actor))
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.post("/{clinician_ref}/heartbeat", response_model=ClinicianAvailabilityResponse)
async def heartbeat(
    clinician_ref: UUID,
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    """Sent periodically by the clinician dashboard while it is open."""
    ensure_self(actor, clinician_ref)
    try:
        return ClinicianAvailabilityResponse.from_entity(await services.availability.heartbeat(clinician_ref))
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.patch("/{clinician_ref}/status", response_model=ClinicianAvailabilityResponse)
async def set_status(
    clinician_ref: UUID,
    request: SetStatusRequest,
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    ensure_self(actor, clinician_ref)
    try:
        record = await services.availability.set_status(
            clinician_ref,
            request.status,
            actor,
            visit_ref=request.visit_ref,
            administrative=request.administrative,
        )
        return ClinicianAvailabilityResponse.from_entity(record)
    except ClinicFlowError as e:
        raise to_http_exception(e)


@router.post("/{clinician_ref}/logout", response_model=ClinicianAvailabilityResponse)
async def logout(
    clinician_ref: UUID,
    request: LogoutRequest = LogoutRequest(),
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    """
    Go offline.

    Returns 409 while a visit is in progress unless ``force_release`` is set,
    which puts the visit back in the queue.
    """
    ensure_self(actor, clinician_ref)
    try:
        record = await services.availability.logout(clinician_ref, actor, force_release=request.force_release)
        return ClinicianAvailabilityResponse.from_entity(record)
    except ClinicFlowError as e:
        raise to_http_exception(e)
