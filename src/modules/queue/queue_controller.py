# src/modules/queue/queue_controller.py
"""Waiting queue controller with API endpoints."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from src.auth.dependencies import require_roles
from src.auth.schemas import Actor, ActorRole
from src.common.container import ClinicServices, get_services
from src.common.exceptions import ClinicFlowError, StaleWrite
from src.common.utils.global_functions import claim_lost_exception, to_http_exception
from src.common.utils.global_messages import GlobalMessages
from src.modules.visits.schemas import VisitSessionResponse
from src.modules.visits.visits_controller import to_response, to_responses

from .schemas import AssignNextRequest, QueueEntry, QueueResponse, QueueStatsResponse


router = APIRouter(prefix="/queue", tags=["Queue"])

clinical_staff = require_roles(ActorRole.STAFF, ActorRole.CLINICIAN)


@router.get("", response_model=QueueResponse)
async def get_queue(
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    """Waiting patients in the order they will be called."""
    queued = await services.sessions.list_queue()
    now = services.clock.now()
    entries = []
    for position, response in enumerate(await to_responses(services, queued), start=1):
        waited_since = response.queued_at or response.check_in_time
        entries.append(QueueEntry(
            **response.model_dump(),
            position=position,
            waiting_minutes=max(0, int((now - waited_since).total_seconds() // 60)),
        ))
    return QueueResponse(entries=entries, total=len(entries))


@router.get("/stats", response_model=QueueStatsResponse)
async def get_queue_stats(
    service_day: Optional[date] = None,
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    service_day = service_day or services.clock.today()
    stats = await services.sessions.queue_stats(service_day)
    return QueueStatsResponse(service_day=service_day, **stats)


@router.post("/next", response_model=VisitSessionResponse)
async def assign_next(
    request: AssignNextRequest = AssignNextRequest(),
    actor: Actor = Depends(clinical_staff),
    services: ClinicServices = Depends(get_services),
):
    """
    Accept the next waiting patient.

    Clinicians call this for themselves; staff must name the clinician.
    Returns 409 if another clinician claimed the patient first and no one
    else is waiting to retry against.
    """
    clinician_ref = request.clinician_ref
    if clinician_ref is None:
        if actor.role is not ActorRole.CLINICIAN:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="clinician_ref is required.")
        clinician_ref = UUID(actor.id)
    elif actor.role is ActorRole.CLINICIAN and str(clinician_ref) != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=GlobalMessages.FORBIDDEN)

    try:
        session = await services.queue.assign_next(clinician_ref, actor)
        return await to_response(services, session)
    except StaleWrite as e:
        raise claim_lost_exception(e)
    except ClinicFlowError as e:
        raise to_http_exception(e)
