# src/modules/reaper/reaper_controller.py
"""Admin endpoint for running the stale session reaper by hand."""

from fastapi import APIRouter, Depends

from src.auth.dependencies import require_roles
from src.auth.schemas import Actor, ActorRole
from src.common.container import ClinicServices, get_services

from .schemas import ReapReportResponse


router = APIRouter(prefix="/admin/reaper", tags=["Admin"])


@router.post("/run", response_model=ReapReportResponse)
async def run_reaper(
    actor: Actor = Depends(require_roles(ActorRole.ADMIN)),
    services: ClinicServices = Depends(get_services),
):
    """
    Sweep stale clinician sessions now instead of waiting for the next tick.

    Returns the clinicians taken offline and the visits put back in the queue.
    """
    report = await services.reaper.sweep()
    return ReapReportResponse.from_report(report)
