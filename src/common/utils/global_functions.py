# common/utils/global_functions.py
from fastapi import HTTPException

from src.common.exceptions import ClinicFlowError, StaleWrite
from src.common.utils.global_messages import GlobalMessages


def to_http_exception(error: ClinicFlowError) -> HTTPException:
    """Translate a clinic flow error into the HTTP error returned to the UI."""
    return HTTPException(status_code=error.status_code, detail=error.to_detail())


def claim_lost_exception(error: StaleWrite) -> HTTPException:
    """A clinician tried to accept a visit that someone else just claimed."""
    detail = error.to_detail()
    detail["message"] = GlobalMessages.VISIT_NO_LONGER_AVAILABLE
    return HTTPException(status_code=error.status_code, detail=detail)
