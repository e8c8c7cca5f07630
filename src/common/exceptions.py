# src/common/exceptions.py
"""Error taxonomy for the clinic flow core.

Every error is recoverable and is surfaced to the caller as-is. Controllers
turn them into HTTP responses through ``status_code`` and ``to_detail()``.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from src.common.utils.global_messages import GlobalMessages


class ClinicFlowError(Exception):
    """Base class for all clinic flow errors."""
    status_code = 400
    code = "clinic_flow_error"
    default_message = "Request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class DuplicateActiveVisit(ClinicFlowError):
    status_code = 409
    code = "duplicate_active_visit"
    default_message = GlobalMessages.ALREADY_CHECKED_IN

    def __init__(self, existing_session_id: UUID, message: Optional[str] = None):
        self.existing_session_id = existing_session_id
        super().__init__(message)

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["existing_session_id"] = str(self.existing_session_id)
        return detail


class NotFound(ClinicFlowError):
    status_code = 404
    code = "not_found"
    default_message = "Record not found."


class IllegalTransition(ClinicFlowError):
    status_code = 409
    code = "illegal_transition"
    default_message = GlobalMessages.ILLEGAL_TRANSITION

    def __init__(self, current_state=None, event=None, message: Optional[str] = None):
        self.current_state = current_state
        self.event = event
        super().__init__(message)

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        if self.current_state is not None:
            detail["current_state"] = getattr(self.current_state, "value", self.current_state)
        if self.event is not None:
            detail["event"] = getattr(self.event, "value", self.event)
        return detail


class StaleWrite(ClinicFlowError):
    """Optimistic-concurrency conflict: the record moved on since it was read."""
    status_code = 409
    code = "stale_write"
    default_message = GlobalMessages.STALE_WRITE

    def __init__(self, record_key: Any = None, message: Optional[str] = None):
        self.record_key = record_key
        super().__init__(message)


class NotLoggedIn(ClinicFlowError):
    status_code = 409
    code = "not_logged_in"
    default_message = GlobalMessages.NOT_LOGGED_IN


class HasActiveVisit(ClinicFlowError):
    status_code = 409
    code = "has_active_visit"
    default_message = GlobalMessages.HAS_ACTIVE_VISIT

    def __init__(self, visit_id: Optional[UUID] = None, message: Optional[str] = None):
        self.visit_id = visit_id
        super().__init__(message)

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        if self.visit_id is not None:
            detail["visit_id"] = str(self.visit_id)
        return detail


class NoWaitingVisits(ClinicFlowError):
    status_code = 404
    code = "no_waiting_visits"
    default_message = GlobalMessages.NO_WAITING_VISITS
