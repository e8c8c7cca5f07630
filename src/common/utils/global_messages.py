class GlobalMessages:
    # Auth Messages
    INVALID_CREDENTIALS = "Could not validate credentials. Please log in again."
    FORBIDDEN = "You do not have permission to perform this action."

    # Visit Messages
    ALREADY_CHECKED_IN = "Patient is already checked in today."
    VISIT_NOT_FOUND = "Visit session not found."
    ILLEGAL_TRANSITION = "This action is not allowed in the visit's current state."
    STALE_WRITE = "The record was changed by someone else. Refresh and try again."
    VISIT_NO_LONGER_AVAILABLE = "This patient is no longer available; another clinician has already accepted the visit."

    # Clinician Messages
    CLINICIAN_NOT_FOUND = "Clinician has never logged in."
    NOT_LOGGED_IN = "Clinician is not logged in."
    HAS_ACTIVE_VISIT = "Clinician has an active visit. Complete, transfer or release it first."
    CLINICIAN_NOT_AVAILABLE = "Clinician is not available for a new visit."

    # Queue Messages
    NO_WAITING_VISITS = "No patients are waiting in the queue."
