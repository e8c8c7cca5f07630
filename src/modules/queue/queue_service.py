# src/modules/queue/queue_service.py
"""Hands the next waiting patient to a free clinician."""

import logging
from uuid import UUID

from src.auth.schemas import Actor
from src.common.exceptions import IllegalTransition, NoWaitingVisits, NotLoggedIn, StaleWrite
from src.common.utils.global_messages import GlobalMessages
from src.models.models import AvailabilityState, VisitSession
from src.modules.visits.state_machine import VisitEvent
from src.modules.visits.visits_service import SessionStore
from src.store.base import ClinicStore

logger = logging.getLogger(__name__)


class QueueAssignmentEngine:
    """
    Pull-based assignment: a clinician asks for the next patient.

    Two clinicians racing for the same head of queue both read it, but only
    one versioned write succeeds. The loser sees ``StaleWrite`` and retries
    against the new head, up to ``max_attempts`` times.
    """

    def __init__(self, store: ClinicStore, sessions: SessionStore, max_attempts: int = 2):
        self.store = store
        self.sessions = sessions
        self.max_attempts = max(1, max_attempts)

    async def assign_next(self, clinician_ref: UUID, actor: Actor) -> VisitSession:
        """
        Start the highest-priority, longest-waiting visit with ``clinician_ref``.

        Raises:
            NotLoggedIn: the clinician is OFFLINE or has never logged in.
            IllegalTransition: the clinician is BUSY.
            NoWaitingVisits: the queue is empty.
            StaleWrite: every attempt lost its claim to another clinician.
        """
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            clinician = await self.store.get_clinician(clinician_ref)
            if clinician is None or clinician.state is AvailabilityState.OFFLINE:
                raise NotLoggedIn()
            if clinician.state is AvailabilityState.BUSY:
                raise IllegalTransition(message=GlobalMessages.CLINICIAN_NOT_AVAILABLE)

            queue = await self.sessions.list_queue()
            if not queue:
                raise NoWaitingVisits()
            head = queue[0]

            try:
                session = await self.sessions.transition(
                    head.id,
                    VisitEvent.ASSIGN,
                    actor,
                    clinician_ref=clinician_ref,
                    expected_version=head.version,
                )
            except StaleWrite as e:
                last_error = e
                logger.info(
                    "Clinician %s lost visit %s to a concurrent claim (attempt %d/%d)",
                    clinician_ref, head.id, attempt, self.max_attempts,
                )
                continue

            logger.info("Assigned visit %s to clinician %s", session.id, clinician_ref)
            return session

        raise last_error
