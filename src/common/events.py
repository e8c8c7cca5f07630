# src/common/events.py
"""Push hook for record changes.

The core stays call/response; a gateway subscribes here and streams updates
to browsers instead of having them poll availability.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Union

from src.models.models import ClinicianAvailability, VisitSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    kind: str  # "visit_session" or "clinician"
    record: Union[VisitSession, ClinicianAvailability]
    occurred_at: datetime


Subscriber = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """Synchronous fan-out of change events to subscribers."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # Delivery is the subscriber's concern; the change is already committed.
                logger.exception("Change subscriber %r failed for %s", callback, event.kind)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
