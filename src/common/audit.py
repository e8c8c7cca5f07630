# src/common/audit.py
"""Audit collaborator boundary.

The clinic flow core hands an ``AuditEvent`` to an ``AuditSink`` after each
state change. Recording is best-effort: a failing sink is logged and never
rolls back or blocks the change it describes.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("clinic_flow.audit")


@dataclass(frozen=True)
class AuditEvent:
    actor: str
    action: str
    target_type: str
    target_id: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actor": self.actor,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class AuditSink(ABC):

    @abstractmethod
    def record(self, event: AuditEvent) -> None:
        ...


class LoggingAuditSink(AuditSink):
    """Writes audit events as JSON lines to the ``clinic_flow.audit`` logger."""

    def record(self, event: AuditEvent) -> None:
        audit_logger.info(json.dumps(event.to_dict(), default=str))


class MemoryAuditSink(AuditSink):
    """Keeps events in a list; handy for tests and local demos."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[str]:
        return [e.action for e in self.events]


def record_audit(sink: AuditSink, event: AuditEvent) -> None:
    """Hand an event to the sink without letting its failures propagate."""
    try:
        sink.record(event)
    except Exception:
        logger.exception("Audit sink failed to record %s on %s %s", event.action, event.target_type, event.target_id)
