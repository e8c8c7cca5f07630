# src/store/memory_store.py
"""In-process store for tests, demos and single-worker deployments."""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from src.common.events import ChangeNotifier
from src.common.exceptions import DuplicateActiveVisit, StaleWrite
from src.models.models import AvailabilityState, ClinicianAvailability, VisitSession
from src.store.base import AppliedChanges, ClinicStore, RecordChange, RecordKind, SessionFilter


class InMemoryClinicStore(ClinicStore):
    """Dict-backed store with one lock per record.

    A batch takes the locks of every record it touches, in sorted key order,
    then checks versions and writes. There is no store-wide lock, so writes
    to unrelated records never wait on each other.
    """

    def __init__(self, notifier: Optional[ChangeNotifier] = None):
        super().__init__(notifier)
        self._sessions: Dict[UUID, VisitSession] = {}
        self._clinicians: Dict[UUID, ClinicianAvailability] = {}
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}

    async def get_session(self, session_id: UUID) -> Optional[VisitSession]:
        return self._sessions.get(session_id)

    async def find_active_session(self, patient_ref: UUID, service_day: date) -> Optional[VisitSession]:
        for session in list(self._sessions.values()):
            if session.patient_ref == patient_ref and session.service_day == service_day and session.is_active:
                return session
        return None

    async def list_sessions(self, session_filter: SessionFilter) -> List[VisitSession]:
        return [s for s in list(self._sessions.values()) if session_filter.matches(s)]

    async def get_clinician(self, clinician_ref: UUID) -> Optional[ClinicianAvailability]:
        return self._clinicians.get(clinician_ref)

    async def list_clinicians(
        self, states: Optional[Iterable[AvailabilityState]] = None
    ) -> List[ClinicianAvailability]:
        records = list(self._clinicians.values())
        if states is not None:
            wanted = set(states)
            records = [r for r in records if r.state in wanted]
        return records

    @asynccontextmanager
    async def _record_lock(self, key: Tuple[str, str]):
        """Per-record lock, dropped once nobody holds or waits for it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def _lock_keys(self, changes: Sequence[RecordChange]) -> List[Tuple[str, str]]:
        keys = set()
        for change in changes:
            keys.add((change.kind.value, str(change.key)))
            if change.kind is RecordKind.VISIT_SESSION and change.is_create:
                # Serialises concurrent check-ins of the same patient
                keys.add(("patient", str(change.values["patient_ref"])))
        return sorted(keys)

    async def _apply(self, changes: Sequence[RecordChange]) -> AppliedChanges:
        async with AsyncExitStack() as stack:
            for key in self._lock_keys(changes):
                await stack.enter_async_context(self._record_lock(key))

            # Validate the whole batch before writing anything
            for change in changes:
                self._check(change)

            applied = AppliedChanges()
            for change in changes:
                if change.kind is RecordKind.VISIT_SESSION:
                    record = self._write(self._sessions, change, VisitSession)
                    applied.sessions[record.id] = record
                else:
                    record = self._write(self._clinicians, change, ClinicianAvailability)
                    applied.clinicians[record.clinician_ref] = record
            return applied

    def _check(self, change: RecordChange) -> None:
        table = self._sessions if change.kind is RecordKind.VISIT_SESSION else self._clinicians
        current = table.get(change.key)
        if change.is_create:
            if current is not None:
                raise StaleWrite(change.key)
            if change.kind is RecordKind.VISIT_SESSION:
                existing = self._active_for(change.values["patient_ref"], change.values["service_day"])
                if existing is not None:
                    raise DuplicateActiveVisit(existing.id)
        elif current is None or current.version != change.expected_version:
            raise StaleWrite(change.key)
        elif change.guard_activity and current.last_activity_time != change.expected_last_activity:
            raise StaleWrite(change.key)

    def _active_for(self, patient_ref: UUID, service_day: date) -> Optional[VisitSession]:
        for session in self._sessions.values():
            if session.patient_ref == patient_ref and session.service_day == service_day and session.is_active:
                return session
        return None

    @staticmethod
    def _write(table, change: RecordChange, record_type):
        if change.is_create:
            record = record_type(**change.values)
        else:
            record = replace(table[change.key], **change.values, version=change.expected_version + 1)
        table[change.key] = record
        return record

    async def touch_clinician(self, clinician_ref: UUID, moment: datetime) -> Optional[ClinicianAvailability]:
        async with self._record_lock((RecordKind.CLINICIAN.value, str(clinician_ref))):
            record = self._clinicians.get(clinician_ref)
            if record is None or not record.is_logged_in:
                return None
            record = replace(record, last_activity_time=moment)
            self._clinicians[clinician_ref] = record
            return record
