# src/store/sql_store.py
"""SQLAlchemy-backed store.

Each batch runs in one transaction. Updates are compare-and-swap statements
(``WHERE version = :expected``); a zero row count aborts the transaction.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.common.events import ChangeNotifier
from src.common.exceptions import DuplicateActiveVisit, StaleWrite
from src.models.models import (
    ACTIVE_VISIT_STATES, AvailabilityState, ClinicianAvailability, ClinicianAvailabilityRow,
    VisitSession, VisitSessionRow,
)
from src.store.base import AppliedChanges, ClinicStore, RecordChange, RecordKind, SessionFilter

logger = logging.getLogger(__name__)


class SqlAlchemyClinicStore(ClinicStore):

    def __init__(self, session_factory: async_sessionmaker, notifier: Optional[ChangeNotifier] = None):
        super().__init__(notifier)
        self._session_factory = session_factory

    # ------------------------------------------------------------------ reads

    async def get_session(self, session_id: UUID) -> Optional[VisitSession]:
        async with self._session_factory() as db:
            row = await db.get(VisitSessionRow, session_id)
            return row.to_entity() if row else None

    async def find_active_session(self, patient_ref: UUID, service_day: date) -> Optional[VisitSession]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(VisitSessionRow).where(
                    VisitSessionRow.patient_ref == patient_ref,
                    VisitSessionRow.active_day == service_day,
                )
            )
            row = result.scalars().first()
            return row.to_entity() if row else None

    async def list_sessions(self, session_filter: SessionFilter) -> List[VisitSession]:
        query = select(VisitSessionRow)
        if session_filter.states is not None:
            query = query.where(VisitSessionRow.state.in_(list(session_filter.states)))
        if session_filter.service_day is not None:
            query = query.where(VisitSessionRow.service_day == session_filter.service_day)
        if session_filter.clinician_ref is not None:
            query = query.where(VisitSessionRow.assigned_clinician_ref == session_filter.clinician_ref)
        if session_filter.patient_ref is not None:
            query = query.where(VisitSessionRow.patient_ref == session_filter.patient_ref)

        async with self._session_factory() as db:
            result = await db.execute(query)
            return [row.to_entity() for row in result.scalars().all()]

    async def get_clinician(self, clinician_ref: UUID) -> Optional[ClinicianAvailability]:
        async with self._session_factory() as db:
            row = await db.get(ClinicianAvailabilityRow, clinician_ref)
            return row.to_entity() if row else None

    async def list_clinicians(
        self, states: Optional[Iterable[AvailabilityState]] = None
    ) -> List[ClinicianAvailability]:
        query = select(ClinicianAvailabilityRow)
        if states is not None:
            query = query.where(ClinicianAvailabilityRow.state.in_(list(states)))
        async with self._session_factory() as db:
            result = await db.execute(query)
            return [row.to_entity() for row in result.scalars().all()]

    # ----------------------------------------------------------------- writes

    async def _apply(self, changes: Sequence[RecordChange]) -> AppliedChanges:
        current: Optional[RecordChange] = None
        async with self._session_factory() as db:
            try:
                async with db.begin():
                    for current in changes:
                        if current.is_create:
                            db.add(self._new_row(current))
                            await db.flush()
                        else:
                            await self._compare_and_swap(db, current)
                    current = None
                    return await self._reload(db, changes)
            except IntegrityError as exc:
                if current is not None and current.kind is RecordKind.VISIT_SESSION and current.is_create:
                    existing = await self.find_active_session(
                        current.values["patient_ref"], current.values["service_day"]
                    )
                    if existing is not None:
                        raise DuplicateActiveVisit(existing.id) from exc
                logger.warning("Integrity conflict while applying changes: %s", exc.orig)
                raise StaleWrite(current.key if current else None) from exc

    @staticmethod
    def _new_row(change: RecordChange):
        if change.kind is RecordKind.VISIT_SESSION:
            values = dict(change.values)
            values["active_day"] = values["service_day"] if values["state"] in ACTIVE_VISIT_STATES else None
            return VisitSessionRow(**values)
        return ClinicianAvailabilityRow(**change.values)

    @staticmethod
    async def _compare_and_swap(db, change: RecordChange) -> None:
        values = dict(change.values)
        values["version"] = change.expected_version + 1
        if change.kind is RecordKind.VISIT_SESSION:
            model, key_column = VisitSessionRow, VisitSessionRow.id
            if "state" in values:
                values["active_day"] = (
                    VisitSessionRow.service_day if values["state"] in ACTIVE_VISIT_STATES else None
                )
        else:
            model, key_column = ClinicianAvailabilityRow, ClinicianAvailabilityRow.clinician_ref

        conditions = [key_column == change.key, model.version == change.expected_version]
        if change.guard_activity:
            seen = change.expected_last_activity
            last_activity = ClinicianAvailabilityRow.last_activity_time
            conditions.append(last_activity.is_(None) if seen is None else last_activity == seen)

        result = await db.execute(
            update(model)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleWrite(change.key)

    @staticmethod
    async def _reload(db, changes: Sequence[RecordChange]) -> AppliedChanges:
        session_ids = [c.key for c in changes if c.kind is RecordKind.VISIT_SESSION]
        clinician_refs = [c.key for c in changes if c.kind is RecordKind.CLINICIAN]
        applied = AppliedChanges()
        if session_ids:
            result = await db.execute(
                select(VisitSessionRow)
                .where(VisitSessionRow.id.in_(session_ids))
                .execution_options(populate_existing=True)
            )
            for row in result.scalars().all():
                applied.sessions[row.id] = row.to_entity()
        if clinician_refs:
            result = await db.execute(
                select(ClinicianAvailabilityRow)
                .where(ClinicianAvailabilityRow.clinician_ref.in_(clinician_refs))
                .execution_options(populate_existing=True)
            )
            for row in result.scalars().all():
                applied.clinicians[row.clinician_ref] = row.to_entity()
        return applied

    async def touch_clinician(self, clinician_ref: UUID, moment: datetime) -> Optional[ClinicianAvailability]:
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(ClinicianAvailabilityRow)
                    .where(
                        ClinicianAvailabilityRow.clinician_ref == clinician_ref,
                        ClinicianAvailabilityRow.state.in_([AvailabilityState.ONLINE, AvailabilityState.BUSY]),
                    )
                    .values(last_activity_time=moment)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None
                row = await db.get(ClinicianAvailabilityRow, clinician_ref, populate_existing=True)
                return row.to_entity()
