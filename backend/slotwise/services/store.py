from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from slotwise.core.exceptions import PersistenceUnavailableError, ResourceNotFoundError
from slotwise.models.timetable import Timetable
from slotwise.schemas.timetable import TimetableRecord

logger = logging.getLogger(__name__)


def timetable_key(semester: str, branch: str, batch: str, type: str) -> str:
    return f"{semester}-{branch}-{batch}-{type}"


def parse_timetable_key(key: str) -> dict[str, str]:
    """Best-effort split of a composite key.

    Only the first three separators are significant, so a ``type`` containing
    ``-`` survives; a ``branch`` or ``batch`` containing ``-`` cannot be told
    apart from the key alone and callers should prefer the stored fields.
    """
    parts = key.split("-", 3)
    if len(parts) != 4 or not all(parts):
        raise ValueError(f"Timetable key {key!r} must look like semester-branch-batch-type")
    semester, branch, batch, type_ = parts
    return {"semester": semester, "branch": branch, "batch": batch, "type": type_}


def normalize_schedule(
    schedule: Mapping[str, Mapping[str, object]] | None,
    days: Sequence[str],
    slots: Sequence[str],
) -> dict[str, dict[str, object]]:
    """Every configured cell present, absent values written as explicit nulls."""
    normalized: dict[str, dict[str, object]] = {}
    source = schedule or {}
    for day in days:
        row = source.get(day) or {}
        normalized[day] = {slot: copy.deepcopy(row.get(slot)) for slot in slots}
    return normalized


class TimetableStore(Protocol):
    async def list_timetables(self) -> list[TimetableRecord]: ...

    async def get_timetable(self, timetable_id: str) -> TimetableRecord: ...

    async def save_timetable(self, record: TimetableRecord, *, actor: str | None = None) -> TimetableRecord: ...


class InMemoryTimetableStore:
    """Dict-backed store; used by tests and for running without a database."""

    def __init__(self, records: Sequence[TimetableRecord] = ()) -> None:
        self._records: dict[str, TimetableRecord] = {record.id: record.model_copy(deep=True) for record in records}
        self.fail_reads = False

    async def list_timetables(self) -> list[TimetableRecord]:
        if self.fail_reads:
            raise PersistenceUnavailableError("Timetable storage is offline")
        return [record.model_copy(deep=True) for record in self._records.values()]

    async def get_timetable(self, timetable_id: str) -> TimetableRecord:
        if self.fail_reads:
            raise PersistenceUnavailableError("Timetable storage is offline")
        record = self._records.get(timetable_id)
        if record is None:
            raise ResourceNotFoundError("Timetable", timetable_id)
        return record.model_copy(deep=True)

    async def save_timetable(self, record: TimetableRecord, *, actor: str | None = None) -> TimetableRecord:
        self._records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)


def _to_record(row: Timetable) -> TimetableRecord:
    return TimetableRecord(
        id=row.id,
        semester=row.semester,
        branch=row.branch,
        batch=row.batch,
        type=row.type,
        schedule=row.schedule or {},
    )


class SqlTimetableStore:
    """Timetables in the ``timetables`` table.

    Each call opens its own SQLAlchemy session from ``session_factory`` and
    runs in the threadpool so the event loop is never blocked by the driver.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, operation: Callable[[Session], object]):
        def work():
            db = self._session_factory()
            try:
                return operation(db)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning("Timetable storage error: %s", exc)
                raise PersistenceUnavailableError() from exc
            finally:
                db.close()

        return await run_in_threadpool(work)

    async def list_timetables(self) -> list[TimetableRecord]:
        def operation(db: Session) -> list[TimetableRecord]:
            rows = db.execute(select(Timetable).order_by(Timetable.id)).scalars().all()
            return [_to_record(row) for row in rows]

        return await self._run(operation)

    async def get_timetable(self, timetable_id: str) -> TimetableRecord:
        def operation(db: Session) -> TimetableRecord:
            row = db.get(Timetable, timetable_id)
            if row is None:
                raise ResourceNotFoundError("Timetable", timetable_id)
            return _to_record(row)

        return await self._run(operation)

    async def save_timetable(self, record: TimetableRecord, *, actor: str | None = None) -> TimetableRecord:
        def operation(db: Session) -> TimetableRecord:
            row = db.get(Timetable, record.id)
            if row is None:
                row = Timetable(id=record.id)
                db.add(row)
            row.semester = record.semester
            row.branch = record.branch
            row.batch = record.batch
            row.type = record.type
            row.schedule = record.schedule
            row.updated_by = actor
            db.commit()
            db.refresh(row)
            return _to_record(row)

        saved = await self._run(operation)
        logger.info("Saved timetable %s", saved.id)
        return saved
