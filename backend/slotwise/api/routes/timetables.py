from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from slotwise.api.deps import get_actor, get_store
from slotwise.core.config import get_settings
from slotwise.core.exceptions import AppError, PersistenceUnavailableError
from slotwise.schemas.timetable import (
    CrossTimetableCheckRequest,
    CrossTimetableCheckResponse,
    TimetableRecord,
    TimetableSummary,
)
from slotwise.services.cross_timetable import check_cross_timetable_conflicts
from slotwise.services.grid import grid_from_schedule
from slotwise.services.store import TimetableStore, normalize_schedule

logger = logging.getLogger(__name__)

router = APIRouter()

settings = get_settings()


def _occupied(record: TimetableRecord) -> int:
    return sum(1 for row in record.schedule.values() for cell in (row or {}).values() if cell)


@router.get("/", response_model=list[TimetableSummary])
async def list_timetables(store: TimetableStore = Depends(get_store)) -> list[TimetableSummary]:
    records = await store.list_timetables()
    return [
        TimetableSummary(
            id=record.id,
            semester=record.semester,
            branch=record.branch,
            batch=record.batch,
            type=record.type,
            occupied_cells=_occupied(record),
        )
        for record in records
    ]


@router.get("/{timetable_id}", response_model=TimetableRecord)
async def get_timetable(timetable_id: str, store: TimetableStore = Depends(get_store)) -> TimetableRecord:
    return await store.get_timetable(timetable_id)


@router.put("/", response_model=TimetableRecord)
async def save_timetable(
    payload: TimetableRecord,
    store: TimetableStore = Depends(get_store),
    actor: str = Depends(get_actor),
) -> TimetableRecord:
    # canonicalise every cell once so later readers see a single field layout
    try:
        grid = grid_from_schedule(
            settings.week_days,
            settings.time_slots,
            payload.schedule,
            afternoon_hour_threshold=settings.afternoon_hour_threshold,
        )
    except ValueError as exc:
        raise AppError(str(exc), status_code=422, details={"timetable_id": payload.id}) from exc
    record = payload.model_copy(
        update={"schedule": normalize_schedule(grid.to_schedule(), grid.days, grid.slot_labels)}
    )
    return await store.save_timetable(record, actor=actor)


@router.post("/cross-check", response_model=CrossTimetableCheckResponse)
async def cross_check(
    payload: CrossTimetableCheckRequest,
    store: TimetableStore = Depends(get_store),
) -> CrossTimetableCheckResponse:
    try:
        report = await check_cross_timetable_conflicts(
            store,
            payload.faculty_id,
            payload.room_id,
            payload.day,
            payload.slot,
            payload.exclude_timetable_id,
        )
    except PersistenceUnavailableError as exc:
        logger.warning("Cross-timetable check unavailable: %s", exc.message)
        return CrossTimetableCheckResponse(available=False, error=exc.message)
    return CrossTimetableCheckResponse(**report.model_dump(exclude={"has_conflicts"}))
