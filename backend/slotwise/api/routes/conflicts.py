from fastapi import APIRouter, Depends

from slotwise.api.deps import get_reference_data
from slotwise.core.config import get_settings
from slotwise.core.exceptions import AppError
from slotwise.schemas.conflict import (
    ConflictReport,
    DetectConflictsRequest,
    PlacementCheckRequest,
    PlacementValidation,
    ResolveConflictRequest,
)
from slotwise.schemas.grid import GridPayload
from slotwise.services.conflict_index import build_index
from slotwise.services.grid import Grid, grid_from_payload
from slotwise.services.local_conflicts import get_all_timetable_conflicts
from slotwise.services.placement import validate_placement
from slotwise.services.reference_data import ReferenceData
from slotwise.services.resolver import apply_suggestion, attach_suggestions

router = APIRouter()

settings = get_settings()


def _grid(payload: GridPayload) -> Grid:
    try:
        return grid_from_payload(payload, afternoon_hour_threshold=settings.afternoon_hour_threshold)
    except ValueError as exc:
        raise AppError(str(exc), status_code=422) from exc


@router.post("/detect", response_model=ConflictReport)
def detect_conflicts(
    payload: DetectConflictsRequest,
    reference: ReferenceData = Depends(get_reference_data),
) -> ConflictReport:
    grid = _grid(payload.grid)
    index = build_index(grid)
    rooms = payload.rooms or list(reference.rooms.values())
    faculty = payload.faculty or list(reference.faculty.values())

    conflicts = attach_suggestions(
        grid,
        get_all_timetable_conflicts(grid, index),
        rooms,
        faculty,
        limit=settings.alternative_slot_limit,
        index=index,
    )
    critical = sum(1 for conflict in conflicts if conflict.is_critical)
    return ConflictReport(conflicts=conflicts, critical_count=critical, warning_count=len(conflicts) - critical)


@router.post("/validate", response_model=PlacementValidation)
def validate(payload: PlacementCheckRequest) -> PlacementValidation:
    grid = _grid(payload.grid)
    return validate_placement(
        grid,
        payload.day,
        payload.slot,
        payload.assignment,
        payload.room,
        payload.batch,
        settings=settings,
    )


@router.post("/resolve", response_model=GridPayload)
def apply_resolution(request: ResolveConflictRequest) -> GridPayload:
    grid = _grid(request.grid)
    return apply_suggestion(grid, request.suggestion).to_payload()
