from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from fastapi.concurrency import run_in_threadpool

from slotwise.api.deps import get_actor, get_reference_data, get_session_manager, get_store
from slotwise.schemas.conflict import ConflictReport, CrossTimetableReport, PlacementValidation, Suggestion
from slotwise.schemas.grid import Assignment
from slotwise.schemas.reference import BatchInfo
from slotwise.schemas.review import TimetableReview
from slotwise.schemas.session import (
    HistoryTimelineEntry,
    MoveRequest,
    PlacementRequest,
    PlacementResult,
    SessionCreateRequest,
    SessionFilters,
    SessionListResponse,
    SessionLoadRequest,
    SessionRenameRequest,
    SessionState,
    SessionSummary,
)
from slotwise.schemas.timetable import CrossTimetableCheckRequest, TimetableRecord
from slotwise.services.course_rules import review_timetable
from slotwise.services.reference_data import ReferenceData, build_assignment
from slotwise.services.sessions import PlacementOutcome, SessionManager
from slotwise.services.store import TimetableStore

router = APIRouter()


def _list(manager: SessionManager) -> SessionListResponse:
    return SessionListResponse(
        active_tab_id=manager.active_tab_id,
        sessions=[manager.summary(session) for session in manager.list_sessions()],
    )


def _batch_for(manager: SessionManager, tab_id: str, reference: ReferenceData, batch_id: str | None) -> BatchInfo | None:
    if batch_id:
        return reference.batch(batch_id)
    selected = manager.get(tab_id).filters.batch
    return reference.batches.get(selected) if selected else None


def _candidate(
    manager: SessionManager,
    tab_id: str,
    payload: PlacementRequest,
    reference: ReferenceData,
) -> tuple[Assignment, BatchInfo | None]:
    course = reference.course_block(payload.course_code, payload.faculty_id)
    faculty = reference.faculty_member(payload.faculty_id)
    room = reference.room(payload.room_id)
    batch = _batch_for(manager, tab_id, reference, payload.batch_id)
    return build_assignment(course, faculty, room, batch, payload.duration), batch


async def _result(
    manager: SessionManager,
    tab_id: str,
    outcome: PlacementOutcome,
    store: TimetableStore,
    assignment: Assignment,
    day: str,
    slot: str,
) -> PlacementResult:
    report = await manager.cross_check(
        tab_id,
        store,
        faculty_id=assignment.faculty_id,
        room_id=assignment.room_id,
        day=day,
        slot=slot,
    )
    validation = outcome.validation.model_copy(update={"cross_timetable": report})
    return PlacementResult(
        accepted=outcome.accepted,
        validation=validation,
        session=manager.state(manager.get(tab_id)),
    )


@router.get("/", response_model=SessionListResponse)
def list_sessions(manager: SessionManager = Depends(get_session_manager)) -> SessionListResponse:
    return _list(manager)


@router.post("/", response_model=SessionState, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreateRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionState:
    return manager.state(manager.create(payload.name, payload.filters))


@router.post("/load", response_model=SessionState, status_code=status.HTTP_201_CREATED)
async def load_session(
    payload: SessionLoadRequest,
    manager: SessionManager = Depends(get_session_manager),
    store: TimetableStore = Depends(get_store),
) -> SessionState:
    return manager.state(await manager.load(store, payload.timetable_id))


@router.get("/{tab_id}", response_model=SessionState)
def get_session(tab_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionState:
    return manager.state(manager.get(tab_id))


@router.patch("/{tab_id}", response_model=SessionSummary)
def rename_session(
    tab_id: str,
    payload: SessionRenameRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionSummary:
    return manager.summary(manager.rename(tab_id, payload.name))


@router.delete("/{tab_id}", response_model=SessionListResponse)
def close_session(
    tab_id: str,
    force: bool = Query(default=False),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionListResponse:
    manager.close(tab_id, force=force)
    return _list(manager)


@router.post("/{tab_id}/activate", response_model=SessionState)
def activate_session(tab_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionState:
    return manager.state(manager.switch(tab_id))


@router.patch("/{tab_id}/config", response_model=SessionFilters)
def configure_session(
    tab_id: str,
    payload: SessionFilters,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionFilters:
    return manager.configure(tab_id, payload.model_dump(exclude_unset=True))


@router.post("/{tab_id}/duplicate", response_model=SessionState, status_code=status.HTTP_201_CREATED)
def duplicate_session(tab_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionState:
    return manager.state(manager.duplicate(tab_id))


@router.post("/{tab_id}/save", response_model=TimetableRecord)
async def save_session(
    tab_id: str,
    manager: SessionManager = Depends(get_session_manager),
    store: TimetableStore = Depends(get_store),
    actor: str = Depends(get_actor),
) -> TimetableRecord:
    return await manager.save(tab_id, store, actor=actor)


@router.post("/{tab_id}/validate", response_model=PlacementValidation)
def validate_placement(
    tab_id: str,
    payload: PlacementRequest,
    manager: SessionManager = Depends(get_session_manager),
    reference: ReferenceData = Depends(get_reference_data),
) -> PlacementValidation:
    candidate, batch = _candidate(manager, tab_id, payload, reference)
    return manager.validate(tab_id, payload.day, payload.slot, candidate, reference.room(payload.room_id), batch)


@router.post("/{tab_id}/placements", response_model=PlacementResult)
async def place_course(
    tab_id: str,
    payload: PlacementRequest,
    manager: SessionManager = Depends(get_session_manager),
    reference: ReferenceData = Depends(get_reference_data),
    store: TimetableStore = Depends(get_store),
    actor: str = Depends(get_actor),
) -> PlacementResult:
    candidate, batch = _candidate(manager, tab_id, payload, reference)
    outcome = await run_in_threadpool(
        manager.place,
        tab_id,
        payload.day,
        payload.slot,
        candidate,
        reference.room(payload.room_id),
        batch,
        actor=actor,
    )
    return await _result(manager, tab_id, outcome, store, candidate, payload.day, payload.slot)


@router.delete("/{tab_id}/cells", response_model=SessionState)
def delete_cell(
    tab_id: str,
    day: str = Query(min_length=1),
    slot: str = Query(min_length=1),
    manager: SessionManager = Depends(get_session_manager),
    actor: str = Depends(get_actor),
) -> SessionState:
    manager.delete(tab_id, day, slot, actor=actor)
    return manager.state(manager.get(tab_id))


@router.post("/{tab_id}/move", response_model=PlacementResult)
async def move_course(
    tab_id: str,
    payload: MoveRequest,
    manager: SessionManager = Depends(get_session_manager),
    reference: ReferenceData = Depends(get_reference_data),
    store: TimetableStore = Depends(get_store),
    actor: str = Depends(get_actor),
) -> PlacementResult:
    moving = manager.get(tab_id).grid.get(payload.from_day, payload.from_slot)
    room = reference.rooms.get(moving.room_id) if moving is not None else None
    batch = reference.batches.get(moving.batch_id) if moving is not None and moving.batch_id else None
    outcome = await run_in_threadpool(
        manager.move,
        tab_id,
        payload.from_day,
        payload.from_slot,
        payload.to_day,
        payload.to_slot,
        room,
        batch,
        actor=actor,
    )
    return await _result(manager, tab_id, outcome, store, moving, payload.to_day, payload.to_slot)


@router.post("/{tab_id}/undo", response_model=SessionState)
def undo(
    tab_id: str,
    manager: SessionManager = Depends(get_session_manager),
    actor: str = Depends(get_actor),
) -> SessionState:
    manager.undo(tab_id, actor=actor)
    return manager.state(manager.get(tab_id))


@router.post("/{tab_id}/redo", response_model=SessionState)
def redo(
    tab_id: str,
    manager: SessionManager = Depends(get_session_manager),
    actor: str = Depends(get_actor),
) -> SessionState:
    manager.redo(tab_id, actor=actor)
    return manager.state(manager.get(tab_id))


@router.get("/{tab_id}/history", response_model=list[HistoryTimelineEntry])
def history_timeline(
    tab_id: str,
    limit: int = Query(default=10, ge=1, le=50),
    manager: SessionManager = Depends(get_session_manager),
) -> list[HistoryTimelineEntry]:
    return manager.get(tab_id).history.timeline(limit)


@router.get("/{tab_id}/conflicts", response_model=ConflictReport)
def session_conflicts(
    tab_id: str,
    manager: SessionManager = Depends(get_session_manager),
    reference: ReferenceData = Depends(get_reference_data),
) -> ConflictReport:
    conflicts = manager.conflicts_with_suggestions(tab_id, reference)
    critical = sum(1 for conflict in conflicts if conflict.is_critical)
    return ConflictReport(conflicts=conflicts, critical_count=critical, warning_count=len(conflicts) - critical)


@router.post("/{tab_id}/suggestions/apply", response_model=SessionState)
def apply_suggestion(
    tab_id: str,
    payload: Suggestion,
    manager: SessionManager = Depends(get_session_manager),
    actor: str = Depends(get_actor),
) -> SessionState:
    return manager.state(manager.apply_suggestion(tab_id, payload, actor=actor))


@router.post("/{tab_id}/clear", response_model=SessionState)
def clear_week(
    tab_id: str,
    manager: SessionManager = Depends(get_session_manager),
    actor: str = Depends(get_actor),
) -> SessionState:
    return manager.state(manager.clear_week(tab_id, actor=actor))


@router.post("/{tab_id}/cross-check", response_model=CrossTimetableReport | None)
async def cross_check(
    tab_id: str,
    payload: CrossTimetableCheckRequest,
    manager: SessionManager = Depends(get_session_manager),
    store: TimetableStore = Depends(get_store),
) -> CrossTimetableReport | None:
    return await manager.cross_check(
        tab_id,
        store,
        faculty_id=payload.faculty_id,
        room_id=payload.room_id,
        day=payload.day,
        slot=payload.slot,
    )


@router.get("/{tab_id}/review", response_model=TimetableReview)
def review(
    tab_id: str,
    manager: SessionManager = Depends(get_session_manager),
    reference: ReferenceData = Depends(get_reference_data),
) -> TimetableReview:
    return review_timetable(manager.get(tab_id).grid, reference, manager.settings)
