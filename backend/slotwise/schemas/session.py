from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from slotwise.schemas.conflict import Conflict, CrossTimetableReport, PlacementValidation
from slotwise.schemas.grid import GridPayload


class SessionFilters(BaseModel):
    semester: str | None = None
    branch: str | None = None
    batch: str | None = None
    type: str | None = None
    department: str | None = None
    faculty_id: str | None = None
    room_id: str | None = None


class SessionCreateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=50)
    filters: SessionFilters = Field(default_factory=SessionFilters)


class SessionLoadRequest(BaseModel):
    timetable_id: str = Field(min_length=1, max_length=255)


class SessionRenameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)


class PlacementRequest(BaseModel):
    day: str = Field(min_length=1)
    slot: str = Field(min_length=1)
    course_code: str = Field(min_length=1, max_length=50)
    faculty_id: str = Field(min_length=1, max_length=36)
    room_id: str = Field(min_length=1, max_length=36)
    batch_id: str | None = Field(default=None, max_length=50)
    duration: int | None = Field(default=None, ge=1, le=8)


class MoveRequest(BaseModel):
    from_day: str = Field(min_length=1)
    from_slot: str = Field(min_length=1)
    to_day: str = Field(min_length=1)
    to_slot: str = Field(min_length=1)


class HistoryTimelineEntry(BaseModel):
    position: int
    action: str
    timestamp: datetime
    occupied_cells: int
    is_current: bool
    details: dict = Field(default_factory=dict)


class HistorySummary(BaseModel):
    total_states: int
    current_index: int
    can_undo: bool
    can_redo: bool


class SessionSummary(BaseModel):
    tab_id: str
    name: str
    timetable_id: str | None = None
    is_active: bool
    is_modified: bool
    created_at: datetime
    filters: SessionFilters
    occupied_cells: int
    critical_count: int
    warning_count: int
    history: HistorySummary


class SessionState(SessionSummary):
    grid: GridPayload
    conflicts: list[Conflict] = Field(default_factory=list)
    cross_timetable: CrossTimetableReport | None = None


class PlacementResult(BaseModel):
    accepted: bool
    validation: PlacementValidation
    session: SessionState


class SessionListResponse(BaseModel):
    active_tab_id: str | None = None
    sessions: list[SessionSummary]
