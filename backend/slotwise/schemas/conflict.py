from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field

from slotwise.schemas.grid import Assignment, GridPayload
from slotwise.schemas.reference import BatchInfo, FacultyInfo, RoomInfo

ConflictKind = Literal[
    "room",
    "faculty",
    "batch",
    "break_time",
    "capacity",
    "facilities",
    "duration",
    "slot_occupied",
]
Severity = Literal["critical", "warning"]


class Suggestion(BaseModel):
    kind: Literal["change_room", "change_time", "change_faculty"]
    priority: Literal["high", "medium"]
    estimated_effort: Literal["low", "medium", "high"]
    title: str
    description: str
    # The cell whose assignment the suggestion rewrites
    day: str
    slot: str
    room_id: str | None = None
    room_name: str | None = None
    faculty_id: str | None = None
    faculty_name: str | None = None
    new_day: str | None = None
    new_slot: str | None = None


class Conflict(BaseModel):
    kind: ConflictKind
    severity: Severity
    day: str
    slot: str
    message: str
    colliding: Assignment | None = None
    colliding_day: str | None = None
    colliding_slot: str | None = None
    suggested_actions: list[str] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    details: dict = Field(default_factory=dict)

    @property
    def is_critical(self) -> bool:
        return self.severity == "critical"


class CrossTimetableConflict(BaseModel):
    kind: Literal["faculty", "room"]
    timetable_id: str
    semester: str | None = None
    branch: str | None = None
    batch: str | None = None
    type: str | None = None
    day: str
    slot: str
    course_code: str
    course_title: str | None = None
    faculty_id: str | None = None
    faculty_name: str | None = None
    room_id: str | None = None


class CrossTimetableReport(BaseModel):
    faculty_conflicts: list[CrossTimetableConflict] = Field(default_factory=list)
    room_conflicts: list[CrossTimetableConflict] = Field(default_factory=list)
    # False when the store could not be read: "unknown", never "no conflicts"
    available: bool = True
    error: str | None = None
    request_id: int | None = None

    @computed_field
    @property
    def has_conflicts(self) -> bool:
        return bool(self.faculty_conflicts or self.room_conflicts)


class ResourceCheck(BaseModel):
    check: Literal["capacity", "facilities"]
    is_valid: bool
    severity: Severity | None = None
    message: str
    recommended_capacity: int | None = None
    utilization_percent: int | None = None
    missing_facilities: list[str] = Field(default_factory=list)
    suggested_actions: list[str] = Field(default_factory=list)


class ResourceValidation(BaseModel):
    room_capacity: ResourceCheck | None = None
    room_facilities: ResourceCheck | None = None
    batch_conflicts: list[Conflict] = Field(default_factory=list)
    break_times: list[Conflict] = Field(default_factory=list)
    is_valid: bool = True
    conflicts: list[Conflict] = Field(default_factory=list)
    warnings: list[Conflict] = Field(default_factory=list)


class PlacementValidation(BaseModel):
    can_place: bool
    conflicts: list[Conflict] = Field(default_factory=list)
    warnings: list[Conflict] = Field(default_factory=list)
    cross_timetable: CrossTimetableReport | None = None


class ConflictReport(BaseModel):
    conflicts: list[Conflict]
    critical_count: int
    warning_count: int


class DetectConflictsRequest(BaseModel):
    grid: GridPayload
    rooms: list[RoomInfo] = Field(default_factory=list)
    faculty: list[FacultyInfo] = Field(default_factory=list)


class ResolveConflictRequest(BaseModel):
    grid: GridPayload
    suggestion: Suggestion


class PlacementCheckRequest(BaseModel):
    grid: GridPayload
    day: str = Field(min_length=1)
    slot: str = Field(min_length=1)
    assignment: Assignment
    room: RoomInfo | None = None
    batch: BatchInfo | None = None
