from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field

ReviewRule = Literal[
    "duration_overflow",
    "room_type",
    "department",
    "weekly_hours",
    "faculty_workload",
    "faculty_availability",
]


class ReviewItem(BaseModel):
    rule: ReviewRule
    severity: Literal["critical", "warning", "info"]
    message: str
    course_code: str | None = None
    faculty_id: str | None = None
    day: str | None = None
    slot: str | None = None
    suggested_actions: list[str] = Field(default_factory=list)


class FacultyWorkload(BaseModel):
    faculty_id: str
    total_hours: int
    slots: list[str] = Field(default_factory=list)


class TimetableReview(BaseModel):
    items: list[ReviewItem] = Field(default_factory=list)
    workloads: list[FacultyWorkload] = Field(default_factory=list)
    scheduled_hours: dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def critical_count(self) -> int:
        return sum(1 for item in self.items if item.severity == "critical")

    @computed_field
    @property
    def warning_count(self) -> int:
        return sum(1 for item in self.items if item.severity == "warning")
