from __future__ import annotations

from pydantic import BaseModel, Field


class Assignment(BaseModel):
    """The unit stored in a grid cell.

    Assignments are frozen: edits go through ``model_copy(update=...)`` so a
    captured snapshot can never change underneath its holder.
    """

    course_code: str = Field(min_length=1, max_length=50)
    course_title: str | None = None
    faculty_id: str = Field(min_length=1, max_length=36)
    faculty_name: str | None = None
    faculty_code: str | None = None
    room_id: str = Field(min_length=1, max_length=36)
    room_name: str | None = None
    batch_id: str | None = None
    duration: int = Field(default=1, ge=1, le=8)
    required_facilities: tuple[str, ...] = ()
    weekly_hours: str | None = None
    department: str | None = None
    session_type: str | None = None

    model_config = {"frozen": True}

    @property
    def faculty_label(self) -> str:
        return self.faculty_name or f"Faculty ID: {self.faculty_id}"

    @property
    def course_label(self) -> str:
        return f"{self.course_code} ({self.course_title or 'Unknown Course'})"


class GridPayload(BaseModel):
    days: list[str] = Field(min_length=1, max_length=7)
    slots: list[str] = Field(min_length=1, max_length=24)
    schedule: dict[str, dict[str, Assignment | None]] = Field(default_factory=dict)
