from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

WEEKLY_HOURS_PART = re.compile(r"^(\d+)([LTP])$")


class WeeklyHours(BaseModel):
    lecture: int = Field(default=0, ge=0, le=40)
    tutorial: int = Field(default=0, ge=0, le=40)
    practical: int = Field(default=0, ge=0, le=40)

    @property
    def total(self) -> int:
        return self.lecture + self.tutorial + self.practical

    @classmethod
    def parse(cls, value: str | None) -> "WeeklyHours":
        """Parse the institutional ``3L+1T+2P`` notation; unknown parts are ignored."""
        if not value:
            return cls()
        counts = {"L": 0, "T": 0, "P": 0}
        for part in value.replace(" ", "").upper().split("+"):
            match = WEEKLY_HOURS_PART.match(part)
            if match:
                counts[match.group(2)] += int(match.group(1))
        return cls(lecture=counts["L"], tutorial=counts["T"], practical=counts["P"])

    def label(self) -> str:
        return f"{self.lecture}L+{self.tutorial}T+{self.practical}P"


class RoomInfo(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str | None = None
    capacity: int = Field(gt=0, le=2000)
    type: str = "Classroom"
    facilities: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @property
    def label(self) -> str:
        return self.name or self.id


class FacultyInfo(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    department: str | None = None
    teacher_code: str | None = None
    available_slots: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class BatchInfo(BaseModel):
    id: str = Field(min_length=1, max_length=50)
    name: str | None = None
    size: int = Field(default=0, ge=0, le=2000)
    branch: str | None = None
    semester: str | None = None

    model_config = {"from_attributes": True}


class CourseBlock(BaseModel):
    """A course paired with exactly one assigned faculty member."""

    code: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1, max_length=200)
    faculty_id: str = Field(min_length=1, max_length=36)
    weekly_hours: WeeklyHours = Field(default_factory=WeeklyHours)
    required_facilities: list[str] = Field(default_factory=list)
    duration: int = Field(default=1, ge=1, le=8)
    department: str | None = None
    session_type: str | None = None

    @field_validator("weekly_hours", mode="before")
    @classmethod
    def parse_weekly_hours(cls, value):
        if isinstance(value, str):
            return WeeklyHours.parse(value)
        return value

    @property
    def block_id(self) -> str:
        return f"{self.code}-{self.faculty_id}"
