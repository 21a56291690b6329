from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from slotwise.schemas.conflict import CrossTimetableReport


class TimetableRecord(BaseModel):
    id: str | None = Field(default=None, max_length=255)
    semester: str = Field(min_length=1, max_length=50)
    branch: str = Field(min_length=1, max_length=100)
    batch: str = Field(min_length=1, max_length=100)
    type: str = Field(min_length=1, max_length=50)
    # day -> slot -> canonical assignment dict, or an explicit null
    schedule: dict[str, dict[str, dict | None]] = Field(default_factory=dict)

    model_config = {"from_attributes": True}

    @field_validator("semester", "branch", "batch", "type")
    @classmethod
    def strip_identity(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Timetable identity fields cannot be blank")
        return trimmed

    @model_validator(mode="after")
    def fill_identity(self) -> "TimetableRecord":
        key = f"{self.semester}-{self.branch}-{self.batch}-{self.type}"
        if self.id is None:
            self.id = key
        elif self.id != key:
            raise ValueError(f"Timetable id {self.id} does not match its identity {key}")
        return self

    @property
    def display_name(self) -> str:
        return f"{self.semester} - {self.branch} - {self.batch} - {self.type}"


class TimetableSummary(BaseModel):
    id: str
    semester: str
    branch: str
    batch: str
    type: str
    occupied_cells: int


class CrossTimetableCheckRequest(BaseModel):
    faculty_id: str | None = Field(default=None, min_length=1, max_length=36)
    room_id: str | None = Field(default=None, min_length=1, max_length=36)
    day: str = Field(min_length=1)
    slot: str = Field(min_length=1)
    exclude_timetable_id: str | None = None


class CrossTimetableCheckResponse(CrossTimetableReport):
    pass
