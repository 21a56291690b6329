from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

AuditAction = Literal[
    "place",
    "delete",
    "move",
    "apply_suggestion",
    "clear_week",
    "undo",
    "redo",
    "save",
]


class AuditEvent(BaseModel):
    action: AuditAction
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str = "anonymous"
    tab_id: str | None = None
    timetable_id: str | None = None
    day: str | None = None
    slot: str | None = None
    room_id: str | None = None
    faculty_id: str | None = None
    batch_id: str | None = None
    course_code: str | None = None
    details: dict = Field(default_factory=dict)

    model_config = {"frozen": True}


class AuditStatistics(BaseModel):
    total_events: int
    action_counts: dict[str, int]
    actor_counts: dict[str, int]
    earliest: datetime | None = None
    latest: datetime | None = None


class ActivityLogOut(BaseModel):
    id: str
    actor: str | None = None
    action: str
    entity_type: str | None = None
    entity_id: str | None = None
    details: dict = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}
