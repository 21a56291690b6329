from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from slotwise.core.exceptions import PersistenceUnavailableError, ResourceNotFoundError
from slotwise.models.batch import Batch
from slotwise.models.course import Course
from slotwise.models.faculty import Faculty
from slotwise.models.room import Room
from slotwise.schemas.grid import Assignment
from slotwise.schemas.reference import BatchInfo, CourseBlock, FacultyInfo, RoomInfo, WeeklyHours

logger = logging.getLogger(__name__)


def build_assignment(
    course: CourseBlock,
    faculty: FacultyInfo,
    room: RoomInfo,
    batch: BatchInfo | None = None,
    duration: int | None = None,
) -> Assignment:
    return Assignment(
        course_code=course.code,
        course_title=course.title,
        faculty_id=faculty.id,
        faculty_name=faculty.name,
        faculty_code=faculty.teacher_code,
        room_id=room.id,
        room_name=room.name,
        batch_id=batch.id if batch is not None else None,
        duration=duration or course.duration,
        required_facilities=tuple(course.required_facilities),
        weekly_hours=course.weekly_hours.label(),
        department=course.department,
        session_type=course.session_type,
    )


def _first(raw: Mapping, *paths: str):
    for path in paths:
        value = raw
        for part in path.split("."):
            if not isinstance(value, Mapping):
                value = None
                break
            value = value.get(part)
        if value not in (None, ""):
            return value
    return None


def _as_text(value) -> str | None:
    return None if value is None else str(value)


def _required(raw: Mapping, label: str, *paths: str) -> str:
    value = _first(raw, *paths)
    if value is None:
        raise ValueError(f"Timetable cell is missing its {label}")
    return str(value)


def assignment_from_record(raw: Mapping) -> Assignment:
    """Canonicalise one persisted cell.

    Records written by older clients spell the same field several ways; the
    spellings are resolved here once so detectors read a single field path.
    """
    duration = _first(raw, "duration")
    try:
        duration_value = max(1, int(duration)) if duration is not None else 1
    except (TypeError, ValueError):
        duration_value = 1
    facilities = _first(raw, "required_facilities", "requiredFacilities") or ()
    return Assignment(
        course_code=_required(raw, "course code", "course_code", "courseCode", "code"),
        course_title=_as_text(_first(raw, "course_title", "courseName", "title", "name")),
        faculty_id=_required(raw, "faculty", "faculty_id", "teacherId", "facultyId", "teacher.id", "faculty.id", "instructor.id"),
        faculty_name=_as_text(_first(raw, "faculty_name", "teacherName", "teacher.name", "faculty.name")),
        faculty_code=_as_text(_first(raw, "faculty_code", "teacherCode", "teacher.teacherCode")),
        room_id=_required(raw, "room", "room_id", "roomId", "room", "roomNumber"),
        room_name=_as_text(_first(raw, "room_name", "roomName")),
        batch_id=_as_text(_first(raw, "batch_id", "batchId")),
        duration=duration_value,
        required_facilities=tuple(facilities),
        weekly_hours=_as_text(_first(raw, "weekly_hours", "weeklyHours")),
        department=_as_text(_first(raw, "department")),
        session_type=_as_text(_first(raw, "session_type", "sessionType", "type")),
    )


def map_course_blocks(courses: Iterable[Course], faculty_by_id: Mapping[str, FacultyInfo]) -> list[CourseBlock]:
    """One CourseBlock per (course, assigned faculty) pair."""
    blocks: list[CourseBlock] = []
    for course in courses:
        for faculty_id in course.faculty_ids or []:
            faculty = faculty_by_id.get(faculty_id)
            blocks.append(
                CourseBlock(
                    code=course.code,
                    title=course.title,
                    faculty_id=faculty_id,
                    weekly_hours=WeeklyHours.parse(course.weekly_hours),
                    required_facilities=list(course.required_facilities or []),
                    duration=course.duration or 1,
                    department=course.department or (faculty.department if faculty else None),
                    session_type=course.session_type,
                )
            )
    return blocks


@dataclass
class ReferenceData:
    rooms: dict[str, RoomInfo] = field(default_factory=dict)
    faculty: dict[str, FacultyInfo] = field(default_factory=dict)
    batches: dict[str, BatchInfo] = field(default_factory=dict)
    course_blocks: dict[str, CourseBlock] = field(default_factory=dict)

    def room(self, room_id: str) -> RoomInfo:
        room = self.rooms.get(room_id)
        if room is None:
            raise ResourceNotFoundError("Room", room_id)
        return room

    def faculty_member(self, faculty_id: str) -> FacultyInfo:
        member = self.faculty.get(faculty_id)
        if member is None:
            raise ResourceNotFoundError("Faculty", faculty_id)
        return member

    def batch(self, batch_id: str) -> BatchInfo:
        batch = self.batches.get(batch_id)
        if batch is None:
            raise ResourceNotFoundError("Batch", batch_id)
        return batch

    def course_block(self, course_code: str, faculty_id: str) -> CourseBlock:
        block = self.course_blocks.get(f"{course_code}-{faculty_id}")
        if block is None:
            raise ResourceNotFoundError("Course block", f"{course_code}-{faculty_id}")
        return block


def load_reference_data(db: Session) -> ReferenceData:
    try:
        rooms = {room.id: RoomInfo.model_validate(room) for room in db.execute(select(Room)).scalars()}
        faculty = {member.id: FacultyInfo.model_validate(member) for member in db.execute(select(Faculty)).scalars()}
        batches = {batch.id: BatchInfo.model_validate(batch) for batch in db.execute(select(Batch)).scalars()}
        blocks = map_course_blocks(db.execute(select(Course)).scalars(), faculty)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Reference data unavailable: %s", exc)
        raise PersistenceUnavailableError("Reference data is unavailable") from exc
    return ReferenceData(
        rooms=rooms,
        faculty=faculty,
        batches=batches,
        course_blocks={block.block_id: block for block in blocks},
    )
