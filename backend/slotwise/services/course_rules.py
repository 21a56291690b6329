from __future__ import annotations

from collections import defaultdict

from slotwise.core.config import Settings, get_settings
from slotwise.schemas.conflict import Conflict
from slotwise.schemas.grid import Assignment
from slotwise.schemas.reference import FacultyInfo, RoomInfo, WeeklyHours
from slotwise.schemas.review import FacultyWorkload, ReviewItem, TimetableReview
from slotwise.services.grid import Grid
from slotwise.services.reference_data import ReferenceData

ROOM_TYPE_COMPATIBILITY: dict[str, set[str]] = {
    "lecture": {"Lecture Hall", "Classroom", "Auditorium"},
    "practical": {
        "Electronics Lab",
        "Electrical Lab",
        "Mechanical Lab",
        "Civil Lab",
        "Footwear Lab",
        "Agriculture Lab",
        "Laboratory",
        "Workshop",
    },
    "tutorial": {"Classroom", "Tutorial Room", "Seminar Room"},
    "seminar": {"Seminar Room", "Conference Room", "Classroom"},
}


def check_duration_overflow(grid: Grid, day: str, slot: str, candidate: Assignment) -> Conflict | None:
    """A session that would run past the last slot of the day cannot be placed."""
    start = grid.slot(slot)
    if start.index + candidate.duration <= len(grid.slots):
        return None
    return Conflict(
        kind="duration",
        severity="critical",
        day=day,
        slot=slot,
        message=f"Course duration ({candidate.duration} hours) exceeds available time slots from {slot}",
        suggested_actions=["Start the session earlier in the day", "Split the session into shorter blocks"],
        details={"course_code": candidate.course_code, "available_slots": len(grid.slots) - start.index},
    )


def is_room_type_compatible(session_type: str | None, room_type: str | None) -> bool:
    if not session_type or not room_type:
        return True
    return room_type in ROOM_TYPE_COMPATIBILITY.get(session_type.lower(), set())


def scheduled_hours(grid: Grid) -> dict[str, int]:
    hours: dict[str, int] = defaultdict(int)
    for _, _, assignment in grid.occupied():
        hours[assignment.course_code] += assignment.duration
    return dict(hours)


def faculty_workload(grid: Grid, faculty_id: str) -> FacultyWorkload:
    total = 0
    slots: list[str] = []
    for day, slot, assignment in grid.occupied():
        if assignment.faculty_id == faculty_id:
            total += assignment.duration
            slots.append(f"{day}-{slot}")
    return FacultyWorkload(faculty_id=faculty_id, total_hours=total, slots=slots)


def check_weekly_hours(course_code: str, weekly_hours: WeeklyHours, scheduled: int) -> ReviewItem | None:
    required = weekly_hours.total
    if required == 0 or scheduled == required:
        return None
    if scheduled < required:
        return ReviewItem(
            rule="weekly_hours",
            severity="warning",
            course_code=course_code,
            message=f"Course requires {required} hours per week, but only {scheduled} hours are scheduled",
            suggested_actions=["Schedule additional sessions", "Extend session duration", "Review course requirements"],
        )
    return ReviewItem(
        rule="weekly_hours",
        severity="info",
        course_code=course_code,
        message=f"Course has {scheduled} hours scheduled, exceeding the required {required} hours",
    )


def check_faculty_workload(workload: FacultyWorkload, max_hours: int) -> ReviewItem | None:
    if workload.total_hours <= max_hours:
        return None
    return ReviewItem(
        rule="faculty_workload",
        severity="warning",
        faculty_id=workload.faculty_id,
        message=f"Faculty workload ({workload.total_hours} hours) exceeds recommended maximum ({max_hours} hours)",
        suggested_actions=[
            "Redistribute some courses to other faculty",
            "Reduce session durations",
            "Review workload distribution",
        ],
    )


def check_faculty_availability(faculty: FacultyInfo, day: str, slot: str) -> ReviewItem | None:
    # an empty availability list means the faculty member declared no constraint
    if not faculty.available_slots or f"{day}-{slot}" in faculty.available_slots:
        return None
    return ReviewItem(
        rule="faculty_availability",
        severity="critical",
        faculty_id=faculty.id,
        day=day,
        slot=slot,
        message=f"Faculty {faculty.name} is not available at {slot} on {day}",
        suggested_actions=[
            "Choose a different time slot",
            "Assign a different faculty member",
            "Update faculty availability",
        ],
    )


def _cell_items(
    grid: Grid,
    day: str,
    slot: str,
    assignment: Assignment,
    room: RoomInfo | None,
    faculty: FacultyInfo | None,
) -> list[ReviewItem]:
    items: list[ReviewItem] = []
    overflow = check_duration_overflow(grid, day, slot, assignment)
    if overflow is not None:
        items.append(
            ReviewItem(
                rule="duration_overflow",
                severity="critical",
                course_code=assignment.course_code,
                day=day,
                slot=slot,
                message=overflow.message,
            )
        )
    if room is not None and not is_room_type_compatible(assignment.session_type, room.type):
        items.append(
            ReviewItem(
                rule="room_type",
                severity="warning",
                course_code=assignment.course_code,
                day=day,
                slot=slot,
                message=f'Course type "{assignment.session_type}" may not be suitable for room type "{room.type}"',
            )
        )
    if faculty is not None:
        if assignment.department and faculty.department and assignment.department != faculty.department:
            items.append(
                ReviewItem(
                    rule="department",
                    severity="warning",
                    course_code=assignment.course_code,
                    faculty_id=faculty.id,
                    day=day,
                    slot=slot,
                    message=(
                        f'Course department "{assignment.department}" differs from '
                        f'faculty department "{faculty.department}"'
                    ),
                )
            )
        unavailable = check_faculty_availability(faculty, day, slot)
        if unavailable is not None:
            unavailable.course_code = assignment.course_code
            items.append(unavailable)
    return items


def review_timetable(grid: Grid, reference: ReferenceData, settings: Settings | None = None) -> TimetableReview:
    """Course and faculty rules that advise on a whole timetable but never block a placement."""
    settings = settings or get_settings()
    review = TimetableReview(scheduled_hours=scheduled_hours(grid))

    weekly_plans: dict[str, WeeklyHours] = {}
    faculty_ids: list[str] = []
    for day, slot, assignment in grid.occupied():
        room = reference.rooms.get(assignment.room_id)
        faculty = reference.faculty.get(assignment.faculty_id)
        review.items.extend(_cell_items(grid, day, slot, assignment, room, faculty))
        if assignment.faculty_id not in faculty_ids:
            faculty_ids.append(assignment.faculty_id)
        if assignment.course_code not in weekly_plans:
            block = reference.course_blocks.get(f"{assignment.course_code}-{assignment.faculty_id}")
            weekly_plans[assignment.course_code] = (
                block.weekly_hours if block is not None else WeeklyHours.parse(assignment.weekly_hours)
            )

    for course_code, plan in weekly_plans.items():
        item = check_weekly_hours(course_code, plan, review.scheduled_hours.get(course_code, 0))
        if item is not None:
            review.items.append(item)

    for faculty_id in faculty_ids:
        workload = faculty_workload(grid, faculty_id)
        review.workloads.append(workload)
        item = check_faculty_workload(workload, settings.max_weekly_faculty_hours)
        if item is not None:
            review.items.append(item)
    return review
