from __future__ import annotations

import logging
from collections.abc import Sequence

from slotwise.core.exceptions import SuggestionNotApplicableError
from slotwise.schemas.conflict import Conflict, Suggestion
from slotwise.schemas.grid import Assignment
from slotwise.schemas.reference import FacultyInfo, RoomInfo
from slotwise.services.conflict_index import ConflictIndex, build_index
from slotwise.services.grid import Grid, clear_assignment, set_assignment

logger = logging.getLogger(__name__)


def _target_cell(conflict: Conflict) -> tuple[str, str]:
    return conflict.colliding_day or conflict.day, conflict.colliding_slot or conflict.slot


def _covered_indexes(grid: Grid, day: str) -> set[int]:
    """Slot indexes on ``day`` taken up by a session, including its later slots."""
    covered: set[int] = set()
    for time_slot in grid.slots:
        assignment = grid.cells[day][time_slot.label]
        if assignment is not None:
            covered.update(range(time_slot.index, time_slot.index + assignment.duration))
    return covered


def find_alternative_slots(
    grid: Grid,
    day: str,
    slot: str,
    duration: int = 1,
    *,
    limit: int = 5,
) -> list[tuple[str, str]]:
    """Start cells where a session of ``duration`` slots fits entirely, same day first.

    The session at ``day``/``slot`` is the one being moved, so its own cells
    count as free.
    """
    vacated = clear_assignment(grid, day, slot) if grid.get(day, slot) is not None else grid
    same_day: list[tuple[str, str]] = []
    other_days: list[tuple[str, str]] = []
    for other_day in grid.days:
        covered = _covered_indexes(vacated, other_day)
        for time_slot in grid.slots:
            if (other_day, time_slot.label) == (day, slot):
                continue
            if time_slot.index + duration > len(grid.slots):
                continue
            if covered.intersection(range(time_slot.index, time_slot.index + duration)):
                continue
            bucket = same_day if other_day == day else other_days
            bucket.append((other_day, time_slot.label))
    return (same_day + other_days)[:limit]


def _room_suggestions(
    index: ConflictIndex,
    day: str,
    slot: str,
    target: Assignment,
    rooms: Sequence[RoomInfo],
) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    for room in rooms:
        if room.id == target.room_id or (day, slot) in index.room_slots(room.id):
            continue
        suggestions.append(
            Suggestion(
                kind="change_room",
                priority="high",
                estimated_effort="low",
                title=f"Use Room {room.label}",
                description=f"Move course to {room.label} ({room.type}, capacity: {room.capacity})",
                day=day,
                slot=slot,
                room_id=room.id,
                room_name=room.name,
            )
        )
    return suggestions


def _faculty_suggestions(
    index: ConflictIndex,
    day: str,
    slot: str,
    target: Assignment,
    faculty: Sequence[FacultyInfo],
) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    for member in faculty:
        if member.id == target.faculty_id or (day, slot) in index.faculty_slots(member.id):
            continue
        suggestions.append(
            Suggestion(
                kind="change_faculty",
                priority="high",
                estimated_effort="medium",
                title=f"Assign {member.name}",
                description=f"Change instructor to {member.name} ({member.department or 'N/A'})",
                day=day,
                slot=slot,
                faculty_id=member.id,
                faculty_name=member.name,
            )
        )
    return suggestions


def _time_suggestions(grid: Grid, day: str, slot: str, target: Assignment, kind: str, limit: int) -> list[Suggestion]:
    description = "Reschedule to avoid faculty conflict" if kind == "faculty" else None
    return [
        Suggestion(
            kind="change_time",
            priority="medium",
            estimated_effort="high" if kind == "faculty" else "medium",
            title=f"Move to {new_day} at {new_slot}",
            description=description or f"Reschedule course to {new_day} {new_slot}",
            day=day,
            slot=slot,
            new_day=new_day,
            new_slot=new_slot,
        )
        for new_day, new_slot in find_alternative_slots(grid, day, slot, target.duration, limit=limit)
    ]


def generate_suggestions(
    grid: Grid,
    conflict: Conflict,
    rooms: Sequence[RoomInfo] = (),
    faculty: Sequence[FacultyInfo] = (),
    *,
    limit: int = 5,
    index: ConflictIndex | None = None,
) -> list[Suggestion]:
    """Heuristic remediations for a room or faculty conflict.

    Suggestions rewrite the assignment already in the grid that the conflict
    collided with. Other conflict kinds get no suggestions.
    """
    if conflict.kind not in ("room", "faculty"):
        return []
    day, slot = _target_cell(conflict)
    target = grid.get(day, slot)
    if target is None:
        return []
    index = index if index is not None else build_index(grid)

    if conflict.kind == "room":
        suggestions = _room_suggestions(index, day, slot, target, rooms)
    else:
        suggestions = _faculty_suggestions(index, day, slot, target, faculty)
    suggestions.extend(_time_suggestions(grid, day, slot, target, conflict.kind, limit))
    return suggestions


def attach_suggestions(
    grid: Grid,
    conflicts: Sequence[Conflict],
    rooms: Sequence[RoomInfo] = (),
    faculty: Sequence[FacultyInfo] = (),
    *,
    limit: int = 5,
    index: ConflictIndex | None = None,
) -> list[Conflict]:
    index = index if index is not None else build_index(grid)
    return [
        conflict.model_copy(
            update={"suggestions": generate_suggestions(grid, conflict, rooms, faculty, limit=limit, index=index)}
        )
        for conflict in conflicts
    ]


def apply_suggestion(grid: Grid, suggestion: Suggestion) -> Grid:
    """Return a new grid with ``suggestion`` applied; ``grid`` is never touched."""
    source = grid.get(suggestion.day, suggestion.slot)
    if source is None:
        raise SuggestionNotApplicableError(
            f"No course is scheduled at {suggestion.slot} on {suggestion.day}",
            details={"day": suggestion.day, "slot": suggestion.slot},
        )

    if suggestion.kind == "change_room":
        if not suggestion.room_id:
            raise SuggestionNotApplicableError("Room suggestion has no room", details={"kind": suggestion.kind})
        updated = source.model_copy(update={"room_id": suggestion.room_id, "room_name": suggestion.room_name})
        return set_assignment(grid, suggestion.day, suggestion.slot, updated)

    if suggestion.kind == "change_faculty":
        if not suggestion.faculty_id:
            raise SuggestionNotApplicableError("Faculty suggestion has no faculty", details={"kind": suggestion.kind})
        updated = source.model_copy(
            update={
                "faculty_id": suggestion.faculty_id,
                "faculty_name": suggestion.faculty_name,
                "faculty_code": None,
            }
        )
        return set_assignment(grid, suggestion.day, suggestion.slot, updated)

    if not suggestion.new_day or not suggestion.new_slot:
        raise SuggestionNotApplicableError("Time suggestion has no target cell", details={"kind": suggestion.kind})
    occupant = grid.get(suggestion.new_day, suggestion.new_slot)
    moved = clear_assignment(grid, suggestion.day, suggestion.slot)
    start = grid.slot(suggestion.new_slot).index
    if _covered_indexes(moved, suggestion.new_day).intersection(range(start, start + source.duration)):
        raise SuggestionNotApplicableError(
            f"{suggestion.new_slot} on {suggestion.new_day} is no longer free",
            details={
                "day": suggestion.new_day,
                "slot": suggestion.new_slot,
                "course_code": occupant.course_code if occupant is not None else None,
            },
        )
    logger.debug(
        "Moving %s from %s/%s to %s/%s",
        source.course_code,
        suggestion.day,
        suggestion.slot,
        suggestion.new_day,
        suggestion.new_slot,
    )
    return set_assignment(moved, suggestion.new_day, suggestion.new_slot, source)
