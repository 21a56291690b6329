from __future__ import annotations

from slotwise.core.config import Settings, get_settings
from slotwise.schemas.conflict import Conflict, CrossTimetableReport, PlacementValidation
from slotwise.schemas.grid import Assignment
from slotwise.schemas.reference import BatchInfo, RoomInfo
from slotwise.services.conflict_index import ConflictIndex
from slotwise.services.course_rules import check_duration_overflow
from slotwise.services.grid import Grid
from slotwise.services.local_conflicts import check_local_conflicts
from slotwise.services.resource_validator import validate_all_resources


def check_slot_occupied(grid: Grid, day: str, slot: str, candidate: Assignment) -> Conflict | None:
    """A cell holding another course has to be cleared before it can be reused."""
    existing = grid.get(day, slot)
    if existing is None or existing.course_code == candidate.course_code:
        return None
    return Conflict(
        kind="slot_occupied",
        severity="critical",
        day=day,
        slot=slot,
        message=f"Slot already occupied by {existing.course_label} at {slot} on {day}",
        colliding=existing,
        colliding_day=day,
        colliding_slot=slot,
        suggested_actions=["Remove the scheduled course first", "Move to a different time slot"],
        details={"course_code": candidate.course_code},
    )


def validate_placement(
    grid: Grid,
    day: str,
    slot: str,
    candidate: Assignment,
    room: RoomInfo | None = None,
    batch: BatchInfo | None = None,
    *,
    index: ConflictIndex | None = None,
    settings: Settings | None = None,
    cross_timetable: CrossTimetableReport | None = None,
) -> PlacementValidation:
    """The single gate in front of every grid mutation.

    Runs synchronously. ``cross_timetable`` is attached for display only and
    never affects ``can_place``.
    """
    settings = settings or get_settings()
    grid.require_cell(day, slot)

    local = check_local_conflicts(grid, day, slot, candidate, index)
    resources = validate_all_resources(grid, day, slot, candidate, room, batch, settings)

    conflicts: list[Conflict] = []
    occupied = check_slot_occupied(grid, day, slot, candidate)
    if occupied is not None:
        conflicts.append(occupied)
    conflicts.extend(conflict for conflict in local if conflict.is_critical)
    warnings = [conflict for conflict in local if not conflict.is_critical]
    conflicts.extend(resources.conflicts)
    warnings.extend(resources.warnings)

    overflow = check_duration_overflow(grid, day, slot, candidate)
    if overflow is not None:
        conflicts.append(overflow)

    return PlacementValidation(
        can_place=not conflicts,
        conflicts=conflicts,
        warnings=warnings,
        cross_timetable=cross_timetable,
    )
