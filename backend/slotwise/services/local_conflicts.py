from __future__ import annotations

from collections.abc import Iterable

from slotwise.schemas.conflict import Conflict
from slotwise.schemas.grid import Assignment
from slotwise.services.conflict_index import ConflictIndex
from slotwise.services.grid import Grid, TimeSlot

ROOM_ACTIONS = [
    "Choose a different room",
    "Move to a different time slot",
    "Reschedule the conflicting course",
]
FACULTY_ACTIONS = [
    "Assign a different faculty member",
    "Move to a different time slot",
    "Reschedule the conflicting course",
]


def occupied_range(slot: TimeSlot, duration: int) -> tuple[int, int]:
    """Half-open minute range covered by a session starting at ``slot``."""
    return slot.start, slot.start + max(1, duration) * slot.length


def ranges_overlap(first: tuple[int, int], second: tuple[int, int]) -> bool:
    return first[0] < second[1] and second[0] < first[1]


def _conflict(
    *,
    kind: str,
    severity: str,
    day: str,
    slot: str,
    candidate: Assignment,
    existing: Assignment,
    existing_slot: str,
    message: str,
    actions: list[str],
) -> Conflict:
    return Conflict(
        kind=kind,
        severity=severity,
        day=day,
        slot=slot,
        message=message,
        colliding=existing,
        colliding_day=day,
        colliding_slot=existing_slot,
        suggested_actions=list(actions),
        details={
            "course_code": candidate.course_code,
            "room_id": candidate.room_id,
            "faculty_id": candidate.faculty_id,
        },
    )


def _exact_slot_conflicts(day: str, slot: str, candidate: Assignment, existing: Assignment) -> list[Conflict]:
    conflicts: list[Conflict] = []
    if existing.room_id == candidate.room_id:
        conflicts.append(
            _conflict(
                kind="room",
                severity="critical",
                day=day,
                slot=slot,
                candidate=candidate,
                existing=existing,
                existing_slot=slot,
                message=f"Room {candidate.room_id} is already booked for {existing.course_label} at {slot} on {day}",
                actions=ROOM_ACTIONS,
            )
        )
    if existing.faculty_id == candidate.faculty_id:
        conflicts.append(
            _conflict(
                kind="faculty",
                severity="critical",
                day=day,
                slot=slot,
                candidate=candidate,
                existing=existing,
                existing_slot=slot,
                message=f"{existing.faculty_label} is already teaching {existing.course_label} at {slot} on {day}",
                actions=FACULTY_ACTIONS,
            )
        )
    return conflicts


def _same_day_neighbours(
    grid: Grid,
    day: str,
    slot: str,
    candidate: Assignment,
    index: ConflictIndex | None,
) -> Iterable[tuple[str, Assignment]]:
    if index is None:
        for other_slot in grid.slots:
            existing = grid.cells[day][other_slot.label]
            if other_slot.label != slot and existing is not None:
                yield other_slot.label, existing
        return
    keys = index.room_slots(candidate.room_id) | index.faculty_slots(candidate.faculty_id)
    for other_day, other_slot in sorted(keys, key=lambda key: grid.slot(key[1]).index):
        if other_day == day and other_slot != slot:
            yield other_slot, index.slot_index[(other_day, other_slot)]


def check_local_conflicts(
    grid: Grid,
    day: str,
    slot: str,
    candidate: Assignment,
    index: ConflictIndex | None = None,
) -> list[Conflict]:
    """Room and faculty collisions for ``candidate`` placed at ``day``/``slot``.

    Collisions in the literal cell are critical. Collisions that only exist
    because a multi-slot session runs into another one on the same day are
    warnings. Pass the session's index to avoid scanning the whole day.
    """
    grid.require_cell(day, slot)
    conflicts: list[Conflict] = []

    existing = grid.cells[day][slot]
    if existing is not None and existing.course_code != candidate.course_code:
        conflicts.extend(_exact_slot_conflicts(day, slot, candidate, existing))

    candidate_range = occupied_range(grid.slot(slot), candidate.duration)
    for other_slot, other in _same_day_neighbours(grid, day, slot, candidate, index):
        other_range = occupied_range(grid.slot(other_slot), other.duration)
        if not ranges_overlap(candidate_range, other_range):
            continue
        if other.room_id == candidate.room_id:
            conflicts.append(
                _conflict(
                    kind="room",
                    severity="warning",
                    day=day,
                    slot=slot,
                    candidate=candidate,
                    existing=other,
                    existing_slot=other_slot,
                    message=(
                        f"Room {candidate.room_id} has overlapping sessions on {day}: "
                        f"{slot} overlaps {other.course_code} at {other_slot}"
                    ),
                    actions=ROOM_ACTIONS,
                )
            )
        if other.faculty_id == candidate.faculty_id:
            conflicts.append(
                _conflict(
                    kind="faculty",
                    severity="warning",
                    day=day,
                    slot=slot,
                    candidate=candidate,
                    existing=other,
                    existing_slot=other_slot,
                    message=(
                        f"{other.faculty_label} has overlapping teaching slots on {day}: "
                        f"{slot} overlaps {other.course_code} at {other_slot}"
                    ),
                    actions=FACULTY_ACTIONS,
                )
            )
    return conflicts


def conflict_pair_key(conflict: Conflict) -> tuple:
    """Identity of a conflict regardless of which side of the pair reported it."""
    own = (conflict.slot, conflict.details.get("course_code"))
    colliding_code = conflict.colliding.course_code if conflict.colliding is not None else None
    other = (conflict.colliding_slot, colliding_code)
    return conflict.kind, conflict.day, frozenset((own, other))


def deduplicate_conflicts(conflicts: Iterable[Conflict]) -> list[Conflict]:
    seen: set[tuple] = set()
    unique: list[Conflict] = []
    for conflict in conflicts:
        key = conflict_pair_key(conflict)
        if key in seen:
            continue
        seen.add(key)
        unique.append(conflict)
    return unique


def get_all_timetable_conflicts(grid: Grid, index: ConflictIndex | None = None) -> list[Conflict]:
    found: list[Conflict] = []
    for day, slot, assignment in grid.occupied():
        found.extend(check_local_conflicts(grid, day, slot, assignment, index))
    return deduplicate_conflicts(found)


def filter_conflicts_after_deletion(conflicts: Iterable[Conflict], day: str, slot: str) -> list[Conflict]:
    """Drop conflicts that were reported for, or against, a cell that is now empty."""
    return [
        conflict
        for conflict in conflicts
        if (conflict.day, conflict.slot) != (day, slot) and (conflict.colliding_day, conflict.colliding_slot) != (day, slot)
    ]
