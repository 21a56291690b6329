from __future__ import annotations

import logging
from dataclasses import dataclass, field

from slotwise.core.exceptions import IndexInvariantError
from slotwise.schemas.grid import Assignment
from slotwise.services.grid import Grid

logger = logging.getLogger(__name__)

SlotKey = tuple[str, str]


@dataclass
class ConflictIndex:
    """Lookup tables derived from one Grid. The Grid is always authoritative."""

    room_index: dict[str, set[SlotKey]] = field(default_factory=dict)
    faculty_index: dict[str, set[SlotKey]] = field(default_factory=dict)
    slot_index: dict[SlotKey, Assignment] = field(default_factory=dict)

    def room_slots(self, room_id: str) -> set[SlotKey]:
        return self.room_index.get(room_id, set())

    def faculty_slots(self, faculty_id: str) -> set[SlotKey]:
        return self.faculty_index.get(faculty_id, set())


def _add(bucket: dict[str, set[SlotKey]], identity: str, key: SlotKey) -> None:
    bucket.setdefault(identity, set()).add(key)


def _discard(bucket: dict[str, set[SlotKey]], identity: str, key: SlotKey) -> None:
    keys = bucket.get(identity)
    if keys is None:
        return
    keys.discard(key)
    if not keys:
        bucket.pop(identity, None)


def build_index(grid: Grid) -> ConflictIndex:
    index = ConflictIndex()
    for day, slot, assignment in grid.occupied():
        key = (day, slot)
        index.slot_index[key] = assignment
        _add(index.room_index, assignment.room_id, key)
        _add(index.faculty_index, assignment.faculty_id, key)
    return index


def update_index(
    index: ConflictIndex,
    day: str,
    slot: str,
    old_assignment: Assignment | None,
    new_assignment: Assignment | None,
) -> ConflictIndex:
    """Apply a single-cell change in place."""
    key = (day, slot)
    if old_assignment is not None:
        index.slot_index.pop(key, None)
        _discard(index.room_index, old_assignment.room_id, key)
        _discard(index.faculty_index, old_assignment.faculty_id, key)
    if new_assignment is not None:
        index.slot_index[key] = new_assignment
        _add(index.room_index, new_assignment.room_id, key)
        _add(index.faculty_index, new_assignment.faculty_id, key)
    return index


def apply_grid_diff(index: ConflictIndex, before: Grid, after: Grid) -> ConflictIndex:
    """Feed every changed cell between two grids through ``update_index``."""
    for day, slot, old_assignment in before.iter_cells():
        new_assignment = after.get(day, slot)
        if old_assignment != new_assignment:
            update_index(index, day, slot, old_assignment, new_assignment)
    return index


def verify_index(index: ConflictIndex, grid: Grid) -> None:
    expected = build_index(grid)
    if index == expected:
        return
    stale_keys = sorted(set(index.slot_index) ^ set(expected.slot_index))
    changed_keys = sorted(
        key for key in set(index.slot_index) & set(expected.slot_index) if index.slot_index[key] != expected.slot_index[key]
    )
    raise IndexInvariantError(
        "Conflict index does not match its timetable",
        details={
            "stale_cells": [f"{day}/{slot}" for day, slot in stale_keys],
            "changed_cells": [f"{day}/{slot}" for day, slot in changed_keys],
        },
    )


def ensure_index(index: ConflictIndex | None, grid: Grid) -> ConflictIndex:
    """Return ``index`` if it agrees with ``grid``, otherwise a full rebuild."""
    if index is None:
        return build_index(grid)
    try:
        verify_index(index, grid)
    except IndexInvariantError as exc:
        logger.error("Rebuilding stale conflict index: %s %s", exc.message, exc.details)
        return build_index(grid)
    return index
