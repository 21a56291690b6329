from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass

from slotwise.core.config import Settings
from slotwise.core.exceptions import InvalidCellError
from slotwise.schemas.grid import Assignment, GridPayload
from slotwise.services.reference_data import assignment_from_record


@dataclass(frozen=True)
class TimeSlot:
    label: str
    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def _parse_clock(value: str, afternoon_hour_threshold: int) -> int:
    hours_text, minutes_text = value.strip().split(":")
    hours, minutes = int(hours_text), int(minutes_text)
    if hours < afternoon_hour_threshold:
        hours += 12
    return hours * 60 + minutes


def parse_slot_label(label: str, index: int, afternoon_hour_threshold: int = 7) -> TimeSlot:
    """Parse ``"H:MM-H:MM"``; hours below the threshold are afternoon hours."""
    try:
        start_text, end_text = label.split("-")
        start = _parse_clock(start_text, afternoon_hour_threshold)
        end = _parse_clock(end_text, afternoon_hour_threshold)
    except ValueError as exc:
        raise ValueError(f"Time slot {label!r} must look like H:MM-H:MM") from exc
    if end <= start:
        raise ValueError(f"Time slot {label!r} ends before it starts")
    return TimeSlot(label=label, index=index, start=start, end=end)


def build_time_slots(labels: Sequence[str], afternoon_hour_threshold: int = 7) -> tuple[TimeSlot, ...]:
    slots = tuple(parse_slot_label(label, index, afternoon_hour_threshold) for index, label in enumerate(labels))
    for previous, current in zip(slots, slots[1:]):
        if current.start < previous.end:
            raise ValueError(f"Time slots {previous.label} and {current.label} overlap")
    return slots


@dataclass(frozen=True, eq=False)
class Grid:
    """Day -> slot label -> optional Assignment.

    Grids are values: every mutation below returns a new Grid and leaves the
    receiver untouched.
    """

    days: tuple[str, ...]
    slots: tuple[TimeSlot, ...]
    cells: Mapping[str, Mapping[str, Assignment | None]]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self.days == other.days and self.slots == other.slots and self.to_schedule() == other.to_schedule()

    @property
    def slot_labels(self) -> tuple[str, ...]:
        return tuple(slot.label for slot in self.slots)

    def slot(self, label: str) -> TimeSlot:
        for slot in self.slots:
            if slot.label == label:
                return slot
        raise InvalidCellError(day="*", slot=label)

    def contains(self, day: str, slot: str) -> bool:
        return day in self.cells and slot in self.cells[day]

    def require_cell(self, day: str, slot: str) -> None:
        if not self.contains(day, slot):
            raise InvalidCellError(day=day, slot=slot)

    def get(self, day: str, slot: str) -> Assignment | None:
        self.require_cell(day, slot)
        return self.cells[day][slot]

    def adjacent_slots(self, label: str) -> list[TimeSlot]:
        current = self.slot(label)
        adjacent: list[TimeSlot] = []
        if current.index > 0:
            adjacent.append(self.slots[current.index - 1])
        if current.index < len(self.slots) - 1:
            adjacent.append(self.slots[current.index + 1])
        return adjacent

    def iter_cells(self) -> Iterator[tuple[str, str, Assignment | None]]:
        for day in self.days:
            for slot in self.slots:
                yield day, slot.label, self.cells[day][slot.label]

    def occupied(self) -> Iterator[tuple[str, str, Assignment]]:
        for day, slot, assignment in self.iter_cells():
            if assignment is not None:
                yield day, slot, assignment

    def occupied_count(self) -> int:
        return sum(1 for _ in self.occupied())

    def to_schedule(self) -> dict[str, dict[str, dict | None]]:
        return {
            day: {
                slot.label: (None if self.cells[day][slot.label] is None else self.cells[day][slot.label].model_dump(mode="json"))
                for slot in self.slots
            }
            for day in self.days
        }

    def to_payload(self) -> GridPayload:
        return GridPayload(
            days=list(self.days),
            slots=list(self.slot_labels),
            schedule={day: dict(row) for day, row in self.cells.items()},
        )


def _coerce_slots(slots: Sequence[str | TimeSlot], afternoon_hour_threshold: int) -> tuple[TimeSlot, ...]:
    if all(isinstance(slot, TimeSlot) for slot in slots):
        return tuple(slots)
    return build_time_slots([slot.label if isinstance(slot, TimeSlot) else slot for slot in slots], afternoon_hour_threshold)


def create_empty(
    days: Sequence[str],
    slots: Sequence[str | TimeSlot],
    *,
    afternoon_hour_threshold: int = 7,
) -> Grid:
    if len(set(days)) != len(days):
        raise ValueError("Days must be unique")
    time_slots = _coerce_slots(slots, afternoon_hour_threshold)
    cells = {day: {slot.label: None for slot in time_slots} for day in days}
    return Grid(days=tuple(days), slots=time_slots, cells=cells)


def create_from_settings(settings: Settings) -> Grid:
    return create_empty(
        settings.week_days,
        settings.time_slots,
        afternoon_hour_threshold=settings.afternoon_hour_threshold,
    )


def _with_cell(grid: Grid, day: str, slot: str, assignment: Assignment | None) -> Grid:
    grid.require_cell(day, slot)
    cells = {name: dict(row) for name, row in grid.cells.items()}
    cells[day][slot] = assignment
    return Grid(days=grid.days, slots=grid.slots, cells=cells)


def set_assignment(grid: Grid, day: str, slot: str, assignment: Assignment) -> Grid:
    return _with_cell(grid, day, slot, assignment)


def clear_assignment(grid: Grid, day: str, slot: str) -> Grid:
    return _with_cell(grid, day, slot, None)


def has_assignment(grid: Grid, day: str, slot: str) -> bool:
    return grid.get(day, slot) is not None


def clear_week(grid: Grid) -> Grid:
    return create_empty(grid.days, grid.slots)


def deep_copy(grid: Grid) -> Grid:
    return copy.deepcopy(grid)


def grid_from_schedule(
    days: Sequence[str],
    slots: Sequence[str | TimeSlot],
    schedule: Mapping[str, Mapping[str, object]] | None,
    *,
    afternoon_hour_threshold: int = 7,
) -> Grid:
    """Build a grid from a persisted schedule; missing cells become explicit nulls."""
    grid = create_empty(days, slots, afternoon_hour_threshold=afternoon_hour_threshold)
    cells = {name: dict(row) for name, row in grid.cells.items()}
    for day, row in (schedule or {}).items():
        if day not in cells or not row:
            continue
        for slot, raw in row.items():
            if slot not in cells[day] or raw is None:
                continue
            cells[day][slot] = raw if isinstance(raw, Assignment) else assignment_from_record(raw)
    return Grid(days=grid.days, slots=grid.slots, cells=cells)


def grid_from_payload(payload: GridPayload, *, afternoon_hour_threshold: int = 7) -> Grid:
    return grid_from_schedule(
        payload.days,
        payload.slots,
        payload.schedule,
        afternoon_hour_threshold=afternoon_hour_threshold,
    )
