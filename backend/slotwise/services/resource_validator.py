from __future__ import annotations

import math
from collections.abc import Sequence

from slotwise.core.config import Settings, get_settings
from slotwise.schemas.conflict import Conflict, ResourceCheck, ResourceValidation
from slotwise.schemas.grid import Assignment
from slotwise.schemas.reference import BatchInfo, RoomInfo
from slotwise.services.grid import Grid


def recommended_capacity(batch_size: int, margin: float) -> int:
    # round first so 45 / 0.9 lands on 50 rather than 51
    return math.ceil(round(batch_size / margin, 6))


def validate_room_capacity(
    room: RoomInfo,
    batch_size: int,
    *,
    margin: float = 0.9,
    comfort_ratio: float = 0.8,
) -> ResourceCheck:
    if batch_size <= 0:
        return ResourceCheck(check="capacity", is_valid=True, message="No batch size to check against")

    utilization = round(batch_size / room.capacity * 100)
    if batch_size > math.floor(room.capacity * margin):
        recommended = recommended_capacity(batch_size, margin)
        return ResourceCheck(
            check="capacity",
            is_valid=False,
            severity="critical",
            message=(
                f"Room {room.label} capacity ({room.capacity}) insufficient for batch size ({batch_size}). "
                f"Recommended capacity: {recommended}"
            ),
            recommended_capacity=recommended,
            utilization_percent=utilization,
            suggested_actions=["Choose a larger room", "Split the batch into smaller groups", "Find alternative venue"],
        )
    if batch_size > room.capacity * comfort_ratio:
        return ResourceCheck(
            check="capacity",
            is_valid=True,
            severity="warning",
            message=f"Room {room.label} will be at high capacity ({utilization}%)",
            utilization_percent=utilization,
            suggested_actions=["Consider a larger room for comfort", "Ensure adequate ventilation"],
        )
    return ResourceCheck(
        check="capacity",
        is_valid=True,
        message="Room capacity sufficient for batch size",
        utilization_percent=utilization,
    )


def validate_room_facilities(room: RoomInfo, required: Sequence[str]) -> ResourceCheck:
    if not required:
        return ResourceCheck(check="facilities", is_valid=True, message="No specific facility requirements")
    available = set(room.facilities)
    missing = [item for item in required if item not in available]
    if missing:
        return ResourceCheck(
            check="facilities",
            is_valid=False,
            severity="warning",
            message=f"Room {room.label} missing required facilities: {', '.join(missing)}",
            missing_facilities=missing,
            suggested_actions=[
                "Choose a room with required facilities",
                "Arrange for portable equipment",
                "Contact facilities management",
            ],
        )
    return ResourceCheck(check="facilities", is_valid=True, message="All required facilities available")


def validate_batch_conflicts(
    grid: Grid,
    day: str,
    slot: str,
    candidate: Assignment,
    batch_id: str | None,
) -> list[Conflict]:
    """The batch already sits in a different course at this cell. Always critical."""
    if not batch_id:
        return []
    existing = grid.get(day, slot)
    if existing is None or existing.batch_id != batch_id or existing.course_code == candidate.course_code:
        return []
    return [
        Conflict(
            kind="batch",
            severity="critical",
            day=day,
            slot=slot,
            message=f"Batch {batch_id} already has {existing.course_code} scheduled at {slot} on {day}",
            colliding=existing,
            colliding_day=day,
            colliding_slot=slot,
            suggested_actions=[
                "Choose a different time slot",
                "Move the conflicting course",
                "Split the batch if possible",
            ],
            details={"course_code": candidate.course_code, "batch_id": batch_id},
        )
    ]


def validate_break_times(grid: Grid, day: str, slot: str, *, min_break_minutes: int = 15) -> list[Conflict]:
    """Warn about occupied neighbouring slots that leave less than the minimum break."""
    current = grid.slot(slot)
    warnings: list[Conflict] = []
    for neighbour in grid.adjacent_slots(slot):
        occupant = grid.get(day, neighbour.label)
        if occupant is None:
            continue
        gap = current.start - neighbour.end if neighbour.index < current.index else neighbour.start - current.end
        if gap >= min_break_minutes:
            continue
        warnings.append(
            Conflict(
                kind="break_time",
                severity="warning",
                day=day,
                slot=slot,
                message=f"Back-to-back classes detected. Consider adding break time between {slot} and {neighbour.label}",
                colliding=occupant,
                colliding_day=day,
                colliding_slot=neighbour.label,
                suggested_actions=[
                    "Add buffer time between classes",
                    "Ensure adequate transition time",
                    "Consider student movement time",
                ],
                details={"gap_minutes": gap, "min_break_minutes": min_break_minutes},
            )
        )
    return warnings


def _check_as_conflict(check: ResourceCheck, day: str, slot: str) -> Conflict:
    return Conflict(
        kind=check.check,
        severity=check.severity or "warning",
        day=day,
        slot=slot,
        message=check.message,
        suggested_actions=list(check.suggested_actions),
        details={
            "recommended_capacity": check.recommended_capacity,
            "utilization_percent": check.utilization_percent,
            "missing_facilities": list(check.missing_facilities),
        },
    )


def validate_all_resources(
    grid: Grid,
    day: str,
    slot: str,
    candidate: Assignment,
    room: RoomInfo | None,
    batch: BatchInfo | None,
    settings: Settings | None = None,
) -> ResourceValidation:
    settings = settings or get_settings()
    grid.require_cell(day, slot)
    result = ResourceValidation()

    if room is not None:
        if batch is not None:
            result.room_capacity = validate_room_capacity(
                room,
                batch.size,
                margin=settings.room_capacity_margin,
                comfort_ratio=settings.room_comfort_ratio,
            )
        result.room_facilities = validate_room_facilities(room, candidate.required_facilities)

    batch_id = batch.id if batch is not None else candidate.batch_id
    result.batch_conflicts = validate_batch_conflicts(grid, day, slot, candidate, batch_id)
    result.break_times = validate_break_times(grid, day, slot, min_break_minutes=settings.min_break_minutes)

    for check in (result.room_capacity, result.room_facilities):
        if check is None or check.severity is None:
            continue
        conflict = _check_as_conflict(check, day, slot)
        if conflict.is_critical:
            result.conflicts.append(conflict)
        else:
            result.warnings.append(conflict)
    result.conflicts.extend(result.batch_conflicts)
    result.warnings.extend(result.break_times)
    result.is_valid = not result.conflicts
    return result
