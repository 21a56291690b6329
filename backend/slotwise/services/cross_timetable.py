from __future__ import annotations

import logging
from dataclasses import dataclass

from slotwise.core.exceptions import PersistenceUnavailableError
from slotwise.schemas.conflict import CrossTimetableConflict, CrossTimetableReport
from slotwise.schemas.grid import Assignment
from slotwise.schemas.timetable import TimetableRecord
from slotwise.services.reference_data import assignment_from_record
from slotwise.services.store import TimetableStore

logger = logging.getLogger(__name__)


def _cell(record: TimetableRecord, day: str, slot: str) -> Assignment | None:
    raw = (record.schedule.get(day) or {}).get(slot)
    if not raw:
        return None
    try:
        return assignment_from_record(raw)
    except ValueError as exc:
        logger.warning("Skipping malformed cell %s/%s in timetable %s: %s", day, slot, record.id, exc)
        return None


def _describe(kind: str, record: TimetableRecord, day: str, slot: str, assignment: Assignment) -> CrossTimetableConflict:
    return CrossTimetableConflict(
        kind=kind,
        timetable_id=record.id,
        semester=record.semester,
        branch=record.branch,
        batch=record.batch,
        type=record.type,
        day=day,
        slot=slot,
        course_code=assignment.course_code,
        course_title=assignment.course_title,
        faculty_id=assignment.faculty_id,
        faculty_name=assignment.faculty_name,
        room_id=assignment.room_id,
    )


async def check_cross_timetable_conflicts(
    store: TimetableStore,
    faculty_id: str | None,
    room_id: str | None,
    day: str,
    slot: str,
    exclude_timetable_id: str | None = None,
) -> CrossTimetableReport:
    """Find ``faculty_id`` or ``room_id`` already committed at day/slot in other timetables.

    Advisory only. A store failure propagates as ``PersistenceUnavailableError``
    so callers can never mistake "unknown" for "no conflicts".
    """
    report = CrossTimetableReport()
    if not faculty_id and not room_id:
        return report

    for record in await store.list_timetables():
        if record.id == exclude_timetable_id:
            continue
        assignment = _cell(record, day, slot)
        if assignment is None:
            continue
        if faculty_id and assignment.faculty_id == faculty_id:
            report.faculty_conflicts.append(_describe("faculty", record, day, slot, assignment))
        if room_id and assignment.room_id == room_id:
            report.room_conflicts.append(_describe("room", record, day, slot, assignment))
    return report


@dataclass
class CrossCheckTracker:
    """Issues monotonically increasing request ids; only the newest one counts."""

    latest_request_id: int = 0

    def next_request(self) -> int:
        self.latest_request_id += 1
        return self.latest_request_id

    def is_current(self, request_id: int) -> bool:
        return request_id == self.latest_request_id


async def run_cross_timetable_check(
    store: TimetableStore,
    tracker: CrossCheckTracker,
    *,
    faculty_id: str | None,
    room_id: str | None,
    day: str,
    slot: str,
    exclude_timetable_id: str | None = None,
    request_id: int | None = None,
) -> CrossTimetableReport | None:
    """Run a check on behalf of a session.

    Returns ``None`` when a newer request superseded this one while it was in
    flight. Storage failures become a report with ``available=False``.
    """
    if request_id is None:
        request_id = tracker.next_request()
    try:
        report = await check_cross_timetable_conflicts(store, faculty_id, room_id, day, slot, exclude_timetable_id)
    except PersistenceUnavailableError as exc:
        logger.warning("Cross-timetable check %d unavailable: %s", request_id, exc.message)
        report = CrossTimetableReport(available=False, error=exc.message)

    if not tracker.is_current(request_id):
        logger.debug("Discarding superseded cross-timetable check %d", request_id)
        return None
    report.request_id = request_id
    return report
