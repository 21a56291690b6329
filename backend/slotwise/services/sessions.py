from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fastapi.concurrency import run_in_threadpool

from slotwise.core.config import Settings, get_settings
from slotwise.core.exceptions import (
    IncompleteTimetableIdentityError,
    InvalidSessionNameError,
    ResourceNotFoundError,
    SessionNotFoundError,
    UnsavedChangesError,
)
from slotwise.schemas.audit import AuditEvent
from slotwise.schemas.conflict import Conflict, CrossTimetableReport, PlacementValidation, Suggestion
from slotwise.schemas.grid import Assignment
from slotwise.schemas.reference import BatchInfo, RoomInfo
from slotwise.schemas.session import SessionFilters, SessionState, SessionSummary
from slotwise.schemas.timetable import TimetableRecord
from slotwise.services import grid as grid_ops
from slotwise.services.audit import AuditSink, LoggingAuditSink
from slotwise.services.conflict_index import (
    ConflictIndex,
    SlotKey,
    apply_grid_diff,
    build_index,
    ensure_index,
    update_index,
)
from slotwise.services.cross_timetable import CrossCheckTracker, run_cross_timetable_check
from slotwise.services.grid import Grid
from slotwise.services.history import HistoryManager
from slotwise.services.local_conflicts import get_all_timetable_conflicts
from slotwise.services.placement import validate_placement
from slotwise.services.reference_data import ReferenceData
from slotwise.services.resolver import apply_suggestion, attach_suggestions
from slotwise.services.store import TimetableStore, normalize_schedule

logger = logging.getLogger(__name__)

MAX_TAB_NAME_LENGTH = 50


@dataclass
class TimetableSession:
    """One editing tab. Nothing in here is shared with another session."""

    tab_id: str
    name: str
    grid: Grid
    index: ConflictIndex
    history: HistoryManager
    filters: SessionFilters = field(default_factory=SessionFilters)
    conflicts: list[Conflict] = field(default_factory=list)
    timetable_id: str | None = None
    is_modified: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cross_checks: CrossCheckTracker = field(default_factory=CrossCheckTracker)
    last_cross_report: CrossTimetableReport | None = None

    @property
    def critical_count(self) -> int:
        return sum(1 for conflict in self.conflicts if conflict.is_critical)

    @property
    def warning_count(self) -> int:
        return sum(1 for conflict in self.conflicts if not conflict.is_critical)


@dataclass(frozen=True)
class PlacementOutcome:
    accepted: bool
    validation: PlacementValidation


class SessionManager:
    """Owns every open tab and routes operator actions to the right one."""

    def __init__(self, settings: Settings | None = None, audit_sinks: Sequence[AuditSink] | None = None) -> None:
        self.settings = settings or get_settings()
        self.audit_sinks: list[AuditSink] = list(audit_sinks) if audit_sinks is not None else [LoggingAuditSink()]
        self._sessions: dict[str, TimetableSession] = {}
        self.active_tab_id: str | None = None
        self._next_tab = 1

    def _new_grid(self) -> Grid:
        return grid_ops.create_from_settings(self.settings)

    def _open(self, name: str | None, grid: Grid, filters: SessionFilters, timetable_id: str | None = None) -> TimetableSession:
        tab_id = f"tab-{self._next_tab}"
        self._next_tab += 1
        session = TimetableSession(
            tab_id=tab_id,
            name=self._validate_name(name or f"New Timetable {tab_id.removeprefix('tab-')}"),
            grid=grid,
            index=build_index(grid),
            history=HistoryManager(grid, max_entries=self.settings.max_history_entries),
            filters=filters,
            timetable_id=timetable_id,
        )
        session.conflicts = get_all_timetable_conflicts(session.grid, session.index)
        self._sessions[tab_id] = session
        self.active_tab_id = tab_id
        logger.info("Opened session %s (%s)", tab_id, session.name)
        return session

    def create(self, name: str | None = None, filters: SessionFilters | None = None) -> TimetableSession:
        return self._open(name, self._new_grid(), filters.model_copy() if filters else SessionFilters())

    def get(self, tab_id: str) -> TimetableSession:
        session = self._sessions.get(tab_id)
        if session is None:
            raise SessionNotFoundError(tab_id)
        return session

    def list_sessions(self) -> list[TimetableSession]:
        return list(self._sessions.values())

    def get_active(self) -> TimetableSession | None:
        if self.active_tab_id is None:
            return None
        return self._sessions.get(self.active_tab_id)

    def switch(self, tab_id: str) -> TimetableSession:
        session = self.get(tab_id)
        self.active_tab_id = tab_id
        return session

    def close(self, tab_id: str, *, force: bool = False) -> str | None:
        """Close a tab and return the tab that becomes active.

        A modified tab is only closed with ``force``; otherwise the caller
        gets an ``UnsavedChangesError`` to surface to the operator.
        """
        session = self.get(tab_id)
        if session.is_modified and not force:
            raise UnsavedChangesError(tab_id, critical_conflicts=session.critical_count)

        order = list(self._sessions)
        position = order.index(tab_id)
        del self._sessions[tab_id]
        if self.active_tab_id == tab_id:
            remaining = list(self._sessions)
            if not remaining:
                self.active_tab_id = None
            else:
                self.active_tab_id = remaining[position - 1] if position > 0 else remaining[0]
        logger.info("Closed session %s", tab_id)
        return self.active_tab_id

    def configure(self, tab_id: str, updates: dict) -> SessionFilters:
        """Merge a partial filter update; keys not present in ``updates`` are left alone."""
        session = self.get(tab_id)
        merged = session.filters.model_dump()
        merged.update({key: value for key, value in updates.items() if key in merged})
        session.filters = SessionFilters.model_validate(merged)
        return session.filters

    def _validate_name(self, name: str, exclude_tab_id: str | None = None) -> str:
        trimmed = name.strip()
        if not trimmed:
            raise InvalidSessionNameError(name, "Tab name cannot be empty")
        if len(trimmed) > MAX_TAB_NAME_LENGTH:
            raise InvalidSessionNameError(name, f"Tab name must be {MAX_TAB_NAME_LENGTH} characters or less")
        for other in self._sessions.values():
            if other.tab_id != exclude_tab_id and other.name.lower() == trimmed.lower():
                raise InvalidSessionNameError(name, "Tab name already exists")
        return trimmed

    def rename(self, tab_id: str, name: str) -> TimetableSession:
        session = self.get(tab_id)
        session.name = self._validate_name(name, exclude_tab_id=tab_id)
        return session

    def duplicate(self, tab_id: str) -> TimetableSession:
        source = self.get(tab_id)
        base = f"{source.name} (Copy)"[:MAX_TAB_NAME_LENGTH]
        name, attempt = base, 2
        while any(other.name.lower() == name.lower() for other in self._sessions.values()):
            name = f"{base[: MAX_TAB_NAME_LENGTH - 4]} {attempt}"
            attempt += 1
        duplicated = self._open(name, grid_ops.deep_copy(source.grid), source.filters.model_copy())
        duplicated.is_modified = source.grid.occupied_count() > 0
        return duplicated

    def _emit(self, session: TimetableSession, action: str, actor: str, **fields) -> None:
        event = AuditEvent(action=action, actor=actor, tab_id=session.tab_id, timetable_id=session.timetable_id, **fields)
        for sink in self.audit_sinks:
            sink.emit(event)

    def _refresh(self, session: TimetableSession, new_grid: Grid, changed: Sequence[SlotKey] | None = None) -> None:
        """Swap in ``new_grid``. Without ``changed`` every cell is diffed."""
        if changed is None:
            apply_grid_diff(session.index, session.grid, new_grid)
        else:
            for day, slot in dict.fromkeys(changed):
                update_index(session.index, day, slot, session.grid.get(day, slot), new_grid.get(day, slot))
        session.grid = new_grid
        session.index = ensure_index(session.index, new_grid)
        session.conflicts = get_all_timetable_conflicts(session.grid, session.index)
        session.is_modified = True

    def _commit(
        self,
        session: TimetableSession,
        new_grid: Grid,
        action: str,
        details: dict | None = None,
        changed: Sequence[SlotKey] | None = None,
    ) -> None:
        self._refresh(session, new_grid, changed)
        session.history.record(new_grid, action, details)

    def validate(
        self,
        tab_id: str,
        day: str,
        slot: str,
        candidate: Assignment,
        room: RoomInfo | None = None,
        batch: BatchInfo | None = None,
    ) -> PlacementValidation:
        session = self.get(tab_id)
        return validate_placement(
            session.grid, day, slot, candidate, room, batch, index=session.index, settings=self.settings
        )

    def place(
        self,
        tab_id: str,
        day: str,
        slot: str,
        candidate: Assignment,
        room: RoomInfo | None = None,
        batch: BatchInfo | None = None,
        *,
        actor: str = "anonymous",
    ) -> PlacementOutcome:
        session = self.get(tab_id)
        validation = self.validate(tab_id, day, slot, candidate, room, batch)
        if not validation.can_place:
            logger.info("Rejected placement of %s at %s/%s in %s", candidate.course_code, day, slot, tab_id)
            return PlacementOutcome(accepted=False, validation=validation)

        self._commit(
            session,
            grid_ops.set_assignment(session.grid, day, slot, candidate),
            "place",
            {"day": day, "slot": slot, "course_code": candidate.course_code},
            changed=[(day, slot)],
        )
        self._emit(
            session,
            "place",
            actor,
            day=day,
            slot=slot,
            room_id=candidate.room_id,
            faculty_id=candidate.faculty_id,
            batch_id=candidate.batch_id,
            course_code=candidate.course_code,
            details={"warnings": len(validation.warnings)},
        )
        logger.info("Placed %s at %s/%s in %s", candidate.course_code, day, slot, tab_id)
        return PlacementOutcome(accepted=True, validation=validation)

    def delete(self, tab_id: str, day: str, slot: str, *, actor: str = "anonymous") -> Assignment | None:
        session = self.get(tab_id)
        removed = session.grid.get(day, slot)
        if removed is None:
            return None
        self._commit(
            session,
            grid_ops.clear_assignment(session.grid, day, slot),
            "delete",
            {"day": day, "slot": slot, "course_code": removed.course_code},
            changed=[(day, slot)],
        )
        self._emit(
            session,
            "delete",
            actor,
            day=day,
            slot=slot,
            room_id=removed.room_id,
            faculty_id=removed.faculty_id,
            batch_id=removed.batch_id,
            course_code=removed.course_code,
        )
        return removed

    def move(
        self,
        tab_id: str,
        from_day: str,
        from_slot: str,
        to_day: str,
        to_slot: str,
        room: RoomInfo | None = None,
        batch: BatchInfo | None = None,
        *,
        actor: str = "anonymous",
    ) -> PlacementOutcome:
        """Move an assignment; it is validated against the grid without its source cell."""
        session = self.get(tab_id)
        moving = session.grid.get(from_day, from_slot)
        if moving is None:
            raise ResourceNotFoundError("Assignment", f"{from_day}/{from_slot}")
        session.grid.require_cell(to_day, to_slot)

        without_source = grid_ops.clear_assignment(session.grid, from_day, from_slot)
        validation = validate_placement(
            without_source,
            to_day,
            to_slot,
            moving,
            room,
            batch,
            index=build_index(without_source),
            settings=self.settings,
        )
        if not validation.can_place:
            return PlacementOutcome(accepted=False, validation=validation)

        self._commit(
            session,
            grid_ops.set_assignment(without_source, to_day, to_slot, moving),
            "move",
            {"from": f"{from_day}/{from_slot}", "to": f"{to_day}/{to_slot}", "course_code": moving.course_code},
            changed=[(from_day, from_slot), (to_day, to_slot)],
        )
        self._emit(
            session,
            "move",
            actor,
            day=to_day,
            slot=to_slot,
            room_id=moving.room_id,
            faculty_id=moving.faculty_id,
            batch_id=moving.batch_id,
            course_code=moving.course_code,
            details={"from_day": from_day, "from_slot": from_slot},
        )
        return PlacementOutcome(accepted=True, validation=validation)

    def apply_suggestion(self, tab_id: str, suggestion: Suggestion, *, actor: str = "anonymous") -> TimetableSession:
        session = self.get(tab_id)
        target = session.grid.get(suggestion.day, suggestion.slot)
        changed = [(suggestion.day, suggestion.slot)]
        if suggestion.new_day and suggestion.new_slot:
            changed.append((suggestion.new_day, suggestion.new_slot))
        self._commit(
            session,
            apply_suggestion(session.grid, suggestion),
            "apply_suggestion",
            {"kind": suggestion.kind},
            changed=changed,
        )
        self._emit(
            session,
            "apply_suggestion",
            actor,
            day=suggestion.new_day or suggestion.day,
            slot=suggestion.new_slot or suggestion.slot,
            room_id=suggestion.room_id or (target.room_id if target else None),
            faculty_id=suggestion.faculty_id or (target.faculty_id if target else None),
            batch_id=target.batch_id if target else None,
            course_code=target.course_code if target else None,
            details={"kind": suggestion.kind, "title": suggestion.title},
        )
        return session

    def clear_week(self, tab_id: str, *, actor: str = "anonymous") -> TimetableSession:
        session = self.get(tab_id)
        cleared = session.grid.occupied_count()
        self._commit(session, grid_ops.clear_week(session.grid), "clear_week", {"cleared_cells": cleared})
        self._emit(session, "clear_week", actor, details={"cleared_cells": cleared})
        return session

    def undo(self, tab_id: str, *, actor: str = "anonymous") -> bool:
        session = self.get(tab_id)
        restored = session.history.undo()
        if restored is None:
            return False
        self._refresh(session, restored)
        self._emit(session, "undo", actor, details={"history_index": session.history.index})
        return True

    def redo(self, tab_id: str, *, actor: str = "anonymous") -> bool:
        session = self.get(tab_id)
        restored = session.history.redo()
        if restored is None:
            return False
        self._refresh(session, restored)
        self._emit(session, "redo", actor, details={"history_index": session.history.index})
        return True

    def conflicts_with_suggestions(self, tab_id: str, reference: ReferenceData) -> list[Conflict]:
        session = self.get(tab_id)
        return attach_suggestions(
            session.grid,
            session.conflicts,
            list(reference.rooms.values()),
            list(reference.faculty.values()),
            limit=self.settings.alternative_slot_limit,
            index=session.index,
        )

    def summary(self, session: TimetableSession) -> SessionSummary:
        return SessionSummary(
            tab_id=session.tab_id,
            name=session.name,
            timetable_id=session.timetable_id,
            is_active=session.tab_id == self.active_tab_id,
            is_modified=session.is_modified,
            created_at=session.created_at,
            filters=session.filters,
            occupied_cells=session.grid.occupied_count(),
            critical_count=session.critical_count,
            warning_count=session.warning_count,
            history=session.history.summary(),
        )

    def state(self, session: TimetableSession) -> SessionState:
        return SessionState(
            **self.summary(session).model_dump(),
            grid=session.grid.to_payload(),
            conflicts=session.conflicts,
            cross_timetable=session.last_cross_report,
        )

    async def cross_check(
        self,
        tab_id: str,
        store: TimetableStore,
        *,
        faculty_id: str | None,
        room_id: str | None,
        day: str,
        slot: str,
    ) -> CrossTimetableReport | None:
        """Advisory check against every other persisted timetable.

        A check overtaken by a newer one from the same session returns None
        and leaves ``last_cross_report`` untouched.
        """
        session = self.get(tab_id)
        session.grid.require_cell(day, slot)
        request_id = session.cross_checks.next_request()
        report = await run_cross_timetable_check(
            store,
            session.cross_checks,
            faculty_id=faculty_id,
            room_id=room_id,
            day=day,
            slot=slot,
            exclude_timetable_id=session.timetable_id,
            request_id=request_id,
        )
        if report is not None:
            session.last_cross_report = report
        return report

    async def load(self, store: TimetableStore, timetable_id: str) -> TimetableSession:
        record = await store.get_timetable(timetable_id)
        grid = grid_ops.grid_from_schedule(
            self.settings.week_days,
            self.settings.time_slots,
            record.schedule,
            afternoon_hour_threshold=self.settings.afternoon_hour_threshold,
        )
        filters = SessionFilters(semester=record.semester, branch=record.branch, batch=record.batch, type=record.type)
        name = record.display_name[:MAX_TAB_NAME_LENGTH]
        if any(other.name.lower() == name.lower() for other in self._sessions.values()):
            name = None
        return self._open(name, grid, filters, timetable_id=record.id)

    async def save(self, tab_id: str, store: TimetableStore, *, actor: str = "anonymous") -> TimetableRecord:
        session = self.get(tab_id)
        identity = {key: getattr(session.filters, key) for key in ("semester", "branch", "batch", "type")}
        missing = [key for key, value in identity.items() if not value]
        if missing:
            raise IncompleteTimetableIdentityError(missing)

        record = TimetableRecord(
            **identity,
            schedule=normalize_schedule(session.grid.to_schedule(), session.grid.days, session.grid.slot_labels),
        )
        saved = await store.save_timetable(record, actor=actor)
        session.timetable_id = saved.id
        session.is_modified = False
        # Sinks may write to the database
        await run_in_threadpool(
            self._emit, session, "save", actor, details={"occupied_cells": session.grid.occupied_count()}
        )
        logger.info("Session %s saved as %s", tab_id, saved.id)
        return saved
