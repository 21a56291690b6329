import asyncio

import pytest

from slotwise.core.exceptions import (
    IncompleteTimetableIdentityError,
    InvalidSessionNameError,
    ResourceNotFoundError,
    SessionNotFoundError,
    UnsavedChangesError,
)
from slotwise.schemas.conflict import Suggestion
from slotwise.schemas.reference import BatchInfo, RoomInfo
from slotwise.schemas.session import SessionFilters
from slotwise.services.conflict_index import build_index
from slotwise.services.sessions import SessionManager


def test_new_tabs_get_default_names_and_become_active(manager):
    first = manager.create()
    second = manager.create()

    assert (first.tab_id, first.name) == ("tab-1", "New Timetable 1")
    assert manager.get_active() is second
    assert manager.switch("tab-1") is first
    with pytest.raises(SessionNotFoundError):
        manager.get("tab-9")


def test_sessions_share_nothing(manager, make_assignment):
    first = manager.create("CSE 7A")
    second = manager.create("CSE 7B")

    manager.place(first.tab_id, "Monday", "7:00-7:55", make_assignment())

    assert first.grid.occupied_count() == 1
    assert second.grid.occupied_count() == 0
    assert second.history.summary().total_states == 1
    assert second.index.slot_index == {}


def test_place_rejects_a_critical_conflict(manager, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())

    outcome = manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment(course_code="CS202", faculty_id="F2"))

    assert not outcome.accepted
    assert session.grid.get("Monday", "7:00-7:55").course_code == "CS101"
    assert session.history.summary().total_states == 2


def test_every_edit_keeps_the_index_current(manager, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())
    manager.place(session.tab_id, "Monday", "7:55-8:50", make_assignment(course_code="CS202", faculty_id="F2"))
    manager.move(session.tab_id, "Monday", "7:00-7:55", "Tuesday", "7:00-7:55")
    manager.delete(session.tab_id, "Monday", "7:55-8:50")
    manager.undo(session.tab_id)

    assert session.index == build_index(session.grid)


def test_overlaps_are_tracked_as_session_conflicts(manager, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment(duration=2))
    outcome = manager.place(session.tab_id, "Monday", "7:55-8:50", make_assignment(course_code="CS202", faculty_id="F2"))

    assert outcome.accepted
    assert (session.critical_count, session.warning_count) == (0, 1)

    manager.delete(session.tab_id, "Monday", "7:55-8:50")
    assert session.conflicts == []


def test_undo_and_redo_restore_grids(manager, make_assignment):
    session = manager.create()
    empty = session.grid
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())
    placed = session.grid

    assert manager.undo(session.tab_id)
    assert session.grid == empty
    assert not manager.undo(session.tab_id)
    assert manager.redo(session.tab_id)
    assert session.grid == placed
    assert not manager.redo(session.tab_id)


def test_move_validates_without_the_source_cell(manager, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment(duration=2))

    outcome = manager.move(session.tab_id, "Monday", "7:00-7:55", "Monday", "7:55-8:50")

    assert outcome.accepted
    assert session.grid.get("Monday", "7:00-7:55") is None
    assert session.grid.get("Monday", "7:55-8:50").course_code == "CS101"
    with pytest.raises(ResourceNotFoundError):
        manager.move(session.tab_id, "Friday", "7:00-7:55", "Friday", "7:55-8:50")


def test_delete_of_an_empty_cell_is_a_no_op(manager, audit_log):
    session = manager.create()

    assert manager.delete(session.tab_id, "Monday", "7:00-7:55") is None
    assert not session.is_modified
    assert audit_log.events == []


def test_close_guards_unsaved_changes(manager, make_assignment):
    first = manager.create()
    second = manager.create()
    third = manager.create()
    manager.place(second.tab_id, "Monday", "7:00-7:55", make_assignment())
    manager.switch(second.tab_id)

    with pytest.raises(UnsavedChangesError):
        manager.close(second.tab_id)

    assert manager.close(second.tab_id, force=True) == first.tab_id
    manager.switch(first.tab_id)
    assert manager.close(first.tab_id) == third.tab_id
    assert manager.close(third.tab_id) is None


def test_configure_merges_filters(manager):
    session = manager.create(filters=SessionFilters(semester="7", branch="CSE"))

    filters = manager.configure(session.tab_id, {"batch": "A", "unknown": "x"})

    assert (filters.semester, filters.branch, filters.batch) == ("7", "CSE", "A")


def test_names_are_validated(manager):
    session = manager.create("Draft")
    other = manager.create()

    with pytest.raises(InvalidSessionNameError):
        manager.rename(other.tab_id, "draft")
    with pytest.raises(InvalidSessionNameError):
        manager.rename(other.tab_id, "   ")
    with pytest.raises(InvalidSessionNameError):
        manager.rename(other.tab_id, "x" * 51)
    assert manager.rename(session.tab_id, " Draft ").name == "Draft"


def test_duplicate_copies_the_grid(manager, make_assignment):
    session = manager.create("CSE 7A")
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())

    copy = manager.duplicate(session.tab_id)
    manager.delete(session.tab_id, "Monday", "7:00-7:55")

    assert copy.name == "CSE 7A (Copy)"
    assert copy.is_modified
    assert copy.grid.get("Monday", "7:00-7:55").course_code == "CS101"
    assert manager.duplicate(session.tab_id).name == "CSE 7A (Copy) 2"


def test_apply_suggestion_through_the_session(manager, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())
    suggestion = Suggestion(
        kind="change_room",
        priority="high",
        estimated_effort="low",
        title="Use Room B201",
        description="Move course to B201",
        day="Monday",
        slot="7:00-7:55",
        room_id="B201",
    )

    manager.apply_suggestion(session.tab_id, suggestion, actor="registrar")

    assert session.grid.get("Monday", "7:00-7:55").room_id == "B201"
    assert session.index.room_slots("B201") == {("Monday", "7:00-7:55")}
    assert session.history.timeline()[-1].action == "apply_suggestion"


def test_clear_week_is_undoable(manager, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())
    manager.clear_week(session.tab_id)

    assert session.grid.occupied_count() == 0
    manager.undo(session.tab_id)
    assert session.grid.occupied_count() == 1


def test_mutations_emit_audit_events(manager, audit_log, make_assignment):
    session = manager.create()
    room = RoomInfo(id="A101", capacity=60)
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment(), room, BatchInfo(id="CSE-7A", size=45), actor="registrar")
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment(course_code="CS202"), actor="registrar")
    manager.undo(session.tab_id, actor="hod")

    events = audit_log.events
    assert [(event.action, event.actor) for event in events] == [("place", "registrar"), ("undo", "hod")]
    assert (events[0].day, events[0].slot, events[0].course_code) == ("Monday", "7:00-7:55", "CS101")
    assert events[0].tab_id == session.tab_id


def test_save_requires_the_full_identity(manager, store):
    session = manager.create(filters=SessionFilters(semester="7", branch="CSE"))

    with pytest.raises(IncompleteTimetableIdentityError) as excinfo:
        asyncio.run(manager.save(session.tab_id, store))
    assert excinfo.value.details["missing"] == ["batch", "type"]


def test_save_and_load_round_trip(manager, store, make_assignment, audit_log):
    session = manager.create(filters=SessionFilters(semester="7", branch="CSE", batch="A", type="regular"))
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())

    saved = asyncio.run(manager.save(session.tab_id, store, actor="registrar"))

    assert saved.id == "7-CSE-A-regular"
    assert session.timetable_id == saved.id
    assert not session.is_modified
    assert saved.schedule["Tuesday"]["7:00-7:55"] is None
    assert audit_log.events[-1].action == "save"

    loaded = asyncio.run(manager.load(store, saved.id))
    assert loaded.tab_id != session.tab_id
    assert loaded.name == "7 - CSE - A - regular"
    assert loaded.grid == session.grid
    assert loaded.filters.batch == "A"
    assert not loaded.is_modified


def test_cross_check_excludes_the_sessions_own_timetable(manager, store, make_assignment):
    session = manager.create(filters=SessionFilters(semester="7", branch="CSE", batch="A", type="regular"))
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())
    asyncio.run(manager.save(session.tab_id, store))
    other = manager.create(filters=SessionFilters(semester="7", branch="CSE", batch="B", type="regular"))

    own = asyncio.run(
        manager.cross_check(session.tab_id, store, faculty_id="F1", room_id="A101", day="Monday", slot="7:00-7:55")
    )
    foreign = asyncio.run(
        manager.cross_check(other.tab_id, store, faculty_id="F1", room_id=None, day="Monday", slot="7:00-7:55")
    )

    assert not own.has_conflicts
    assert [c.timetable_id for c in foreign.faculty_conflicts] == ["7-CSE-A-regular"]
    assert other.last_cross_report is foreign


def test_history_is_bounded_by_settings(settings, make_assignment):
    manager = SessionManager(settings.model_copy(update={"max_history_entries": 3}), audit_sinks=[])
    session = manager.create()
    for slot in session.grid.slot_labels[:5]:
        manager.place(session.tab_id, "Monday", slot, make_assignment(course_code=f"C{slot}", room_id=slot, faculty_id=slot))

    assert session.history.summary().total_states == 3


def test_place_never_replaces_another_course(manager, audit_log, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment(batch_id=None))

    outcome = manager.place(
        session.tab_id,
        "Monday",
        "7:00-7:55",
        make_assignment(course_code="EE201", faculty_id="F2", room_id="B201", batch_id="CSE-7B"),
    )

    assert not outcome.accepted
    assert [conflict.kind for conflict in outcome.validation.conflicts] == ["slot_occupied"]
    assert session.grid.get("Monday", "7:00-7:55").course_code == "CS101"
    assert [event.action for event in audit_log.events] == ["place"]


def test_move_onto_another_course_is_rejected(manager, make_assignment):
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())
    manager.place(session.tab_id, "Tuesday", "7:00-7:55", make_assignment(course_code="EE201", faculty_id="F2", room_id="B201"))

    outcome = manager.move(session.tab_id, "Monday", "7:00-7:55", "Tuesday", "7:00-7:55")

    assert not outcome.accepted
    assert session.grid.get("Tuesday", "7:00-7:55").course_code == "EE201"
    assert session.grid.get("Monday", "7:00-7:55").course_code == "CS101"


def test_save_emits_its_audit_event_outside_the_loop(manager, store, audit_log):
    emitted_in_loop = []

    class RecordingSink:
        def emit(self, event):
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                emitted_in_loop.append(False)
            else:
                emitted_in_loop.append(True)

    manager.audit_sinks.append(RecordingSink())
    session = manager.create(filters=SessionFilters(semester="7", branch="CSE", batch="A", type="regular"))

    asyncio.run(manager.save(session.tab_id, store))

    assert emitted_in_loop == [False]
    assert audit_log.events[-1].action == "save"


def test_single_cell_edits_update_the_index_incrementally(manager, make_assignment, monkeypatch):
    def full_diff(*args):
        raise AssertionError("single-cell edits should not diff the whole grid")

    monkeypatch.setattr("slotwise.services.sessions.apply_grid_diff", full_diff)
    session = manager.create()
    manager.place(session.tab_id, "Monday", "7:00-7:55", make_assignment())
    manager.move(session.tab_id, "Monday", "7:00-7:55", "Wednesday", "8:50-9:45")
    manager.apply_suggestion(
        session.tab_id,
        Suggestion(
            kind="change_time",
            priority="medium",
            estimated_effort="medium",
            title="Move to Friday at 7:00-7:55",
            description="Reschedule course to Friday 7:00-7:55",
            day="Wednesday",
            slot="8:50-9:45",
            new_day="Friday",
            new_slot="7:00-7:55",
        ),
    )
    manager.delete(session.tab_id, "Friday", "7:00-7:55")

    assert session.index == build_index(session.grid)
    assert session.index.slot_index == {}
