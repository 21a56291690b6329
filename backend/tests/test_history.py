from slotwise.services.grid import set_assignment
from slotwise.services.history import HistoryManager, add_to_history, can_redo, can_undo, redo, undo


def test_add_to_history_truncates_the_redo_branch(empty_grid, make_assignment):
    first = set_assignment(empty_grid, "Monday", "7:00-7:55", make_assignment())
    second = set_assignment(first, "Monday", "7:55-8:50", make_assignment(course_code="CS202"))
    history, index = add_to_history([empty_grid], 0, first)
    history, index = add_to_history(history, index, second)

    history, index = add_to_history(history, 0, second)

    assert (len(history), index) == (2, 1)
    assert history[1] == second


def test_add_to_history_respects_the_bound(empty_grid):
    history, index = [empty_grid], 0
    for _ in range(5):
        history, index = add_to_history(history, index, empty_grid, max_entries=3)

    assert (len(history), index) == (3, 2)


def test_pure_undo_and_redo_return_copies(empty_grid, make_assignment):
    placed = set_assignment(empty_grid, "Monday", "7:00-7:55", make_assignment())
    history = [empty_grid, placed]

    assert not can_undo(0)
    assert not can_redo(history, 1)
    assert undo(history, 0) is None
    assert redo(history, 1) is None

    restored, index = undo(history, 1)
    assert index == 0
    assert restored == empty_grid
    assert restored is not empty_grid

    again, index = redo(history, 0)
    assert (again, index) == (placed, 1)


def test_manager_round_trip(empty_grid, make_assignment):
    history = HistoryManager(empty_grid)
    placed = set_assignment(empty_grid, "Monday", "7:00-7:55", make_assignment())
    history.record(placed, "place")

    assert history.undo() == empty_grid
    assert history.undo() is None
    assert history.redo() == placed
    assert history.redo() is None


def test_recording_after_undo_discards_redo(empty_grid, make_assignment):
    history = HistoryManager(empty_grid)
    history.record(set_assignment(empty_grid, "Monday", "7:00-7:55", make_assignment()), "place")
    history.undo()

    history.record(set_assignment(empty_grid, "Friday", "7:00-7:55", make_assignment()), "place")

    assert len(history) == 2
    assert not history.can_redo()


def test_manager_is_bounded(empty_grid):
    history = HistoryManager(empty_grid, max_entries=3)
    for _ in range(10):
        history.record(empty_grid, "clear_week")

    assert len(history) == 3
    assert history.summary().current_index == 2


def test_snapshots_are_isolated_from_later_edits(empty_grid, make_assignment):
    placed = set_assignment(empty_grid, "Monday", "7:00-7:55", make_assignment())
    history = HistoryManager(placed)

    current = history.current()
    current.cells["Monday"]["7:00-7:55"] = None

    assert history.current().get("Monday", "7:00-7:55") is not None


def test_timeline_marks_the_current_entry(empty_grid, make_assignment):
    history = HistoryManager(empty_grid)
    history.record(set_assignment(empty_grid, "Monday", "7:00-7:55", make_assignment()), "place", {"day": "Monday"})
    history.undo()

    timeline = history.timeline()

    assert [(entry.action, entry.is_current, entry.occupied_cells) for entry in timeline] == [
        ("initial", True, 0),
        ("place", False, 1),
    ]
    assert timeline[1].details == {"day": "Monday"}
    assert len(history.timeline(limit=1)) == 1


def test_clear_resets_to_a_single_entry(empty_grid, make_assignment):
    history = HistoryManager(empty_grid)
    placed = set_assignment(empty_grid, "Monday", "7:00-7:55", make_assignment())
    history.record(placed, "place")
    history.undo()

    history.clear(placed)

    assert len(history) == 1
    assert history.current() == placed
    assert (history.can_undo(), history.can_redo()) == (False, False)
    assert [entry.action for entry in history.timeline()] == ["initial"]
