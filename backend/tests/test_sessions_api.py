import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slotwise.api.deps import get_db
from slotwise.main import app
from slotwise.schemas.timetable import TimetableRecord


def _placement(**overrides) -> dict:
    payload = {
        "day": "Monday",
        "slot": "7:00-7:55",
        "course_code": "CS101",
        "faculty_id": "F1",
        "room_id": "A101",
        "batch_id": "CSE-7A",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def tab_id(client) -> str:
    response = client.post(
        "/api/sessions/",
        json={"name": "CSE 7A", "filters": {"semester": "7", "branch": "CSE", "batch": "CSE-7A", "type": "regular"}},
    )
    assert response.status_code == 201
    return response.json()["tab_id"]


def test_create_and_list_sessions(client, tab_id):
    second = client.post("/api/sessions/", json={})
    assert second.status_code == 201
    assert second.json()["name"] == "New Timetable 2"

    listing = client.get("/api/sessions/").json()
    assert listing["active_tab_id"] == second.json()["tab_id"]
    assert [session["tab_id"] for session in listing["sessions"]] == [tab_id, "tab-2"]

    state = client.get(f"/api/sessions/{tab_id}").json()
    assert state["grid"]["days"][0] == "Monday"
    assert state["grid"]["schedule"]["Monday"]["7:00-7:55"] is None


def test_unknown_session_is_404(client):
    response = client.get("/api/sessions/tab-99")
    assert response.status_code == 404
    assert response.json()["details"]["resource_type"] == "Session"


def test_place_then_conflicting_place(client, tab_id):
    placed = client.post(f"/api/sessions/{tab_id}/placements", json=_placement(), headers={"X-Actor": "registrar"})
    assert placed.status_code == 200
    body = placed.json()
    assert body["accepted"] is True
    assert body["session"]["occupied_cells"] == 1
    assert body["validation"]["cross_timetable"]["available"] is True
    assert body["session"]["grid"]["schedule"]["Monday"]["7:00-7:55"]["course_code"] == "CS101"

    rejected = client.post(
        f"/api/sessions/{tab_id}/placements",
        json=_placement(course_code="EE201", faculty_id="F2", batch_id="CSE-7B"),
    )
    body = rejected.json()
    assert body["accepted"] is False
    assert [(c["kind"], c["severity"]) for c in body["validation"]["conflicts"]] == [
        ("slot_occupied", "critical"),
        ("room", "critical"),
    ]
    assert body["session"]["occupied_cells"] == 1


def test_undersized_room_is_rejected(client, tab_id):
    response = client.post(f"/api/sessions/{tab_id}/validate", json=_placement(room_id="B201"))

    body = response.json()
    assert body["can_place"] is False
    capacity = next(c for c in body["conflicts"] if c["kind"] == "capacity")
    assert capacity["details"]["recommended_capacity"] == 50


def test_unknown_course_block_is_404(client, tab_id):
    response = client.post(f"/api/sessions/{tab_id}/validate", json=_placement(course_code="EE201", faculty_id="F1"))
    assert response.status_code == 404


def test_delete_move_undo_redo(client, tab_id):
    client.post(f"/api/sessions/{tab_id}/placements", json=_placement())

    moved = client.post(
        f"/api/sessions/{tab_id}/move",
        json={"from_day": "Monday", "from_slot": "7:00-7:55", "to_day": "Tuesday", "to_slot": "7:00-7:55"},
    )
    assert moved.json()["accepted"] is True
    assert moved.json()["session"]["grid"]["schedule"]["Tuesday"]["7:00-7:55"]["course_code"] == "CS101"

    deleted = client.delete(f"/api/sessions/{tab_id}/cells", params={"day": "Tuesday", "slot": "7:00-7:55"})
    assert deleted.json()["occupied_cells"] == 0

    undone = client.post(f"/api/sessions/{tab_id}/undo").json()
    assert undone["occupied_cells"] == 1
    assert undone["history"]["can_redo"] is True

    redone = client.post(f"/api/sessions/{tab_id}/redo").json()
    assert redone["occupied_cells"] == 0

    timeline = client.get(f"/api/sessions/{tab_id}/history").json()
    assert [entry["action"] for entry in timeline] == ["initial", "place", "move", "delete"]


def test_close_requires_force_when_modified(client, tab_id):
    client.post(f"/api/sessions/{tab_id}/placements", json=_placement())

    refused = client.delete(f"/api/sessions/{tab_id}")
    assert refused.status_code == 409

    closed = client.delete(f"/api/sessions/{tab_id}", params={"force": "true"})
    assert closed.status_code == 200
    assert closed.json() == {"active_tab_id": None, "sessions": []}


def test_rename_configure_duplicate(client, tab_id):
    renamed = client.patch(f"/api/sessions/{tab_id}", json={"name": "Odd semester"})
    assert renamed.json()["name"] == "Odd semester"

    filters = client.patch(f"/api/sessions/{tab_id}/config", json={"type": "make-up"}).json()
    assert (filters["semester"], filters["type"]) == ("7", "make-up")

    copy = client.post(f"/api/sessions/{tab_id}/duplicate")
    assert copy.status_code == 201
    assert copy.json()["name"] == "Odd semester (Copy)"

    clash = client.patch(f"/api/sessions/{copy.json()['tab_id']}", json={"name": "odd semester"})
    assert clash.status_code == 422


def test_save_and_load(client, tab_id, store):
    client.post(f"/api/sessions/{tab_id}/placements", json=_placement())

    saved = client.post(f"/api/sessions/{tab_id}/save", headers={"X-Actor": "registrar"})
    assert saved.status_code == 200
    assert saved.json()["id"] == "7-CSE-CSE-7A-regular"

    loaded = client.post("/api/sessions/load", json={"timetable_id": "7-CSE-CSE-7A-regular"})
    assert loaded.status_code == 201
    body = loaded.json()
    assert body["timetable_id"] == "7-CSE-CSE-7A-regular"
    assert body["is_modified"] is False
    assert body["grid"]["schedule"]["Monday"]["7:00-7:55"]["faculty_id"] == "F1"


def test_save_without_identity_is_rejected(client):
    tab = client.post("/api/sessions/", json={"filters": {"semester": "7"}}).json()["tab_id"]

    response = client.post(f"/api/sessions/{tab}/save")

    assert response.status_code == 422
    assert response.json()["details"]["missing"] == ["branch", "batch", "type"]


def test_placement_reports_other_timetables(client, tab_id, store):
    other = TimetableRecord(
        semester="7",
        branch="CSE",
        batch="CSE-7B",
        type="regular",
        schedule={"Monday": {"7:00-7:55": {"course_code": "EE201", "faculty_id": "F1", "room_id": "L1"}}},
    )
    client.put("/api/timetables/", json=other.model_dump())

    body = client.post(f"/api/sessions/{tab_id}/placements", json=_placement()).json()

    assert body["accepted"] is True
    report = body["validation"]["cross_timetable"]
    assert report["has_conflicts"] is True
    assert [c["timetable_id"] for c in report["faculty_conflicts"]] == ["7-CSE-CSE-7B-regular"]


def test_cross_check_unavailable_store(client, tab_id, store):
    store.fail_reads = True

    response = client.post(
        f"/api/sessions/{tab_id}/cross-check",
        json={"faculty_id": "F1", "day": "Monday", "slot": "7:00-7:55"},
    )

    assert response.status_code == 200
    assert response.json()["available"] is False


def test_conflicts_with_suggestions_and_apply(client, tab_id):
    client.post(f"/api/sessions/{tab_id}/placements", json=_placement(duration=2))
    client.post(
        f"/api/sessions/{tab_id}/placements",
        json=_placement(slot="7:55-8:50", course_code="EE201", faculty_id="F2", batch_id="CSE-7B"),
    )

    report = client.get(f"/api/sessions/{tab_id}/conflicts").json()
    assert (report["critical_count"], report["warning_count"]) == (0, 1)
    suggestion = next(s for s in report["conflicts"][0]["suggestions"] if s["kind"] == "change_room")

    applied = client.post(f"/api/sessions/{tab_id}/suggestions/apply", json=suggestion)
    assert applied.status_code == 200
    assert applied.json()["warning_count"] == 0


def test_review_and_clear(client, tab_id):
    client.post(f"/api/sessions/{tab_id}/placements", json=_placement())

    review = client.get(f"/api/sessions/{tab_id}/review").json()
    assert review["scheduled_hours"] == {"CS101": 1}
    assert [item["rule"] for item in review["items"]] == ["weekly_hours"]

    cleared = client.post(f"/api/sessions/{tab_id}/clear").json()
    assert cleared["occupied_cells"] == 0


def test_audit_events_are_queryable(client, tab_id):
    client.post(f"/api/sessions/{tab_id}/placements", json=_placement(), headers={"X-Actor": "registrar"})
    client.post(f"/api/sessions/{tab_id}/undo", headers={"X-Actor": "hod"})

    events = client.get("/api/activity/events", params={"actor": "registrar"}).json()
    assert [event["action"] for event in events] == ["place"]
    assert client.get("/api/activity/events", params={"q": "cs101"}).json()[0]["course_code"] == "CS101"

    stats = client.get("/api/activity/statistics").json()
    assert stats["action_counts"] == {"place": 1, "undo": 1}


def test_reference_data_outage_is_503(client, tab_id):
    engine = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    offline = sessionmaker(bind=engine)

    def override_get_db():
        db = offline()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    response = client.post(f"/api/sessions/{tab_id}/placements", json=_placement())
    engine.dispose()

    assert response.status_code == 503
    assert response.json()["message"] == "Reference data is unavailable"


class LoopRecordingSink:
    def __init__(self):
        self.calls = []

    def emit(self, event):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.calls.append((event.action, False))
        else:
            self.calls.append((event.action, True))


def test_audit_sinks_run_off_the_event_loop(client, tab_id, manager):
    sink = LoopRecordingSink()
    manager.audit_sinks.append(sink)

    client.post(f"/api/sessions/{tab_id}/placements", json=_placement())
    client.post(
        f"/api/sessions/{tab_id}/move",
        json={"from_day": "Monday", "from_slot": "7:00-7:55", "to_day": "Tuesday", "to_slot": "7:00-7:55"},
    )
    client.post(f"/api/sessions/{tab_id}/save")

    assert sink.calls == [("place", False), ("move", False), ("save", False)]
