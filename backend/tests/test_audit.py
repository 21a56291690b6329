from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from slotwise.models.activity_log import ActivityLog
from slotwise.schemas.audit import AuditEvent
from slotwise.services.audit import ActivityLogAuditSink, MemoryAuditSink


def _event(action: str, actor: str = "registrar", **fields) -> AuditEvent:
    return AuditEvent(action=action, actor=actor, tab_id="tab-1", **fields)


def test_memory_sink_is_bounded():
    sink = MemoryAuditSink(max_events=2)
    for action in ("place", "delete", "move"):
        sink.emit(_event(action))

    assert [event.action for event in sink.events] == ["delete", "move"]


def test_query_filters_combine():
    sink = MemoryAuditSink()
    sink.emit(_event("place", course_code="CS101"))
    sink.emit(_event("place", actor="hod"))
    sink.emit(_event("delete"))

    assert len(sink.query(action="place")) == 2
    assert len(sink.query(action="place", actor="hod")) == 1
    assert sink.query(tab_id="tab-9") == []


def test_query_by_time_range_accepts_naive_datetimes():
    sink = MemoryAuditSink()
    sink.emit(_event("place"))
    now = datetime.now(timezone.utc).replace(tzinfo=None)

    assert len(sink.query(start=now - timedelta(minutes=5))) == 1
    assert sink.query(end=now - timedelta(minutes=5)) == []


def test_search_matches_course_and_room():
    sink = MemoryAuditSink()
    sink.emit(_event("place", course_code="CS101", room_id="A101"))
    sink.emit(_event("place", course_code="EE201", room_id="B201"))

    assert [event.course_code for event in sink.search("cs1")] == ["CS101"]
    assert [event.course_code for event in sink.search("b201")] == ["EE201"]
    assert len(sink.search("  ")) == 2


def test_statistics_count_actions_and_actors():
    sink = MemoryAuditSink()
    sink.emit(_event("place"))
    sink.emit(_event("place", actor="hod"))
    sink.emit(_event("undo"))

    stats = sink.statistics()

    assert stats.total_events == 3
    assert stats.action_counts == {"place": 2, "undo": 1}
    assert stats.actor_counts == {"registrar": 2, "hod": 1}
    assert stats.earliest <= stats.latest


def test_activity_log_sink_persists_events(session_factory):
    sink = ActivityLogAuditSink(session_factory)

    sink.emit(_event("save", timetable_id="7-CSE-A-regular"))

    db = session_factory()
    try:
        row = db.execute(select(ActivityLog)).scalar_one()
    finally:
        db.close()
    assert row.action == "timetable.save"
    assert row.entity_id == "7-CSE-A-regular"
    assert row.details["tab_id"] == "tab-1"
