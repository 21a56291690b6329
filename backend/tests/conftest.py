import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slotwise.api.deps import get_audit_log, get_db, get_session_manager, get_store
from slotwise.core.config import DEFAULT_TIME_SLOTS, DEFAULT_WEEK_DAYS, Settings
from slotwise.db.base import Base
from slotwise.main import app
from slotwise.models.batch import Batch
from slotwise.models.course import Course
from slotwise.models.faculty import Faculty
from slotwise.models.room import Room
from slotwise.schemas.grid import Assignment
from slotwise.services.audit import MemoryAuditSink
from slotwise.services.grid import create_empty
from slotwise.services.sessions import SessionManager
from slotwise.services.store import InMemoryTimetableStore

import slotwise.models  # noqa: F401


@pytest.fixture()
def settings():
    return Settings(week_days=DEFAULT_WEEK_DAYS, time_slots=DEFAULT_TIME_SLOTS)


@pytest.fixture()
def empty_grid():
    return create_empty(DEFAULT_WEEK_DAYS, DEFAULT_TIME_SLOTS)


@pytest.fixture()
def make_assignment():
    def factory(**overrides) -> Assignment:
        values = {
            "course_code": "CS101",
            "course_title": "Programming Fundamentals",
            "faculty_id": "F1",
            "faculty_name": "Dr. Rao",
            "room_id": "A101",
            "batch_id": "CSE-7A",
        }
        values.update(overrides)
        return Assignment(**values)

    return factory


@pytest.fixture()
def audit_log():
    return MemoryAuditSink(max_events=100)


@pytest.fixture()
def manager(settings, audit_log):
    return SessionManager(settings, audit_sinks=[audit_log])


@pytest.fixture()
def store():
    return InMemoryTimetableStore()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return TestingSessionLocal


@pytest.fixture()
def reference_rows(session_factory):
    db = session_factory()
    db.add_all(
        [
            Room(id="A101", name="A101", capacity=60, type="Classroom", facilities=["Projector"]),
            Room(id="B201", name="B201", capacity=40, type="Classroom", facilities=[]),
            Room(id="L1", name="Lab 1", capacity=30, type="Laboratory", facilities=["Computers"]),
            Faculty(id="F1", name="Dr. Rao", department="CSE", teacher_code="RAO"),
            Faculty(id="F2", name="Dr. Iyer", department="EEE", teacher_code="IYR"),
            Course(
                id="c-cs101",
                code="CS101",
                title="Programming Fundamentals",
                department="CSE",
                weekly_hours="3L+1T+0P",
                faculty_ids=["F1", "F2"],
            ),
            Course(
                id="c-ee201",
                code="EE201",
                title="Circuit Theory",
                department="EEE",
                weekly_hours="3L+0T+0P",
                faculty_ids=["F2"],
            ),
            Batch(id="CSE-7A", name="CSE 7A", size=45, branch="CSE", semester="7"),
            Batch(id="CSE-7B", name="CSE 7B", size=20, branch="CSE", semester="7"),
        ]
    )
    db.commit()
    db.close()
    return session_factory


@pytest.fixture()
def client(reference_rows, engine, manager, store, audit_log, monkeypatch):
    monkeypatch.setattr("slotwise.db.bootstrap.engine", engine)
    monkeypatch.setattr("slotwise.api.routes.health.engine", engine)

    def override_get_db():
        db = reference_rows()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_audit_log] = lambda: audit_log

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
