from collections.abc import Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from slotwise.core.config import get_settings
from slotwise.db.session import SessionLocal
from slotwise.services.audit import ActivityLogAuditSink, LoggingAuditSink, MemoryAuditSink
from slotwise.services.reference_data import ReferenceData, load_reference_data
from slotwise.services.sessions import SessionManager
from slotwise.services.store import SqlTimetableStore, TimetableStore

settings = get_settings()

audit_log = MemoryAuditSink(max_events=settings.max_audit_events)
session_manager = SessionManager(
    settings,
    audit_sinks=[LoggingAuditSink(), audit_log, ActivityLogAuditSink(SessionLocal)],
)
timetable_store = SqlTimetableStore(SessionLocal)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(x_actor: str | None = Header(default=None, max_length=100)) -> str:
    actor = (x_actor or "").strip()
    return actor or "anonymous"


def get_store() -> TimetableStore:
    return timetable_store


def get_session_manager() -> SessionManager:
    return session_manager


def get_audit_log() -> MemoryAuditSink:
    return audit_log


def get_reference_data(db: Session = Depends(get_db)) -> ReferenceData:
    return load_reference_data(db)
