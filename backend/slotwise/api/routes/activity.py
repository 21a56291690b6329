from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from slotwise.api.deps import get_audit_log, get_db
from slotwise.models.activity_log import ActivityLog
from slotwise.schemas.audit import ActivityLogOut, AuditEvent, AuditStatistics
from slotwise.services.audit import MemoryAuditSink

router = APIRouter()


@router.get("/activity/logs", response_model=list[ActivityLogOut])
def list_activity_logs(db: Session = Depends(get_db)) -> list[ActivityLogOut]:
    query = select(ActivityLog).order_by(ActivityLog.created_at.desc()).limit(500)
    return list(db.execute(query).scalars())


@router.get("/activity/events", response_model=list[AuditEvent])
def list_audit_events(
    start: datetime | None = None,
    end: datetime | None = None,
    action: str | None = None,
    actor: str | None = None,
    tab_id: str | None = None,
    q: str | None = Query(default=None, max_length=100),
    audit_log: MemoryAuditSink = Depends(get_audit_log),
) -> list[AuditEvent]:
    events = audit_log.query(start=start, end=end, action=action, actor=actor, tab_id=tab_id)
    if q:
        matching = {id(event) for event in audit_log.search(q)}
        events = [event for event in events if id(event) in matching]
    return events


@router.get("/activity/statistics", response_model=AuditStatistics)
def audit_statistics(audit_log: MemoryAuditSink = Depends(get_audit_log)) -> AuditStatistics:
    return audit_log.statistics()
