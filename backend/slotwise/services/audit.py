from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from slotwise.models.activity_log import ActivityLog
from slotwise.schemas.audit import AuditEvent, AuditStatistics

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    *,
    actor: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> None:
    record = ActivityLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuditSink(Protocol):
    def emit(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    def emit(self, event: AuditEvent) -> None:
        logger.info(
            "audit action=%s actor=%s tab=%s cell=%s/%s course=%s room=%s faculty=%s",
            event.action,
            event.actor,
            event.tab_id,
            event.day,
            event.slot,
            event.course_code,
            event.room_id,
            event.faculty_id,
        )


class MemoryAuditSink:
    """Keeps the most recent ``max_events`` events for querying."""

    def __init__(self, max_events: int = 1000) -> None:
        self.max_events = max(1, max_events)
        self._events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        self._events.append(event)
        if len(self._events) > self.max_events:
            del self._events[: len(self._events) - self.max_events]

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()

    def query(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        action: str | None = None,
        actor: str | None = None,
        tab_id: str | None = None,
    ) -> list[AuditEvent]:
        start, end = _aware(start), _aware(end)
        matches = []
        for event in self._events:
            if start is not None and event.timestamp < start:
                continue
            if end is not None and event.timestamp > end:
                continue
            if action is not None and event.action != action:
                continue
            if actor is not None and event.actor != actor:
                continue
            if tab_id is not None and event.tab_id != tab_id:
                continue
            matches.append(event)
        return matches

    def search(self, term: str) -> list[AuditEvent]:
        """Case-insensitive match against the action, actor, course, room and faculty of each event."""
        needle = term.strip().lower()
        if not needle:
            return self.events
        return [
            event
            for event in self._events
            if any(
                needle in value.lower()
                for value in (event.action, event.actor, event.course_code, event.room_id, event.faculty_id)
                if value
            )
        ]

    def statistics(self) -> AuditStatistics:
        return AuditStatistics(
            total_events=len(self._events),
            action_counts=dict(Counter(event.action for event in self._events)),
            actor_counts=dict(Counter(event.actor for event in self._events)),
            earliest=self._events[0].timestamp if self._events else None,
            latest=self._events[-1].timestamp if self._events else None,
        )


class ActivityLogAuditSink:
    """Writes each event as an ``activity_logs`` row in its own transaction."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def emit(self, event: AuditEvent) -> None:
        db = self._session_factory()
        try:
            log_activity(
                db,
                actor=event.actor,
                action=f"timetable.{event.action}",
                entity_type="timetable",
                entity_id=event.timetable_id or event.tab_id,
                details=event.model_dump(mode="json", exclude={"action", "actor"}),
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to write audit event %s", event.action)
        finally:
            db.close()
