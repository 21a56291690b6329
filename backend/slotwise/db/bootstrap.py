from __future__ import annotations

import logging

from sqlalchemy import inspect

from slotwise.db.base import Base
from slotwise.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "timetables": {"id", "semester", "branch", "batch", "type", "schedule"},
    "rooms": {"id", "capacity", "type", "facilities"},
    "faculty": {"id", "name", "department"},
    "courses": {"id", "code", "title", "faculty_ids", "weekly_hours"},
    "batches": {"id", "name", "size", "branch", "semester"},
    "activity_logs": {"id", "action", "details"},
}


def missing_schema_items(connection) -> tuple[list[str], dict[str, list[str]]]:
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    for table_name, columns in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            missing_tables.append(table_name)
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(columns - existing)
        if missing:
            missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_runtime_schema() -> None:
    import slotwise.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    with engine.connect() as connection:
        missing_tables, missing_columns = missing_schema_items(connection)
    if missing_tables or missing_columns:
        logger.warning(
            "Database schema is behind the models (tables=%s, columns=%s); run alembic upgrade head",
            missing_tables,
            missing_columns,
        )
