from functools import lru_cache
import json
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"

DEFAULT_WEEK_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

DEFAULT_TIME_SLOTS = [
    "7:00-7:55",
    "7:55-8:50",
    "8:50-9:45",
    "10:30-11:25",
    "11:25-12:20",
    "12:20-1:15",
    "1:15-2:10",
    "2:10-3:05",
    "3:05-4:00",
    "4:00-5:00",
]


def _split_list(value: str | list[str]) -> list[str]:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except json.JSONDecodeError:
                pass
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    # Resolve to backend/.env so `uvicorn --app-dir backend` works from any cwd.
    model_config = SettingsConfigDict(env_file=str(BACKEND_ENV_FILE), env_file_encoding="utf-8")

    project_name: str = "Slotwise API"
    api_prefix: str = "/api"

    database_url: str = "sqlite+pysqlite:///./slotwise.db"

    max_request_size_bytes: int = 2_500_000

    week_days: list[str] = DEFAULT_WEEK_DAYS
    time_slots: list[str] = DEFAULT_TIME_SLOTS
    afternoon_hour_threshold: int = 7

    room_capacity_margin: float = 0.9
    room_comfort_ratio: float = 0.8
    min_break_minutes: int = 15
    max_history_entries: int = 50
    max_audit_events: int = 1000
    alternative_slot_limit: int = 5
    max_weekly_faculty_hours: int = 20

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @field_validator("cors_origins", "week_days", "time_slots", mode="before")
    @classmethod
    def split_list_values(cls, value: str | list[str]) -> list[str]:
        return _split_list(value)


@lru_cache
def get_settings() -> Settings:
    return Settings()
