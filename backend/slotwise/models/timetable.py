from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from slotwise.db.base import Base


class Timetable(Base):
    __tablename__ = "timetables"

    # "{semester}-{branch}-{batch}-{type}"
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    semester: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    branch: Mapped[str] = mapped_column(String(100), nullable=False)
    batch: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    schedule: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
