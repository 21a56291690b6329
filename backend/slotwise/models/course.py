from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from slotwise.db.base import Base


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    department: Mapped[str | None] = mapped_column(String(200), nullable=True)
    semester: Mapped[str | None] = mapped_column(String(50), nullable=True)
    session_type: Mapped[str] = mapped_column(String(50), nullable=False, default="lecture")
    weekly_hours: Mapped[str] = mapped_column(String(50), nullable=False, default="0L+0T+0P")
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    faculty_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    required_facilities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
