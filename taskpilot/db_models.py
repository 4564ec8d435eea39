# PURPOSE: define how User and Task rows look in the database.

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .db import Base
from .lifecycle import TaskStatus


def now_utc():
    """Return timezone-aware UTC datetime (stored in DB)."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """DateTime that always binds and loads timezone-aware UTC values.

    SQLite has no timezone support and hands back naive datetimes; values are
    normalized to UTC on the way in and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class TaskDB(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # task owner
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(UTCDateTime, nullable=True)
    deadline = Column(UTCDateTime, nullable=False)
    status = Column(String, nullable=False, default=TaskStatus.ONGOING.value)
    created_at = Column(UTCDateTime, default=now_utc)
    updated_at = Column(UTCDateTime, default=now_utc)


class UserDB(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    # relationship to tasks
    tasks = relationship("TaskDB", backref="owner", cascade="all, delete-orphan")


# Owner listing, status filter and the sweeper's deadline scan
Index("ix_tasks_user_id", TaskDB.user_id)
Index("ix_tasks_status", TaskDB.status)
Index("ix_tasks_deadline", TaskDB.deadline)
