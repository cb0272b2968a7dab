"""
Tables declared for schema parity with the hosted store.

The backlog, profile and settings forms are plain CRUD with no logic of
their own and have no endpoints here. Missions may still reference a
backlog task.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from empire.models.base import Base, new_id, utcnow


class Task(Base):
    """Backlog task."""

    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)
    is_done = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)  # same as the auth user id
    display_name = Column(String(100), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id = Column(String(36), primary_key=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    week_start = Column(Integer, nullable=False, default=1)  # ISO weekday, 1 = Monday
    theme = Column(String(20), nullable=False, default="system")
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


__all__ = ["Profile", "Task", "UserSettings"]
