"""
SQLAlchemy Base for Empire.

This module provides the declarative base for all SQLAlchemy models and
the column defaults they share. Row ids are UUID strings, matching the
ids the auth provider issues for users.

Usage:
    from empire.models.base import Base

    class MyModel(Base):
        __tablename__ = "my_table"
        ...
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by every Empire table."""


def new_id() -> str:
    """Generate a new row id."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


__all__ = ["Base", "new_id", "utcnow"]
