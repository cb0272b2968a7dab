"""
Mission and Points Ledger Models for Empire.

Missions are per-day units of work. Each day has at most one highlight
per user, backed by a partial unique index. Completing a mission appends
an entry to the points ledger; the ledger is append-only and a user's
total points are the sum of their entries.
"""

from enum import StrEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)

from empire.models.base import Base, new_id, utcnow


class MissionType(StrEnum):
    HIGHLIGHT = "highlight"
    HABIT = "habit"
    EXTRA = "extra"


LEDGER_REASON_MISSION_COMPLETED = "mission_completed"


class Mission(Base):
    """
    Mission scheduled on a given day.

    Attributes:
        id: Primary key
        user_id: Owning user id
        mission_date: Day the mission belongs to
        type: highlight | habit | extra
        is_highlight: True for the day's single highlight
        points: Points credited on completion
        is_completed: Completion flag (one-way)
        completed_at: Completion timestamp
        cycle_id: Optional cycle reference
        task_id: Optional backlog task reference
        habit_plan_id: Optional habit plan reference
        title: Display title
        created_at: Creation timestamp (breaks ordering ties)
    """

    __tablename__ = "missions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    mission_date = Column(Date, nullable=False)
    type = Column(String(20), nullable=False)
    title = Column(String(200), nullable=False, default="")
    is_highlight = Column(Boolean, nullable=False, default=False)
    points = Column(Integer, nullable=True, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cycle_id = Column(
        String(36), ForeignKey("cycles.id", ondelete="SET NULL"), nullable=True
    )
    task_id = Column(
        String(36), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True
    )
    habit_plan_id = Column(
        String(36), ForeignKey("habit_plans.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "type IN ('highlight', 'habit', 'extra')", name="ck_missions_type"
        ),
        CheckConstraint("points IS NULL OR points >= 0", name="ck_missions_points"),
        Index("idx_mission_user_date", "user_id", "mission_date"),
        Index(
            "uq_missions_one_highlight_per_day",
            "user_id",
            "mission_date",
            unique=True,
            postgresql_where=is_highlight.is_(True),
            sqlite_where=is_highlight.is_(True),
        ),
    )

    @property
    def counts_as_highlight(self) -> bool:
        return bool(self.is_highlight) or self.type == MissionType.HIGHLIGHT

    def __repr__(self) -> str:
        return (
            f"<Mission(id={self.id}, date={self.mission_date}, type={self.type}, "
            f"completed={self.is_completed})>"
        )


class PointsLedgerEntry(Base):
    """Append-only point entry."""

    __tablename__ = "points_ledger"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    mission_id = Column(
        String(36), ForeignKey("missions.id", ondelete="SET NULL"), nullable=True
    )
    points = Column(Integer, nullable=False)
    reason = Column(String(100), nullable=False)
    occurred_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_points_ledger_user_occurred", "user_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return f"<PointsLedgerEntry(id={self.id}, points={self.points}, reason={self.reason!r})>"


__all__ = [
    "LEDGER_REASON_MISSION_COMPLETED",
    "Mission",
    "MissionType",
    "PointsLedgerEntry",
]
