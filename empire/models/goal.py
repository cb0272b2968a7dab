"""
Goal, Milestone and HabitPlan Models for Empire.

A goal's type decides which child rows govern its tracking:
- progressive: zero or more ordered milestones
- habitual: at most one habit plan

Habit plans exist in two stored shapes. Current rows carry a ``frequency``
(daily | weekly | times_per_week). Legacy rows carry a ``period`` (day | week)
and a ``target_count``. Both are resolved once, here, into a single
HabitSchedule value; nothing above this module looks at the raw columns.
"""

from __future__ import annotations

from dataclasses import dataclass
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
    Text,
)
from sqlalchemy.orm import relationship

from empire.models.base import Base, new_id, utcnow


class GoalType(StrEnum):
    """How a goal is tracked."""

    PROGRESSIVE = "progressive"
    HABITUAL = "habitual"


class GoalStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class HabitFrequency(StrEnum):
    """Habit plan frequency."""

    DAILY = "daily"
    WEEKLY = "weekly"
    TIMES_PER_WEEK = "times_per_week"


@dataclass(frozen=True)
class HabitSchedule:
    """
    Resolved habit plan schedule.

    Attributes:
        frequency: One of HabitFrequency
        times_per_week: Set only when frequency is TIMES_PER_WEEK (1-7)
    """

    frequency: HabitFrequency
    times_per_week: int | None = None

    def __post_init__(self) -> None:
        if self.frequency is HabitFrequency.TIMES_PER_WEEK:
            if self.times_per_week is None or not 1 <= self.times_per_week <= 7:
                raise ValueError("times_per_week must be between 1 and 7")
        elif self.times_per_week is not None:
            raise ValueError("times_per_week is only allowed for times_per_week plans")

    @property
    def label(self) -> str:
        """Short display label, e.g. "Daily" or "3×/week"."""
        if self.frequency is HabitFrequency.DAILY:
            return "Daily"
        if self.frequency is HabitFrequency.WEEKLY:
            return "Weekly"
        return f"{self.times_per_week}×/week"


class Goal(Base):
    """
    Goal owned by a single user, filed under a child category.

    Attributes:
        id: Primary key
        user_id: Owning user id
        category_id: Child category the goal is filed under
        title: Goal title
        description: Optional free text
        type: progressive | habitual
        importance: 1-5
        effort_estimate_hours: Optional estimate
        status: active | completed
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "goals"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    category_id = Column(
        String(36),
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, default=GoalType.PROGRESSIVE.value)
    importance = Column(Integer, nullable=False, default=3)
    effort_estimate_hours = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=GoalStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    category = relationship("Category")
    milestones = relationship(
        "Milestone",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="Milestone.order_index",
    )
    habit_plan = relationship(
        "HabitPlan",
        back_populates="goal",
        cascade="all, delete-orphan",
        uselist=False,
    )

    __table_args__ = (
        CheckConstraint("importance BETWEEN 1 AND 5", name="ck_goals_importance"),
        CheckConstraint(
            "type IN ('progressive', 'habitual')", name="ck_goals_type"
        ),
        CheckConstraint(
            "status IN ('active', 'completed')", name="ck_goals_status"
        ),
        Index("idx_goal_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Goal(id={self.id}, type={self.type}, status={self.status})>"


class Milestone(Base):
    """Ordered milestone of a progressive goal."""

    __tablename__ = "milestones"

    id = Column(String(36), primary_key=True, default=new_id)
    goal_id = Column(
        String(36),
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    target_date = Column(Date, nullable=True)
    order_index = Column(Integer, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)

    goal = relationship("Goal", back_populates="milestones")

    def __repr__(self) -> str:
        return f"<Milestone(id={self.id}, order={self.order_index}, done={self.is_completed})>"


class HabitPlan(Base):
    """
    Habit plan of a habitual goal (one per goal).

    ``period`` and ``target_count`` are the legacy shape, kept readable so
    that old rows resolve through ``schedule``. New rows only set
    ``frequency`` and ``times_per_week``.
    """

    __tablename__ = "habit_plans"

    id = Column(String(36), primary_key=True, default=new_id)
    goal_id = Column(
        String(36),
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    frequency = Column(String(20), nullable=True)
    times_per_week = Column(Integer, nullable=True)

    # Legacy shape
    period = Column(String(10), nullable=True)  # day | week
    target_count = Column(Integer, nullable=True)

    goal = relationship("Goal", back_populates="habit_plan")

    __table_args__ = (
        CheckConstraint(
            "times_per_week IS NULL OR times_per_week BETWEEN 1 AND 7",
            name="ck_habit_plans_times_per_week",
        ),
    )

    @property
    def schedule(self) -> HabitSchedule:
        """Resolve either stored shape into a HabitSchedule."""
        return resolve_habit_schedule(
            frequency=self.frequency,
            times_per_week=self.times_per_week,
            period=self.period,
            target_count=self.target_count,
        )

    def apply_schedule(self, schedule: HabitSchedule) -> None:
        """Store a schedule in the current shape, clearing legacy columns."""
        self.frequency = schedule.frequency.value
        self.times_per_week = schedule.times_per_week
        self.period = None
        self.target_count = None


def resolve_habit_schedule(
    frequency: str | None,
    times_per_week: int | None = None,
    period: str | None = None,
    target_count: int | None = None,
) -> HabitSchedule:
    """
    Resolve a stored habit plan row into a HabitSchedule.

    Legacy mapping:
        period=day               -> daily
        period=week, count <= 1  -> weekly
        period=week, count 2..7  -> times_per_week(count)

    Raises:
        ValueError: If neither shape is present or values are out of range
    """
    if frequency:
        freq = HabitFrequency(frequency)
        if freq is HabitFrequency.TIMES_PER_WEEK:
            return HabitSchedule(freq, times_per_week if times_per_week is not None else 1)
        return HabitSchedule(freq)

    if period == "day":
        return HabitSchedule(HabitFrequency.DAILY)
    if period == "week":
        count = target_count or 1
        if count <= 1:
            return HabitSchedule(HabitFrequency.WEEKLY)
        return HabitSchedule(HabitFrequency.TIMES_PER_WEEK, min(count, 7))

    raise ValueError(f"Unrecognized habit plan shape: frequency={frequency!r}, period={period!r}")


__all__ = [
    "Goal",
    "GoalStatus",
    "GoalType",
    "HabitFrequency",
    "HabitPlan",
    "HabitSchedule",
    "Milestone",
    "resolve_habit_schedule",
]
