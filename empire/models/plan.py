"""
Long-term Plan, Cycle and CycleGoal Models for Empire.

A long-term plan spans three calendar months starting on a Monday and is
split into six consecutive 14-day cycles. Each cycle carries one
expectation row (CycleGoal) per goal selected for the plan.
"""

from enum import StrEnum

from sqlalchemy import (
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


class PlanStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class LongTermPlan(Base):
    """
    Three-month plan owned by a single user.

    Attributes:
        id: Primary key
        user_id: Owning user id
        title: Plan title
        start_date: Monday the plan starts on
        end_date: start_date plus three calendar months
        status: active | archived
        created_at: Creation timestamp
    """

    __tablename__ = "long_terms"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=PlanStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    cycles = relationship(
        "Cycle",
        back_populates="long_term",
        cascade="all, delete-orphan",
        order_by="Cycle.order_index",
    )

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_long_terms_dates"),
        CheckConstraint(
            "status IN ('active', 'archived')", name="ck_long_terms_status"
        ),
        Index("idx_long_term_user_status", "user_id", "status"),
        Index(
            "uq_long_terms_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=status == PlanStatus.ACTIVE.value,
            sqlite_where=status == PlanStatus.ACTIVE.value,
        ),
    )

    def __repr__(self) -> str:
        return f"<LongTermPlan(id={self.id}, start={self.start_date}, status={self.status})>"


class Cycle(Base):
    """14-day window of a long-term plan, titled "Cycle N"."""

    __tablename__ = "cycles"

    id = Column(String(36), primary_key=True, default=new_id)
    long_term_id = Column(
        String(36),
        ForeignKey("long_terms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    order_index = Column(Integer, nullable=False)

    long_term = relationship("LongTermPlan", back_populates="cycles")
    cycle_goals = relationship(
        "CycleGoal",
        back_populates="cycle",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("order_index BETWEEN 1 AND 6", name="ck_cycles_order"),
        Index("uq_cycles_plan_order", "long_term_id", "order_index", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Cycle(id={self.id}, title={self.title!r}, {self.start_date}..{self.end_date})>"


class CycleGoal(Base):
    """Expectation for one goal within one cycle."""

    __tablename__ = "cycle_goals"

    id = Column(String(36), primary_key=True, default=new_id)
    cycle_id = Column(
        String(36),
        ForeignKey("cycles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    goal_id = Column(
        String(36),
        ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expected_progress = Column(Text, nullable=False, default="")
    expected_hours = Column(Integer, nullable=False, default=5)

    cycle = relationship("Cycle", back_populates="cycle_goals")
    goal = relationship("Goal")

    __table_args__ = (
        CheckConstraint(
            "expected_hours BETWEEN 1 AND 50", name="ck_cycle_goals_hours"
        ),
        Index("uq_cycle_goals_cycle_goal", "cycle_id", "goal_id", unique=True),
    )


__all__ = ["Cycle", "CycleGoal", "LongTermPlan", "PlanStatus"]
