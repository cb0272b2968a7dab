"""
SQLAlchemy models for Empire.

Importing this package registers every table on ``Base.metadata``.
"""

from empire.models.base import Base
from empire.models.category import Category
from empire.models.extras import Profile, Task, UserSettings
from empire.models.goal import (
    Goal,
    GoalStatus,
    GoalType,
    HabitFrequency,
    HabitPlan,
    HabitSchedule,
    Milestone,
)
from empire.models.mission import (
    LEDGER_REASON_MISSION_COMPLETED,
    Mission,
    MissionType,
    PointsLedgerEntry,
)
from empire.models.plan import Cycle, CycleGoal, LongTermPlan, PlanStatus

__all__ = [
    "Base",
    "Category",
    "Cycle",
    "CycleGoal",
    "Goal",
    "GoalStatus",
    "GoalType",
    "HabitFrequency",
    "HabitPlan",
    "HabitSchedule",
    "LEDGER_REASON_MISSION_COMPLETED",
    "LongTermPlan",
    "Milestone",
    "Mission",
    "MissionType",
    "PlanStatus",
    "PointsLedgerEntry",
    "Profile",
    "Task",
    "UserSettings",
]
