"""
Services for Empire.

This package contains the business logic behind the API. Every service is
constructed with an explicit StoreClient and scopes all work to one user.

Services:
    - CategoryService: Two-level category tree
    - GoalService: Goals with milestones or habit plans
    - PlanService: 3-month plans split into six 14-day cycles
    - MissionService: Daily missions and the completion state machine
    - ProgressService: Points, levels and streaks
    - QueryCache: Short-lived per-user read cache with optimistic updates
"""

from .categories import CategoryNode, CategoryService
from .goals import GoalInput, GoalService, GoalSummary, MilestoneInput
from .missions import CompletionResult, DayBoard, MissionService, MissionView
from .plans import GoalExpectation, PlanCreationResult, PlanService, PlanView
from .progress import LevelInfo, ProgressService, ProgressSnapshot
from .query_cache import QueryCache, optimistic_mutation

__all__ = [
    # Categories
    "CategoryNode",
    "CategoryService",
    # Goals
    "GoalInput",
    "GoalService",
    "GoalSummary",
    "MilestoneInput",
    # Missions
    "CompletionResult",
    "DayBoard",
    "MissionService",
    "MissionView",
    # Plans
    "GoalExpectation",
    "PlanCreationResult",
    "PlanService",
    "PlanView",
    # Progress
    "LevelInfo",
    "ProgressService",
    "ProgressSnapshot",
    # Cache
    "QueryCache",
    "optimistic_mutation",
]
