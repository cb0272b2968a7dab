"""
REST API Routes for Empire.

All responses use the response envelope (see schemas.py). Every route
except the health check requires a verified bearer token and scopes its
work to the token's user.

Endpoints (all under /api/v1 prefix):
- /health, /health/detailed - Health checks
- /missions - Day board, mission creation, highlight, completion
- /goals, /milestones - Goals with milestones or habit plans
- /categories - Two-level category tree
- /long-term - 3-month plans and their cycles
- /progress - Points, level, streak
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, model_validator

from empire import __version__
from empire.api.dependencies import (
    get_cache,
    get_category_service,
    get_current_user_id,
    get_goal_service,
    get_mission_service,
    get_plan_service,
    get_progress_service,
)
from empire.api.schemas import (
    CategoryResponse,
    CompletionResponse,
    DayBoardResponse,
    GoalResponse,
    MilestoneResponse,
    MissionResponse,
    PlanCreationResponse,
    PlanPreviewResponse,
    PlanResponse,
    ProgressResponse,
    success_response,
)
from empire.infra.health import HealthCheckService
from empire.lib.exceptions import ValidationError
from empire.models.goal import (
    GoalStatus,
    GoalType,
    HabitFrequency,
    HabitSchedule,
    resolve_habit_schedule,
)
from empire.models.mission import MissionType
from empire.services.categories import CategoryService
from empire.services.goals import GoalInput, GoalService, MilestoneInput
from empire.services.missions import MissionService, progress_key
from empire.services.plans import GoalExpectation, PlanService
from empire.services.progress import ProgressService
from empire.services.query_cache import QueryCache

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Request Models for API Input Validation
# =============================================================================


class CreateCategoryRequest(BaseModel):
    """Validated input for creating a category."""
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: str | None = None


class UpdateCategoryRequest(BaseModel):
    """Rename and/or move. Omit parent_id to keep the parent, send null for top-level."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    parent_id: str | None = None


class MilestoneRequest(BaseModel):
    id: str | None = None
    title: str = Field(..., min_length=1, max_length=200)
    target_date: date | None = None


class HabitPlanRequest(BaseModel):
    """
    Habit plan in either accepted shape.

    Current: {"frequency": "daily" | "weekly" | "times_per_week", "times_per_week": 1-7}
    Legacy:  {"period": "day" | "week", "target_count": n}
    """
    frequency: HabitFrequency | None = None
    times_per_week: int | None = Field(default=None, ge=1, le=7)
    period: Literal["day", "week"] | None = None
    target_count: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_shape(self) -> HabitPlanRequest:
        if self.frequency is None and self.period is None:
            raise ValueError("frequency is required")
        if self.frequency is HabitFrequency.TIMES_PER_WEEK and self.times_per_week is None:
            raise ValueError("times_per_week is required for times_per_week plans")
        return self

    def to_schedule(self) -> HabitSchedule:
        return resolve_habit_schedule(
            frequency=self.frequency.value if self.frequency else None,
            times_per_week=self.times_per_week,
            period=self.period,
            target_count=self.target_count,
        )


class GoalRequest(BaseModel):
    """Validated input for creating or updating a goal."""
    title: str = Field(..., min_length=1, max_length=200)
    category_id: str = Field(..., min_length=1)
    type: GoalType = GoalType.PROGRESSIVE
    description: str | None = Field(default=None, max_length=2000)
    importance: int = Field(default=3, ge=1, le=5)
    effort_estimate_hours: int | None = Field(default=None, ge=0)
    milestones: list[MilestoneRequest] = Field(default_factory=list)
    habit_plan: HabitPlanRequest | None = None

    def to_input(self) -> GoalInput:
        return GoalInput(
            title=self.title,
            category_id=self.category_id,
            type=self.type,
            description=self.description,
            importance=self.importance,
            effort_estimate_hours=self.effort_estimate_hours,
            milestones=[
                MilestoneInput(title=m.title, target_date=m.target_date, id=m.id)
                for m in self.milestones
            ],
            habit=self.habit_plan.to_schedule() if self.habit_plan else None,
        )


class CreateMissionRequest(BaseModel):
    """Validated input for creating a mission."""
    type: MissionType
    mission_date: date | None = None
    title: str = Field(default="", max_length=200)
    points: int | None = Field(default=None, ge=0)
    cycle_id: str | None = None
    task_id: str | None = None
    habit_plan_id: str | None = None


class CreateHighlightRequest(BaseModel):
    mission_date: date | None = None
    title: str = Field(default="", max_length=200)
    points: int | None = Field(default=None, ge=0)


class GoalExpectationRequest(BaseModel):
    goal_id: str
    expected_progress: str = Field(default="", max_length=2000)
    expected_hours: int = Field(default=5, ge=1, le=50)


class CreatePlanRequest(BaseModel):
    """Validated input for the 3-month plan wizard."""
    title: str = Field(..., min_length=1, max_length=200)
    goal_ids: list[str] = Field(..., min_length=1)
    expectations: list[GoalExpectationRequest] = Field(default_factory=list)


# =============================================================================
# FastAPI Router with /api/v1 prefix
# =============================================================================

router = APIRouter(prefix="/api/v1")


# =============================================================================
# Health
# =============================================================================


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint (unauthenticated).

    Returns only status, no version or internal details.
    Detailed health info is available at /health/detailed (requires auth).
    """
    return success_response({"status": "ok"})


@router.get("/health/detailed")
async def health_check_detailed(
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> dict[str, Any]:
    """Detailed health check with a store round-trip (requires authentication)."""
    report = await HealthCheckService(request.app.state.store).check_all()
    return success_response({"version": __version__, **report.to_dict()})


# =============================================================================
# Missions
# =============================================================================


@router.get("/missions")
def get_day_board(
    day: date | None = None,
    user_id: str = Depends(get_current_user_id),
    service: MissionService = Depends(get_mission_service),
) -> dict[str, Any]:
    """
    Get the day board (defaults to today).

    Returns:
        Envelope with highlight, habits, extras and extras_unlocked
    """
    board = service.day_board(user_id, day)
    return success_response(DayBoardResponse.model_validate(board))


@router.post("/missions", status_code=201)
def create_mission(
    data: CreateMissionRequest,
    user_id: str = Depends(get_current_user_id),
    service: MissionService = Depends(get_mission_service),
) -> dict[str, Any]:
    mission = service.create_mission(
        user_id,
        data.type,
        data.mission_date,
        data.title,
        data.points,
        cycle_id=data.cycle_id,
        task_id=data.task_id,
        habit_plan_id=data.habit_plan_id,
    )
    return success_response(MissionResponse.model_validate(mission))


@router.post("/missions/highlight", status_code=201)
def create_highlight(
    data: CreateHighlightRequest,
    user_id: str = Depends(get_current_user_id),
    service: MissionService = Depends(get_mission_service),
) -> dict[str, Any]:
    """Create the day's highlight. 409 HIGHLIGHT_EXISTS if there already is one."""
    mission = service.create_highlight(user_id, data.mission_date, data.title, data.points)
    return success_response(MissionResponse.model_validate(mission))


@router.post("/missions/highlight/suggest")
def suggest_highlight(
    day: date | None = None,
    user_id: str = Depends(get_current_user_id),
    service: MissionService = Depends(get_mission_service),
) -> dict[str, Any]:
    """Promote the day's first incomplete mission to highlight."""
    mission = service.suggest_highlight(user_id, day)
    return success_response(MissionResponse.model_validate(mission))


@router.post("/missions/{mission_id}/complete")
def complete_mission(
    mission_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MissionService = Depends(get_mission_service),
) -> dict[str, Any]:
    """
    Complete a mission and credit its points.

    Completing an already completed mission returns already_completed=true
    and writes nothing. Extra missions answer 423 until the highlight is done.
    """
    result = service.complete_mission(user_id, mission_id)
    return success_response(CompletionResponse.model_validate(result))


# =============================================================================
# Goals
# =============================================================================


@router.get("/goals")
def list_goals(
    status: GoalStatus | None = None,
    user_id: str = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
) -> dict[str, Any]:
    goals = service.list_goals(user_id, status)
    return success_response(
        {"goals": [GoalResponse.model_validate(g) for g in goals], "total": len(goals)}
    )


@router.post("/goals", status_code=201)
def create_goal(
    data: GoalRequest,
    user_id: str = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
) -> dict[str, Any]:
    goal = service.create_goal(user_id, _goal_input(data))
    return success_response(GoalResponse.model_validate(goal))


@router.get("/goals/{goal_id}")
def get_goal(
    goal_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
) -> dict[str, Any]:
    return success_response(GoalResponse.model_validate(service.get_goal(user_id, goal_id)))


@router.put("/goals/{goal_id}")
def update_goal(
    goal_id: str,
    data: GoalRequest,
    user_id: str = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
) -> dict[str, Any]:
    """Update a goal, syncing milestones or replacing the habit plan."""
    goal = service.update_goal(user_id, goal_id, _goal_input(data))
    return success_response(GoalResponse.model_validate(goal))


@router.post("/goals/{goal_id}/complete")
def complete_goal(
    goal_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
    cache: QueryCache = Depends(get_cache),
) -> dict[str, Any]:
    goal = service.complete_goal(user_id, goal_id)
    cache.invalidate(progress_key(user_id))
    return success_response(GoalResponse.model_validate(goal))


@router.delete("/goals/{goal_id}")
def delete_goal(
    goal_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
    cache: QueryCache = Depends(get_cache),
) -> dict[str, Any]:
    service.delete_goal(user_id, goal_id)
    cache.invalidate(progress_key(user_id))
    return success_response({"id": goal_id, "deleted": True})


@router.post("/milestones/{milestone_id}/toggle")
def toggle_milestone(
    milestone_id: str,
    user_id: str = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
) -> dict[str, Any]:
    milestone = service.toggle_milestone(user_id, milestone_id)
    return success_response(MilestoneResponse.model_validate(milestone))


def _goal_input(data: GoalRequest) -> GoalInput:
    try:
        return data.to_input()
    except ValueError as e:
        raise ValidationError(str(e)) from e


# =============================================================================
# Categories
# =============================================================================


@router.get("/categories")
def list_categories(
    user_id: str = Depends(get_current_user_id),
    service: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    """List categories as a tree, top-level and children sorted by name."""
    tree = service.list_tree(user_id)
    return success_response({"categories": [CategoryResponse.model_validate(n) for n in tree]})


@router.post("/categories", status_code=201)
def create_category(
    data: CreateCategoryRequest,
    user_id: str = Depends(get_current_user_id),
    service: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    category = service.create(user_id, data.name, data.parent_id)
    return success_response(
        CategoryResponse(id=category.id, name=category.name, parent_id=category.parent_id)
    )


@router.put("/categories/{category_id}")
def update_category(
    category_id: str,
    data: UpdateCategoryRequest,
    user_id: str = Depends(get_current_user_id),
    service: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    changes: dict[str, Any] = {"name": data.name}
    if "parent_id" in data.model_fields_set:
        changes["parent_id"] = data.parent_id
    category = service.update(user_id, category_id, **changes)
    return success_response(
        CategoryResponse(id=category.id, name=category.name, parent_id=category.parent_id)
    )


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: str,
    user_id: str = Depends(get_current_user_id),
    service: CategoryService = Depends(get_category_service),
) -> dict[str, Any]:
    """Delete a category. 409 while it has subcategories or goals."""
    service.delete(user_id, category_id)
    return success_response({"id": category_id, "deleted": True})


# =============================================================================
# Long-term plans
# =============================================================================


@router.get("/long-term")
def list_plans(
    user_id: str = Depends(get_current_user_id),
    service: PlanService = Depends(get_plan_service),
) -> dict[str, Any]:
    plans = service.list_plans(user_id)
    active = service.get_active_plan(user_id)
    return success_response(
        {
            "plans": [PlanResponse.model_validate(p) for p in plans],
            "active_plan_id": active.id if active else None,
        }
    )


@router.get("/long-term/preview")
def preview_plan(
    user_id: str = Depends(get_current_user_id),
    service: PlanService = Depends(get_plan_service),
) -> dict[str, Any]:
    """Dates the plan wizard would create if submitted today."""
    return success_response(PlanPreviewResponse.model_validate(service.preview()))


@router.post("/long-term", status_code=201)
def create_plan(
    data: CreatePlanRequest,
    user_id: str = Depends(get_current_user_id),
    service: PlanService = Depends(get_plan_service),
) -> dict[str, Any]:
    """
    Create a 3-month plan with six 14-day cycles.

    If the per-cycle expectations cannot be saved the plan is still
    returned, with expectations_created=0 and a warning.
    """
    configs = {
        e.goal_id: GoalExpectation(
            expected_progress=e.expected_progress,
            expected_hours=e.expected_hours,
        )
        for e in data.expectations
    }
    result = service.create_plan(user_id, data.title, data.goal_ids, configs)
    return success_response(PlanCreationResponse.model_validate(result))


@router.get("/long-term/{plan_id}")
def get_plan(
    plan_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PlanService = Depends(get_plan_service),
) -> dict[str, Any]:
    return success_response(PlanResponse.model_validate(service.get_plan(user_id, plan_id)))


@router.post("/long-term/{plan_id}/archive")
def archive_plan(
    plan_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PlanService = Depends(get_plan_service),
) -> dict[str, Any]:
    return success_response(PlanResponse.model_validate(service.archive_plan(user_id, plan_id)))


# =============================================================================
# Progress
# =============================================================================


@router.get("/progress")
def get_progress(
    user_id: str = Depends(get_current_user_id),
    service: ProgressService = Depends(get_progress_service),
) -> dict[str, Any]:
    """Total points, level, today's completions, streak and recent ledger entries."""
    return success_response(ProgressResponse.model_validate(service.snapshot(user_id)))


__all__ = ["router"]
