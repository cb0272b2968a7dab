"""
Pydantic Schemas for the Empire REST API.

Defines the response envelope and the response schemas for all API
endpoints. Request schemas live next to their routes in routes.py.

Every response has the shape:
    {"success": bool, "data": ..., "error": {...} | null, "meta": {"timestamp": ...}}
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict

from empire.lib.errors import build_error_response

# =============================================================================
# Envelope
# =============================================================================


def _meta(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    meta: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat()}
    if extra:
        meta.update(extra)
    return meta


def success_response(data: Any = None, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Wrap data in a success envelope.

    Args:
        data: Payload (pydantic models, dataclasses, dates are JSON-encoded)
        meta: Extra meta fields merged next to the timestamp

    Returns:
        Envelope dict
    """
    return {
        "success": True,
        "data": jsonable_encoder(data),
        "error": None,
        "meta": _meta(meta),
    }


def error_response(
    code: str,
    message: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Wrap an error code (and optional message/details) in an error envelope."""
    return {
        "success": False,
        "data": None,
        "error": build_error_response(code, message, details),
        "meta": _meta(),
    }


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Categories
# =============================================================================


class CategoryResponse(_FromAttributes):
    id: str
    name: str
    parent_id: str | None
    children: list[CategoryResponse] = []


# =============================================================================
# Goals
# =============================================================================


class MilestoneResponse(_FromAttributes):
    id: str
    title: str
    target_date: date | None
    order_index: int
    is_completed: bool


class HabitPlanResponse(_FromAttributes):
    frequency: str
    times_per_week: int | None
    label: str


class GoalResponse(_FromAttributes):
    id: str
    title: str
    description: str | None
    type: str
    status: str
    importance: int
    effort_estimate_hours: int | None
    category_id: str
    category_path: str
    progress_label: str
    milestones: list[MilestoneResponse] = []
    habit: HabitPlanResponse | None = None


# =============================================================================
# Long-term plans
# =============================================================================


class ExpectationResponse(_FromAttributes):
    goal_id: str
    goal_title: str
    expected_progress: str
    expected_hours: int


class CycleResponse(_FromAttributes):
    id: str
    title: str
    start_date: date
    end_date: date
    order_index: int
    state: str
    progress: float
    days_remaining: int
    expectations: list[ExpectationResponse] = []


class PlanResponse(_FromAttributes):
    id: str
    title: str
    start_date: date
    end_date: date
    status: str
    cycles: list[CycleResponse] = []


class PlanCreationResponse(_FromAttributes):
    plan: PlanResponse
    expectations_created: int
    warnings: list[str] = []


class CycleWindowResponse(_FromAttributes):
    title: str
    start_date: date
    end_date: date
    order_index: int


class PlanPreviewResponse(_FromAttributes):
    start_date: date
    end_date: date
    cycles: list[CycleWindowResponse]


# =============================================================================
# Missions
# =============================================================================


class MissionResponse(_FromAttributes):
    id: str
    mission_date: date
    type: str
    title: str
    is_highlight: bool
    points: int
    is_completed: bool
    completed_at: datetime | None


class DayBoardResponse(_FromAttributes):
    day: date
    highlight: MissionResponse | None
    habits: list[MissionResponse]
    extras: list[MissionResponse]
    extras_unlocked: bool


class CompletionResponse(_FromAttributes):
    mission: MissionResponse
    already_completed: bool
    points_awarded: int
    ledger_entry_id: str | None


# =============================================================================
# Progress
# =============================================================================


class LevelResponse(_FromAttributes):
    level: int
    xp: int
    next_level_xp: int
    percent: float


class LedgerEntryResponse(_FromAttributes):
    id: str
    points: int
    reason: str
    mission_id: str | None
    occurred_at: datetime


class ProgressResponse(_FromAttributes):
    total_points: int
    level: LevelResponse
    missions_completed_today: int
    goals_completed: int
    current_streak: int
    recent_entries: list[LedgerEntryResponse]


__all__ = [
    "CategoryResponse",
    "CompletionResponse",
    "CycleResponse",
    "CycleWindowResponse",
    "DayBoardResponse",
    "ExpectationResponse",
    "GoalResponse",
    "HabitPlanResponse",
    "LedgerEntryResponse",
    "LevelResponse",
    "MilestoneResponse",
    "MissionResponse",
    "PlanCreationResponse",
    "PlanPreviewResponse",
    "PlanResponse",
    "ProgressResponse",
    "error_response",
    "success_response",
]
