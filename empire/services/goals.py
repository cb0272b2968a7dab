"""
Goal Service for Empire.

Goals are filed under a child category and tracked either through ordered
milestones (progressive) or a single habit plan (habitual).

Operations:
- create a goal with its milestones or habit plan
- update a goal, syncing milestones (delete removed, insert new, reorder
  kept) and replacing the habit plan; switching type deletes the other
  kind's rows
- mark completed, delete (cascades to milestones and habit plan)
- list with summaries ("2/5 milestones", "Daily", "3×/week") and the
  category path ("Parent ▸ Child")
- toggle a milestone's completion

All writes for one operation run in a single transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload, selectinload

from empire.lib.exceptions import NotFoundError, ValidationError
from empire.lib.security import hash_uid
from empire.models.category import Category
from empire.models.goal import (
    Goal,
    GoalStatus,
    GoalType,
    HabitFrequency,
    HabitPlan,
    HabitSchedule,
    Milestone,
)
from empire.services.missions import progress_key
from empire.services.query_cache import QueryCache
from empire.store.client import StoreClient

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
CATEGORY_PATH_SEPARATOR = " ▸ "


# =============================================================================
# Inputs and Views
# =============================================================================


@dataclass
class MilestoneInput:
    """Milestone as submitted. ``id`` is set for milestones that already exist."""

    title: str
    target_date: date | None = None
    id: str | None = None


@dataclass
class GoalInput:
    """Goal as submitted by the goal form."""

    title: str
    category_id: str
    type: GoalType = GoalType.PROGRESSIVE
    description: str | None = None
    importance: int = 3
    effort_estimate_hours: int | None = None
    milestones: list[MilestoneInput] = field(default_factory=list)
    habit: HabitSchedule | None = None


@dataclass
class MilestoneView:
    id: str
    title: str
    target_date: date | None
    order_index: int
    is_completed: bool

    @classmethod
    def from_model(cls, milestone: Milestone) -> MilestoneView:
        return cls(
            id=milestone.id,
            title=milestone.title,
            target_date=milestone.target_date,
            order_index=milestone.order_index,
            is_completed=bool(milestone.is_completed),
        )


@dataclass
class GoalSummary:
    """A goal with its tracking details resolved for display."""

    id: str
    title: str
    description: str | None
    type: GoalType
    status: GoalStatus
    importance: int
    effort_estimate_hours: int | None
    category_id: str
    category_path: str
    milestones: list[MilestoneView] = field(default_factory=list)
    habit: HabitSchedule | None = None

    @property
    def milestones_completed(self) -> int:
        return sum(1 for m in self.milestones if m.is_completed)

    @property
    def progress_label(self) -> str:
        """Short tracking summary, e.g. "2/5 milestones" or "Daily"."""
        if self.type is GoalType.HABITUAL:
            return (self.habit or HabitSchedule(HabitFrequency.DAILY)).label
        return f"{self.milestones_completed}/{len(self.milestones)} milestones"

    @classmethod
    def from_model(cls, goal: Goal) -> GoalSummary:
        habit = None
        if goal.type == GoalType.HABITUAL:
            # A habitual goal whose plan row is missing resolves to daily
            habit = (
                goal.habit_plan.schedule
                if goal.habit_plan is not None
                else HabitSchedule(HabitFrequency.DAILY)
            )
        return cls(
            id=goal.id,
            title=goal.title,
            description=goal.description,
            type=GoalType(goal.type),
            status=GoalStatus(goal.status),
            importance=goal.importance,
            effort_estimate_hours=goal.effort_estimate_hours,
            category_id=goal.category_id,
            category_path=category_path(goal.category),
            milestones=[MilestoneView.from_model(m) for m in goal.milestones],
            habit=habit,
        )


def category_path(category: Category | None) -> str:
    """Render "Parent ▸ Child" for a category (just the name when top-level)."""
    if category is None:
        return ""
    if category.parent is None:
        return category.name
    return f"{category.parent.name}{CATEGORY_PATH_SEPARATOR}{category.name}"


# =============================================================================
# Validation
# =============================================================================


def validate_goal_input(data: GoalInput) -> GoalInput:
    """
    Validate and normalize a goal submission.

    Habitual goals without a habit plan default to daily.

    Raises:
        ValidationError: On any invalid field or type/children mismatch
    """
    title = (data.title or "").strip()
    if not title or not data.category_id:
        raise ValidationError("Title and Category are required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters.")
    if not 1 <= data.importance <= 5:
        raise ValidationError("Importance must be between 1 and 5.")
    if data.effort_estimate_hours is not None and data.effort_estimate_hours < 0:
        raise ValidationError("Effort estimate cannot be negative.")

    goal_type = GoalType(data.type)
    milestones: list[MilestoneInput] = []
    habit = data.habit

    if goal_type is GoalType.PROGRESSIVE:
        if habit is not None:
            raise ValidationError("Progressive goals track milestones, not habit plans.")
        for m in data.milestones:
            m_title = (m.title or "").strip()
            if not m_title:
                raise ValidationError("Milestone title is required.")
            milestones.append(MilestoneInput(title=m_title, target_date=m.target_date, id=m.id))
    else:
        if data.milestones:
            raise ValidationError("Habitual goals track a habit plan, not milestones.")
        habit = habit or HabitSchedule(HabitFrequency.DAILY)

    description = (data.description or "").strip() or None
    return GoalInput(
        title=title,
        category_id=data.category_id,
        type=goal_type,
        description=description,
        importance=data.importance,
        effort_estimate_hours=data.effort_estimate_hours,
        milestones=milestones,
        habit=habit,
    )


# =============================================================================
# Service
# =============================================================================


class GoalService:
    """Goal operations scoped to a single user."""

    def __init__(self, store: StoreClient, cache: QueryCache | None = None):
        self._store = store
        self._cache = cache if cache is not None else QueryCache(default_ttl=0)

    def list_goals(self, user_id: str, status: GoalStatus | None = None) -> list[GoalSummary]:
        """List the user's goals, newest first, optionally filtered by status."""

        def load(session: Session) -> list[GoalSummary]:
            stmt = self._goal_query().where(Goal.user_id == user_id)
            if status is not None:
                stmt = stmt.where(Goal.status == status.value)
            stmt = stmt.order_by(Goal.created_at.desc())
            return [GoalSummary.from_model(g) for g in session.scalars(stmt).unique().all()]

        return self._store.read(load)

    def get_goal(self, user_id: str, goal_id: str) -> GoalSummary:
        return self._store.read(
            lambda s: GoalSummary.from_model(self._get_owned(s, user_id, goal_id))
        )

    def create_goal(self, user_id: str, data: GoalInput) -> GoalSummary:
        """
        Create a goal together with its milestones or habit plan.

        Milestones get order_index 1..n in submission order.

        Raises:
            ValidationError: Invalid input or category is not a subcategory
            NotFoundError: Category does not exist for this user
        """
        data = validate_goal_input(data)
        with self._store.session() as session:
            self._check_category(session, user_id, data.category_id)
            goal = Goal(
                user_id=user_id,
                category_id=data.category_id,
                title=data.title,
                description=data.description,
                type=data.type.value,
                importance=data.importance,
                effort_estimate_hours=data.effort_estimate_hours,
                status=GoalStatus.ACTIVE.value,
            )
            if data.type is GoalType.PROGRESSIVE:
                goal.milestones = [
                    Milestone(
                        title=m.title,
                        target_date=m.target_date,
                        order_index=idx + 1,
                        is_completed=False,
                    )
                    for idx, m in enumerate(data.milestones)
                ]
            else:
                plan = HabitPlan()
                plan.apply_schedule(data.habit)
                goal.habit_plan = plan
            session.add(goal)
            session.flush()
            goal_id = goal.id

        logger.info(
            "Goal created user_hash=%s type=%s milestones=%d",
            hash_uid(user_id),
            data.type.value,
            len(data.milestones),
        )
        return self.get_goal(user_id, goal_id)

    def update_goal(self, user_id: str, goal_id: str, data: GoalInput) -> GoalSummary:
        """
        Update a goal and sync its milestones or habit plan.

        Raises:
            ValidationError: Invalid input, unknown milestone id, or bad category
            NotFoundError: Goal or category does not exist for this user
        """
        data = validate_goal_input(data)
        with self._store.session() as session:
            goal = self._get_owned(session, user_id, goal_id)
            if data.category_id != goal.category_id:
                self._check_category(session, user_id, data.category_id)

            goal.title = data.title
            goal.description = data.description
            goal.category_id = data.category_id
            goal.type = data.type.value
            goal.importance = data.importance
            goal.effort_estimate_hours = data.effort_estimate_hours

            if data.type is GoalType.PROGRESSIVE:
                goal.habit_plan = None
                self._sync_milestones(goal, data.milestones)
            else:
                goal.milestones = []
                if goal.habit_plan is None:
                    goal.habit_plan = HabitPlan()
                goal.habit_plan.apply_schedule(data.habit)

        logger.info("Goal updated user_hash=%s type=%s", hash_uid(user_id), data.type.value)
        return self.get_goal(user_id, goal_id)

    def complete_goal(self, user_id: str, goal_id: str) -> GoalSummary:
        with self._store.session() as session:
            goal = self._get_owned(session, user_id, goal_id)
            goal.status = GoalStatus.COMPLETED.value
        self._cache.invalidate(progress_key(user_id))
        return self.get_goal(user_id, goal_id)

    def delete_goal(self, user_id: str, goal_id: str) -> None:
        """Delete a goal. Milestones, habit plan and cycle expectations go with it."""
        with self._store.session() as session:
            goal = self._get_owned(session, user_id, goal_id)
            session.delete(goal)
        self._cache.invalidate(progress_key(user_id))
        logger.info("Goal deleted user_hash=%s", hash_uid(user_id))

    def toggle_milestone(self, user_id: str, milestone_id: str) -> MilestoneView:
        """
        Flip a milestone's completion.

        Raises:
            NotFoundError: Milestone does not belong to one of the user's goals
        """
        with self._store.session() as session:
            milestone = session.scalar(
                select(Milestone)
                .join(Goal, Milestone.goal_id == Goal.id)
                .where(Milestone.id == milestone_id, Goal.user_id == user_id)
            )
            if milestone is None:
                raise NotFoundError("Milestone not found.")
            milestone.is_completed = not milestone.is_completed
            view = MilestoneView.from_model(milestone)
        return view

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _goal_query():
        return select(Goal).options(
            selectinload(Goal.milestones),
            selectinload(Goal.habit_plan),
            joinedload(Goal.category).joinedload(Category.parent),
        )

    def _get_owned(self, session: Session, user_id: str, goal_id: str) -> Goal:
        goal = session.scalars(
            self._goal_query().where(Goal.id == goal_id, Goal.user_id == user_id)
        ).unique().one_or_none()
        if goal is None:
            raise NotFoundError("Goal not found.")
        return goal

    @staticmethod
    def _check_category(session: Session, user_id: str, category_id: str) -> None:
        category = session.scalar(
            select(Category).where(
                Category.id == category_id,
                Category.user_id == user_id,
            )
        )
        if category is None:
            raise NotFoundError("Category not found.")
        if category.parent_id is None:
            raise ValidationError("Goals must be filed under a subcategory.")

    @staticmethod
    def _sync_milestones(goal: Goal, submitted: list[MilestoneInput]) -> None:
        existing = {m.id: m for m in goal.milestones}
        unknown = [m.id for m in submitted if m.id and m.id not in existing]
        if unknown:
            raise ValidationError("Milestone does not belong to this goal.")

        synced: list[Milestone] = []
        for idx, item in enumerate(submitted):
            if item.id:
                milestone = existing[item.id]
                milestone.title = item.title
                milestone.target_date = item.target_date
                milestone.order_index = idx + 1
            else:
                milestone = Milestone(
                    title=item.title,
                    target_date=item.target_date,
                    order_index=idx + 1,
                    is_completed=False,
                )
            synced.append(milestone)

        # Milestones missing from the submission are deleted (delete-orphan)
        goal.milestones = synced


__all__ = [
    "GoalInput",
    "GoalService",
    "GoalSummary",
    "MilestoneInput",
    "MilestoneView",
    "category_path",
    "validate_goal_input",
]
