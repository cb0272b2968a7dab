"""
Long-term Plan Service for Empire.

Builds 3-month plans split into six 14-day cycles:

- start = Monday of the week after today (weeks start on Monday)
- end = start + 3 calendar months (day clamped to the month's end)
- cycle i spans [start + 14*(i-1), start + 14*i - 1], titled "Cycle i"
- every selected goal gets one expectation row per cycle, carrying the
  same expected_progress / expected_hours in all six cycles

Creation writes in two steps. The plan and its cycles are committed first;
the expectation rows follow in a second commit. A failure in the second
step is logged and reported in the result, and the plan is kept.

Date helpers are pure functions of ``today`` so they can be checked
without a store.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from empire.lib import errors
from empire.lib.exceptions import (
    ConflictError,
    ConstraintViolation,
    NotFoundError,
    StoreError,
    ValidationError,
)
from empire.lib.security import hash_uid
from empire.models.goal import Goal, GoalStatus
from empire.models.plan import Cycle, CycleGoal, LongTermPlan, PlanStatus
from empire.store.client import StoreClient

logger = logging.getLogger(__name__)

CYCLE_COUNT = 6
CYCLE_LENGTH_DAYS = 14
PLAN_LENGTH_MONTHS = 3
DEFAULT_EXPECTED_HOURS = 5
MIN_EXPECTED_HOURS = 1
MAX_EXPECTED_HOURS = 50

EXPECTATIONS_FAILED_WARNING = (
    "The plan was created, but goal expectations could not be saved for its cycles."
)


# ============================================================================
# Date arithmetic
# ============================================================================


def next_monday(today: date) -> date:
    """Monday of the week following ``today`` (a Monday maps to the next Monday)."""
    return today + timedelta(days=7 - today.weekday())


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the last day of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class CycleWindow:
    title: str
    start_date: date
    end_date: date
    order_index: int


@dataclass(frozen=True)
class PlanPreview:
    """Dates the plan wizard would create today."""

    start_date: date
    end_date: date
    cycles: list[CycleWindow]


def build_cycle_windows(start: date) -> list[CycleWindow]:
    """Six contiguous, non-overlapping 14-day windows starting at ``start``."""
    return [
        CycleWindow(
            title=f"Cycle {i}",
            start_date=start + timedelta(days=CYCLE_LENGTH_DAYS * (i - 1)),
            end_date=start + timedelta(days=CYCLE_LENGTH_DAYS * i - 1),
            order_index=i,
        )
        for i in range(1, CYCLE_COUNT + 1)
    ]


def preview_plan(today: date) -> PlanPreview:
    start = next_monday(today)
    return PlanPreview(
        start_date=start,
        end_date=add_months(start, PLAN_LENGTH_MONTHS),
        cycles=build_cycle_windows(start),
    )


class CycleState(StrEnum):
    UPCOMING = "upcoming"
    CURRENT = "current"
    COMPLETED = "completed"


def cycle_state(start: date, end: date, today: date) -> CycleState:
    if today < start:
        return CycleState.UPCOMING
    if today > end:
        return CycleState.COMPLETED
    return CycleState.CURRENT


def cycle_progress(start: date, end: date, today: date) -> float:
    """
    Percent of a cycle elapsed.

    Returns:
        0 before the start, 100 after the end, otherwise elapsed/total days
        times 100, clamped to [0, 100]
    """
    if today < start:
        return 0.0
    if today > end:
        return 100.0
    total = (end - start).days
    if total <= 0:
        return 100.0
    elapsed = (today - start).days
    return min(100.0, max(0.0, elapsed / total * 100))


def days_remaining(end: date, today: date) -> int:
    return max(0, (end - today).days)


# ============================================================================
# Inputs and Views
# ============================================================================


@dataclass
class GoalExpectation:
    """Per-goal configuration, replicated to every cycle."""

    expected_progress: str = ""
    expected_hours: int = DEFAULT_EXPECTED_HOURS


@dataclass
class ExpectationView:
    goal_id: str
    goal_title: str
    expected_progress: str
    expected_hours: int


@dataclass
class CycleView:
    id: str
    title: str
    start_date: date
    end_date: date
    order_index: int
    state: CycleState
    progress: float
    days_remaining: int
    expectations: list[ExpectationView] = field(default_factory=list)


@dataclass
class PlanView:
    id: str
    title: str
    start_date: date
    end_date: date
    status: PlanStatus
    cycles: list[CycleView] = field(default_factory=list)

    @property
    def current_cycle(self) -> CycleView | None:
        return next((c for c in self.cycles if c.state is CycleState.CURRENT), None)


@dataclass
class PlanCreationResult:
    """
    Outcome of plan creation.

    ``expectations_created`` is 0 with a warning when the second write step
    failed; the plan and cycles exist regardless.
    """

    plan: PlanView
    expectations_created: int
    warnings: list[str] = field(default_factory=list)


def _plan_view(plan: LongTermPlan, today: date, goal_titles: dict[str, str]) -> PlanView:
    cycles = []
    for cycle in plan.cycles:
        cycles.append(
            CycleView(
                id=cycle.id,
                title=cycle.title,
                start_date=cycle.start_date,
                end_date=cycle.end_date,
                order_index=cycle.order_index,
                state=cycle_state(cycle.start_date, cycle.end_date, today),
                progress=cycle_progress(cycle.start_date, cycle.end_date, today),
                days_remaining=days_remaining(cycle.end_date, today),
                expectations=[
                    ExpectationView(
                        goal_id=cg.goal_id,
                        goal_title=goal_titles.get(cg.goal_id, ""),
                        expected_progress=cg.expected_progress,
                        expected_hours=cg.expected_hours,
                    )
                    for cg in sorted(cycle.cycle_goals, key=lambda cg: goal_titles.get(cg.goal_id, ""))
                ],
            )
        )
    return PlanView(
        id=plan.id,
        title=plan.title,
        start_date=plan.start_date,
        end_date=plan.end_date,
        status=PlanStatus(plan.status),
        cycles=cycles,
    )


def normalize_expectations(
    goal_ids: Iterable[str],
    configs: dict[str, GoalExpectation] | None,
) -> dict[str, GoalExpectation]:
    """
    Resolve the configuration for each selected goal.

    Goals without an explicit configuration get the defaults. Configurations
    for goals that are not selected are ignored.

    Raises:
        ValidationError: If expected_hours is outside 1..50
    """
    configs = configs or {}
    resolved: dict[str, GoalExpectation] = {}
    for goal_id in goal_ids:
        config = configs.get(goal_id) or GoalExpectation()
        if not MIN_EXPECTED_HOURS <= config.expected_hours <= MAX_EXPECTED_HOURS:
            raise ValidationError(
                f"Expected hours must be between {MIN_EXPECTED_HOURS} and {MAX_EXPECTED_HOURS}."
            )
        resolved[goal_id] = GoalExpectation(
            expected_progress=(config.expected_progress or "").strip(),
            expected_hours=config.expected_hours,
        )
    return resolved


# ============================================================================
# Service
# ============================================================================


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PlanService:
    """
    Long-term plan operations scoped to a single user.

    Args:
        store: Store client
        clock: Current-time source, injectable for tests
    """

    def __init__(self, store: StoreClient, clock: Callable[[], datetime] = _utcnow):
        self._store = store
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    def preview(self) -> PlanPreview:
        return preview_plan(self.today())

    def create_plan(
        self,
        user_id: str,
        title: str,
        goal_ids: list[str],
        configs: dict[str, GoalExpectation] | None = None,
    ) -> PlanCreationResult:
        """
        Create a plan with six cycles and per-cycle goal expectations.

        Args:
            user_id: Owning user
            title: Plan title (trimmed, required)
            goal_ids: Selected active goals (at least one, duplicates ignored)
            configs: Optional per-goal configuration keyed by goal id

        Returns:
            PlanCreationResult with the created plan and expectation count

        Raises:
            ValidationError: Empty title, no goals, bad hours, unknown or inactive goals
            ConflictError: The user already has an active plan
        """
        cleaned_title = (title or "").strip()
        if not cleaned_title:
            raise ValidationError("Plan title is required.")
        selected = list(dict.fromkeys(goal_ids or []))
        if not selected:
            raise ValidationError("Select at least one goal for the plan.")
        expectations = normalize_expectations(selected, configs)

        def check(session: Session) -> None:
            active_goals = set(
                session.scalars(
                    select(Goal.id).where(
                        Goal.user_id == user_id,
                        Goal.status == GoalStatus.ACTIVE.value,
                        Goal.id.in_(selected),
                    )
                ).all()
            )
            if len(active_goals) != len(selected):
                raise ValidationError("Plans can only include your active goals.")
            existing = session.scalar(
                select(LongTermPlan.id).where(
                    LongTermPlan.user_id == user_id,
                    LongTermPlan.status == PlanStatus.ACTIVE.value,
                )
            )
            if existing is not None:
                raise self._active_plan_exists()

        self._store.read(check)

        preview = self.preview()

        # Step 1: plan and cycles. The partial unique index on active plans
        # catches a concurrent creation that passed the check above
        try:
            with self._store.session() as session:
                plan = LongTermPlan(
                    user_id=user_id,
                    title=cleaned_title,
                    start_date=preview.start_date,
                    end_date=preview.end_date,
                    status=PlanStatus.ACTIVE.value,
                )
                plan.cycles = [
                    Cycle(
                        title=w.title,
                        start_date=w.start_date,
                        end_date=w.end_date,
                        order_index=w.order_index,
                    )
                    for w in preview.cycles
                ]
                session.add(plan)
                session.flush()
                plan_id = plan.id
                cycle_ids = [c.id for c in plan.cycles]
        except ConstraintViolation as e:
            if e.is_unique_violation:
                raise self._active_plan_exists() from e
            raise

        # Step 2: expectations, no rollback of step 1 on failure
        warnings: list[str] = []
        try:
            created = self._insert_expectations(cycle_ids, expectations)
        except StoreError as e:
            logger.warning(
                "Plan created without expectations user_hash=%s error=%s",
                hash_uid(user_id),
                type(e).__name__,
            )
            created = 0
            warnings.append(EXPECTATIONS_FAILED_WARNING)

        logger.info(
            "Plan created user_hash=%s cycles=%d expectations=%d",
            hash_uid(user_id),
            len(cycle_ids),
            created,
        )
        return PlanCreationResult(
            plan=self.get_plan(user_id, plan_id),
            expectations_created=created,
            warnings=warnings,
        )

    def _insert_expectations(
        self,
        cycle_ids: list[str],
        expectations: dict[str, GoalExpectation],
    ) -> int:
        rows = [
            CycleGoal(
                cycle_id=cycle_id,
                goal_id=goal_id,
                expected_progress=config.expected_progress,
                expected_hours=config.expected_hours,
            )
            for cycle_id in cycle_ids
            for goal_id, config in expectations.items()
        ]
        with self._store.session() as session:
            session.add_all(rows)
        return len(rows)

    def list_plans(self, user_id: str) -> list[PlanView]:
        """List the user's plans, newest first."""
        today = self.today()

        def load(session: Session) -> list[PlanView]:
            plans = session.scalars(
                self._plan_query()
                .where(LongTermPlan.user_id == user_id)
                .order_by(LongTermPlan.created_at.desc())
            ).all()
            titles = self._goal_titles(session, plans)
            return [_plan_view(p, today, titles) for p in plans]

        return self._store.read(load)

    def get_plan(self, user_id: str, plan_id: str) -> PlanView:
        """
        Get one plan with ordered cycles and their expectations.

        Raises:
            NotFoundError: Plan does not exist for this user
        """
        today = self.today()

        def load(session: Session) -> PlanView:
            plan = self._get_owned(session, user_id, plan_id)
            return _plan_view(plan, today, self._goal_titles(session, [plan]))

        return self._store.read(load)

    def get_active_plan(self, user_id: str) -> PlanView | None:
        today = self.today()

        def load(session: Session) -> PlanView | None:
            plan = session.scalar(
                self._plan_query().where(
                    LongTermPlan.user_id == user_id,
                    LongTermPlan.status == PlanStatus.ACTIVE.value,
                )
            )
            if plan is None:
                return None
            return _plan_view(plan, today, self._goal_titles(session, [plan]))

        return self._store.read(load)

    def archive_plan(self, user_id: str, plan_id: str) -> PlanView:
        with self._store.session() as session:
            plan = self._get_owned(session, user_id, plan_id)
            plan.status = PlanStatus.ARCHIVED.value
        logger.info("Plan archived user_hash=%s", hash_uid(user_id))
        return self.get_plan(user_id, plan_id)

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _plan_query():
        return select(LongTermPlan).options(
            selectinload(LongTermPlan.cycles).selectinload(Cycle.cycle_goals)
        )

    @staticmethod
    def _active_plan_exists() -> ConflictError:
        return ConflictError(
            errors.get_error_message(errors.ACTIVE_PLAN_EXISTS),
            code=errors.ACTIVE_PLAN_EXISTS,
        )

    def _get_owned(self, session: Session, user_id: str, plan_id: str) -> LongTermPlan:
        plan = session.scalar(
            self._plan_query().where(
                LongTermPlan.id == plan_id,
                LongTermPlan.user_id == user_id,
            )
        )
        if plan is None:
            raise NotFoundError("Plan not found.")
        return plan

    @staticmethod
    def _goal_titles(session: Session, plans: list[LongTermPlan]) -> dict[str, str]:
        goal_ids = {cg.goal_id for p in plans for c in p.cycles for cg in c.cycle_goals}
        if not goal_ids:
            return {}
        rows = session.execute(select(Goal.id, Goal.title).where(Goal.id.in_(goal_ids))).all()
        return {row.id: row.title for row in rows}


__all__ = [
    "CycleState",
    "CycleView",
    "CycleWindow",
    "ExpectationView",
    "GoalExpectation",
    "PlanCreationResult",
    "PlanPreview",
    "PlanService",
    "PlanView",
    "add_months",
    "build_cycle_windows",
    "cycle_progress",
    "cycle_state",
    "days_remaining",
    "next_monday",
    "normalize_expectations",
    "preview_plan",
]
