"""
Tests for the SQLAlchemy models and their store constraints.

Covers:
- Check constraints (importance, cycle order, expected hours, mission points)
- Cascades (plan -> cycles -> expectations)
- ON DELETE SET NULL from the ledger to missions
- Model helpers
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import func, select

from empire.lib.exceptions import ConstraintViolation
from empire.models import (
    Category,
    Cycle,
    CycleGoal,
    Goal,
    LongTermPlan,
    Mission,
    MissionType,
    PointsLedgerEntry,
)
from empire.store.client import CHECK_VIOLATION, StoreClient

USER_ID = "0b7c1a52-5f0e-4a43-9d6e-3f1c2a7b8e01"


def _goal(category_id: str, **overrides: object) -> Goal:
    values: dict[str, object] = {
        "user_id": USER_ID,
        "category_id": category_id,
        "title": "Run",
    }
    values.update(overrides)
    return Goal(**values)


class TestCheckConstraints:
    def test_goal_importance(self, store: StoreClient, categories: dict[str, str]) -> None:
        with pytest.raises(ConstraintViolation) as exc_info:
            with store.session() as session:
                session.add(_goal(categories["child"], importance=9))
        assert exc_info.value.sqlstate == CHECK_VIOLATION

    def test_mission_points(self, store: StoreClient) -> None:
        with pytest.raises(ConstraintViolation):
            with store.session() as session:
                session.add(
                    Mission(
                        user_id=USER_ID,
                        mission_date=date(2026, 3, 11),
                        type=MissionType.HABIT.value,
                        points=-1,
                    )
                )

    def test_mission_type(self, store: StoreClient) -> None:
        with pytest.raises(ConstraintViolation):
            with store.session() as session:
                session.add(
                    Mission(user_id=USER_ID, mission_date=date(2026, 3, 11), type="chore")
                )

    def test_cycle_order_and_hours(self, store: StoreClient, categories: dict[str, str]) -> None:
        with store.session() as session:
            goal = _goal(categories["child"])
            plan = LongTermPlan(
                user_id=USER_ID,
                title="Q1",
                start_date=date(2026, 3, 16),
                end_date=date(2026, 6, 16),
            )
            session.add_all([goal, plan])
            session.flush()
            plan_id, goal_id = plan.id, goal.id

        with pytest.raises(ConstraintViolation):
            with store.session() as session:
                session.add(
                    Cycle(
                        long_term_id=plan_id,
                        title="Cycle 7",
                        start_date=date(2026, 6, 8),
                        end_date=date(2026, 6, 21),
                        order_index=7,
                    )
                )

        with pytest.raises(ConstraintViolation):
            with store.session() as session:
                cycle = Cycle(
                    long_term_id=plan_id,
                    title="Cycle 1",
                    start_date=date(2026, 3, 16),
                    end_date=date(2026, 3, 29),
                    order_index=1,
                )
                session.add(cycle)
                session.flush()
                session.add(CycleGoal(cycle_id=cycle.id, goal_id=goal_id, expected_hours=51))


class TestCascades:
    def test_plan_delete_cascades(self, store: StoreClient, categories: dict[str, str]) -> None:
        with store.session() as session:
            goal = _goal(categories["child"])
            plan = LongTermPlan(
                user_id=USER_ID,
                title="Q1",
                start_date=date(2026, 3, 16),
                end_date=date(2026, 6, 16),
            )
            cycle = Cycle(
                title="Cycle 1",
                start_date=date(2026, 3, 16),
                end_date=date(2026, 3, 29),
                order_index=1,
            )
            cycle.cycle_goals = [CycleGoal(goal=goal)]
            plan.cycles = [cycle]
            session.add(plan)
            session.flush()
            plan_id = plan.id

        with store.session() as session:
            session.delete(session.get(LongTermPlan, plan_id))

        counts = store.read(
            lambda s: (
                s.scalar(select(func.count()).select_from(Cycle)),
                s.scalar(select(func.count()).select_from(CycleGoal)),
                s.scalar(select(func.count()).select_from(Goal)),
            )
        )
        assert counts == (0, 0, 1)

    def test_ledger_survives_mission_delete(self, store: StoreClient) -> None:
        with store.session() as session:
            mission = Mission(
                user_id=USER_ID,
                mission_date=date(2026, 3, 11),
                type=MissionType.HABIT.value,
                points=5,
            )
            session.add(mission)
            session.flush()
            session.add(
                PointsLedgerEntry(
                    user_id=USER_ID, mission_id=mission.id, points=5, reason="mission_completed"
                )
            )
            mission_id = mission.id

        with store.session() as session:
            session.delete(session.get(Mission, mission_id))

        entry = store.read(lambda s: s.scalars(select(PointsLedgerEntry)).one())
        assert entry.mission_id is None
        assert entry.points == 5


class TestHelpers:
    def test_category_is_top_level(self) -> None:
        assert Category(user_id=USER_ID, name="Health").is_top_level
        assert not Category(user_id=USER_ID, name="Fitness", parent_id="p").is_top_level

    def test_mission_counts_as_highlight(self) -> None:
        assert Mission(type=MissionType.HIGHLIGHT.value, is_highlight=False).counts_as_highlight
        assert Mission(type=MissionType.EXTRA.value, is_highlight=True).counts_as_highlight
        assert not Mission(type=MissionType.HABIT.value, is_highlight=False).counts_as_highlight
