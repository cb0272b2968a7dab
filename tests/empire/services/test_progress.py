"""
Tests for ProgressService.

Covers:
- Level and XP derived from total points
- Streak counting (ending today or yesterday)
- Snapshot figures: totals, today's completions, completed goals, recent entries
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta

import pytest

from empire.models.mission import MissionType
from empire.services.goals import GoalInput, GoalService
from empire.services.missions import MissionService
from empire.services.progress import LevelInfo, ProgressService, current_streak
from empire.store.client import StoreClient

USER_ID = "0b7c1a52-5f0e-4a43-9d6e-3f1c2a7b8e01"
TODAY = date(2026, 3, 11)


class TestLevelInfo:
    @pytest.mark.parametrize(
        ("total", "level", "xp"),
        [(0, 1, 0), (99, 1, 99), (100, 2, 0), (250, 3, 50), (-5, 1, 0)],
    )
    def test_from_total(self, total: int, level: int, xp: int) -> None:
        info = LevelInfo.from_total(total)
        assert (info.level, info.xp) == (level, xp)

    def test_percent(self) -> None:
        assert LevelInfo.from_total(250).percent == 50.0


class TestCurrentStreak:
    def test_ending_today(self) -> None:
        days = [TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=2)]
        assert current_streak(days, TODAY) == 3

    def test_ending_yesterday(self) -> None:
        days = [TODAY - timedelta(days=1), TODAY - timedelta(days=2)]
        assert current_streak(days, TODAY) == 2

    def test_broken(self) -> None:
        assert current_streak([TODAY - timedelta(days=2)], TODAY) == 0
        assert current_streak([], TODAY) == 0

    def test_gap_stops_the_count(self) -> None:
        days = [TODAY, TODAY - timedelta(days=2), TODAY - timedelta(days=3)]
        assert current_streak(days, TODAY) == 1


class TestSnapshot:
    def test_snapshot(
        self,
        store: StoreClient,
        clock: Callable[[], datetime],
        categories: dict[str, str],
    ) -> None:
        missions = MissionService(store, clock=clock)
        yesterday = TODAY - timedelta(days=1)

        old = missions.create_mission(USER_ID, MissionType.HABIT, yesterday, points=5)
        missions.complete_mission(USER_ID, old.id)
        highlight = missions.create_highlight(USER_ID, title="Ship the release")
        missions.complete_mission(USER_ID, highlight.id)
        missions.create_mission(USER_ID, MissionType.HABIT, points=5)  # open

        goals = GoalService(store)
        goal = goals.create_goal(USER_ID, GoalInput(title="Run", category_id=categories["child"]))
        goals.complete_goal(USER_ID, goal.id)

        snapshot = ProgressService(store, clock=clock).snapshot(USER_ID)

        assert snapshot.total_points == 15
        assert snapshot.level == LevelInfo(level=1, xp=15)
        assert snapshot.missions_completed_today == 1
        assert snapshot.goals_completed == 1
        assert snapshot.current_streak == 2
        assert {e.points for e in snapshot.recent_entries} == {5, 10}
        assert all(e.reason == "mission_completed" for e in snapshot.recent_entries)

    def test_empty(self, store: StoreClient, clock: Callable[[], datetime]) -> None:
        snapshot = ProgressService(store, clock=clock).snapshot(USER_ID)
        assert snapshot.total_points == 0
        assert snapshot.level.level == 1
        assert snapshot.current_streak == 0
        assert snapshot.recent_entries == []
