"""
Tests for MissionService.

Covers:
- Day board grouping (highlight, habits, extras) and the extras lock
- Highlight creation: default points, one per day
- Highlight suggestion
- Completion: points ledger, idempotency, extra lock, partial writes
- Cycle, habit plan and task references must belong to the caller
- Day board cache invalidation and optimistic updates
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from empire.lib import errors
from empire.lib.exceptions import (
    ConflictError,
    ConstraintViolation,
    MissionLockedError,
    NotFoundError,
    PartialWriteError,
    StoreUnavailableError,
    ValidationError,
)
from empire.models.extras import Task
from empire.models.goal import Goal, GoalType, HabitPlan
from empire.models.mission import (
    LEDGER_REASON_MISSION_COMPLETED,
    Mission,
    MissionType,
    PointsLedgerEntry,
)
from empire.models.plan import Cycle, LongTermPlan
from empire.services.missions import MissionService, day_board_key
from empire.services.progress import ProgressService
from empire.services.query_cache import QueryCache
from empire.store.client import StoreClient

USER_ID = "0b7c1a52-5f0e-4a43-9d6e-3f1c2a7b8e01"
OTHER_USER_ID = "7d2e9c41-0a6b-4f58-8c3d-1e2f3a4b5c6d"
TODAY = date(2026, 3, 11)


@pytest.fixture()
def cache() -> QueryCache:
    return QueryCache(default_ttl=60)


@pytest.fixture()
def service(
    store: StoreClient, cache: QueryCache, clock: Callable[[], datetime]
) -> MissionService:
    return MissionService(store, cache=cache, clock=clock)


def _ledger(store: StoreClient) -> list[PointsLedgerEntry]:
    return store.read(lambda s: list(s.scalars(select(PointsLedgerEntry)).all()))


# =============================================================================
# Creation and the day board
# =============================================================================


class TestDayBoard:
    def test_grouping(self, service: MissionService) -> None:
        extra = service.create_mission(USER_ID, MissionType.EXTRA, title="Inbox zero")
        habit = service.create_mission(USER_ID, MissionType.HABIT, title="Meditate", points=5)
        highlight = service.create_highlight(USER_ID, title="Ship the release")

        board = service.day_board(USER_ID)

        assert board.day == TODAY
        assert board.highlight.id == highlight.id
        assert [m.id for m in board.habits] == [habit.id]
        assert [m.id for m in board.extras] == [extra.id]
        assert board.extras_unlocked is False

    def test_empty_day(self, service: MissionService) -> None:
        board = service.day_board(USER_ID, date(2026, 1, 1))
        assert board.highlight is None
        assert board.missions == []
        assert board.extras_unlocked is False

    def test_scoped_to_user_and_day(self, service: MissionService) -> None:
        service.create_mission(USER_ID, MissionType.HABIT, title="Meditate")
        service.create_mission(USER_ID, MissionType.HABIT, TODAY + timedelta(days=1))

        assert len(service.day_board(USER_ID).missions) == 1
        assert service.day_board(OTHER_USER_ID).missions == []

    def test_negative_points_rejected(self, service: MissionService) -> None:
        with pytest.raises(ValidationError):
            service.create_mission(USER_ID, MissionType.HABIT, points=-1)


class TestHighlight:
    def test_default_points(self, service: MissionService) -> None:
        highlight = service.create_highlight(USER_ID, title="Ship the release")
        assert highlight.is_highlight
        assert highlight.type is MissionType.HIGHLIGHT
        assert highlight.points == 10

    def test_configured_points(self, store: StoreClient, clock: Callable[[], datetime]) -> None:
        service = MissionService(store, clock=clock, highlight_points=20)
        assert service.create_highlight(USER_ID).points == 20

    def test_one_per_day(self, service: MissionService) -> None:
        service.create_highlight(USER_ID, title="First")

        with pytest.raises(ConflictError) as exc_info:
            service.create_highlight(USER_ID, title="Second")

        assert exc_info.value.code == errors.HIGHLIGHT_EXISTS
        # Another day is fine
        service.create_highlight(USER_ID, TODAY + timedelta(days=1), "Tomorrow")

    def test_highlight_type_routes_through_create_highlight(
        self, service: MissionService
    ) -> None:
        service.create_mission(USER_ID, MissionType.HIGHLIGHT, title="First")
        with pytest.raises(ConflictError):
            service.create_mission(USER_ID, MissionType.HIGHLIGHT, title="Second")

    def test_store_enforces_one_highlight(self, store: StoreClient) -> None:
        with pytest.raises(ConstraintViolation) as exc_info:
            with store.session() as session:
                for title in ("First", "Second"):
                    session.add(
                        Mission(
                            user_id=USER_ID,
                            mission_date=TODAY,
                            type=MissionType.HIGHLIGHT.value,
                            title=title,
                            is_highlight=True,
                        )
                    )
        assert exc_info.value.is_unique_violation

    def test_suggest_promotes_first_incomplete(self, service: MissionService) -> None:
        done = service.create_mission(USER_ID, MissionType.HABIT, title="Meditate")
        service.complete_mission(USER_ID, done.id)
        extra = service.create_mission(USER_ID, MissionType.EXTRA, title="Inbox zero")

        suggested = service.suggest_highlight(USER_ID)

        assert suggested.id == extra.id
        assert suggested.is_highlight
        board = service.day_board(USER_ID)
        assert board.highlight.id == extra.id
        assert board.extras == []

    def test_suggest_when_highlight_exists(self, service: MissionService) -> None:
        service.create_highlight(USER_ID)
        service.create_mission(USER_ID, MissionType.EXTRA)
        with pytest.raises(ConflictError) as exc_info:
            service.suggest_highlight(USER_ID)
        assert exc_info.value.code == errors.HIGHLIGHT_EXISTS

    def test_suggest_without_candidates(self, service: MissionService) -> None:
        with pytest.raises(ConflictError) as exc_info:
            service.suggest_highlight(USER_ID)
        assert exc_info.value.code == errors.NO_HIGHLIGHT_CANDIDATE


# =============================================================================
# Completion
# =============================================================================


class TestCompletion:
    def test_habit_credits_points(self, service: MissionService, store: StoreClient) -> None:
        habit = service.create_mission(USER_ID, MissionType.HABIT, title="Meditate", points=5)

        result = service.complete_mission(USER_ID, habit.id)

        assert result.already_completed is False
        assert result.points_awarded == 5
        assert result.mission.is_completed
        assert result.mission.completed_at is not None
        ledger = _ledger(store)
        assert len(ledger) == 1
        assert ledger[0].points == 5
        assert ledger[0].mission_id == habit.id
        assert ledger[0].reason == LEDGER_REASON_MISSION_COMPLETED
        assert result.ledger_entry_id == ledger[0].id
        assert ProgressService(store).total_points(USER_ID) == 5

    def test_completion_is_idempotent(self, service: MissionService, store: StoreClient) -> None:
        habit = service.create_mission(USER_ID, MissionType.HABIT, points=5)
        service.complete_mission(USER_ID, habit.id)

        again = service.complete_mission(USER_ID, habit.id)

        assert again.already_completed is True
        assert again.points_awarded == 0
        assert again.ledger_entry_id is None
        assert len(_ledger(store)) == 1

    def test_extra_locked_until_highlight_done(self, service: MissionService) -> None:
        extra = service.create_mission(USER_ID, MissionType.EXTRA, title="Inbox zero", points=2)

        # No highlight at all
        with pytest.raises(MissionLockedError) as exc_info:
            service.complete_mission(USER_ID, extra.id)
        assert exc_info.value.message == "Unlock by finishing Highlight"

        # Highlight present but incomplete
        highlight = service.create_highlight(USER_ID, title="Ship the release")
        with pytest.raises(MissionLockedError):
            service.complete_mission(USER_ID, extra.id)

        service.complete_mission(USER_ID, highlight.id)
        assert service.day_board(USER_ID).extras_unlocked is True

        result = service.complete_mission(USER_ID, extra.id)
        assert result.points_awarded == 2

    def test_highlight_and_habit_totals(self, service: MissionService, store: StoreClient) -> None:
        highlight = service.create_highlight(USER_ID)
        habit = service.create_mission(USER_ID, MissionType.HABIT, points=5)

        service.complete_mission(USER_ID, highlight.id)
        service.complete_mission(USER_ID, habit.id)

        assert ProgressService(store).total_points(USER_ID) == 15

    def test_unknown_or_foreign_mission(self, service: MissionService) -> None:
        habit = service.create_mission(USER_ID, MissionType.HABIT)
        with pytest.raises(NotFoundError):
            service.complete_mission(USER_ID, "no-such-mission")
        with pytest.raises(NotFoundError):
            service.complete_mission(OTHER_USER_ID, habit.id)

    def test_ledger_failure_is_a_partial_write(
        self,
        service: MissionService,
        store: StoreClient,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        habit = service.create_mission(USER_ID, MissionType.HABIT, points=5)

        original = store.session
        calls = []

        @contextmanager
        def ledger_down() -> Iterator[object]:
            calls.append(1)
            # 1: load, 2: mark completed, 3: ledger append
            if len(calls) == 3:
                raise StoreUnavailableError("The store could not be reached.")
            with original() as session:
                yield session

        monkeypatch.setattr(store, "session", ledger_down)

        with pytest.raises(PartialWriteError) as exc_info:
            service.complete_mission(USER_ID, habit.id)

        monkeypatch.setattr(store, "session", original)
        assert exc_info.value.completed_steps == ["mission_completed"]
        # The first step is not compensated
        stored = store.read(lambda s: s.get(Mission, habit.id))
        assert stored.is_completed is True
        assert _ledger(store) == []

    def test_partial_write_refreshes_progress(
        self,
        service: MissionService,
        store: StoreClient,
        cache: QueryCache,
        clock: Callable[[], datetime],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        progress = ProgressService(store, cache=cache, clock=clock)
        habit = service.create_mission(USER_ID, MissionType.HABIT, points=5)
        assert progress.snapshot(USER_ID).missions_completed_today == 0

        original = store.session
        calls = []

        @contextmanager
        def ledger_down() -> Iterator[object]:
            calls.append(1)
            if len(calls) == 3:
                raise StoreUnavailableError("The store could not be reached.")
            with original() as session:
                yield session

        monkeypatch.setattr(store, "session", ledger_down)
        with pytest.raises(PartialWriteError):
            service.complete_mission(USER_ID, habit.id)
        monkeypatch.setattr(store, "session", original)

        snapshot = progress.snapshot(USER_ID)
        assert snapshot.missions_completed_today == 1
        assert snapshot.current_streak == 1
        assert snapshot.total_points == 0


class TestMissionReferences:
    """Cycle, habit plan and task references must belong to the caller."""

    @pytest.fixture()
    def owned(self, store: StoreClient, categories: dict[str, str]) -> dict[str, str]:
        with store.session() as session:
            goal = Goal(
                user_id=USER_ID,
                category_id=categories["child"],
                title="Meditate",
                type=GoalType.HABITUAL.value,
            )
            goal.habit_plan = HabitPlan(frequency="daily")
            plan = LongTermPlan(
                user_id=USER_ID,
                title="Q1 Plan",
                start_date=date(2026, 3, 16),
                end_date=date(2026, 6, 16),
            )
            plan.cycles = [
                Cycle(
                    title="Cycle 1",
                    start_date=date(2026, 3, 16),
                    end_date=date(2026, 3, 29),
                    order_index=1,
                )
            ]
            task = Task(user_id=USER_ID, title="Renew passport")
            session.add_all([goal, plan, task])
            session.flush()
            return {
                "cycle": plan.cycles[0].id,
                "habit_plan": goal.habit_plan.id,
                "task": task.id,
            }

    def test_owner_can_reference(
        self, service: MissionService, store: StoreClient, owned: dict[str, str]
    ) -> None:
        view = service.create_mission(
            USER_ID,
            MissionType.HABIT,
            cycle_id=owned["cycle"],
            habit_plan_id=owned["habit_plan"],
            task_id=owned["task"],
        )
        stored = store.read(lambda s: s.get(Mission, view.id))
        assert stored.cycle_id == owned["cycle"]
        assert stored.habit_plan_id == owned["habit_plan"]
        assert stored.task_id == owned["task"]

    @pytest.mark.parametrize("reference", ["cycle", "habit_plan", "task"])
    def test_foreign_reference_rejected(
        self,
        service: MissionService,
        store: StoreClient,
        owned: dict[str, str],
        reference: str,
    ) -> None:
        with pytest.raises(NotFoundError):
            service.create_mission(
                OTHER_USER_ID, MissionType.HABIT, **{f"{reference}_id": owned[reference]}
            )

        count = store.read(lambda s: len(s.scalars(select(Mission)).all()))
        assert count == 0

    def test_unknown_reference_rejected(self, service: MissionService) -> None:
        with pytest.raises(NotFoundError):
            service.create_mission(USER_ID, MissionType.EXTRA, cycle_id="no-such-cycle")


# =============================================================================
# Cache
# =============================================================================


class TestDayBoardCache:
    def test_board_is_cached(self, service: MissionService, cache: QueryCache) -> None:
        service.day_board(USER_ID)
        assert cache.get(day_board_key(USER_ID, TODAY)) is not None

    def test_creation_invalidates(self, service: MissionService) -> None:
        service.day_board(USER_ID)
        service.create_mission(USER_ID, MissionType.HABIT)
        assert len(service.day_board(USER_ID).missions) == 1

    def test_completion_refreshes_board(self, service: MissionService) -> None:
        habit = service.create_mission(USER_ID, MissionType.HABIT, points=5)
        assert service.day_board(USER_ID).habits[0].is_completed is False

        service.complete_mission(USER_ID, habit.id)

        assert service.day_board(USER_ID).habits[0].is_completed is True

    def test_failed_completion_restores_board(
        self,
        service: MissionService,
        cache: QueryCache,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        habit = service.create_mission(USER_ID, MissionType.HABIT, points=5)
        before = service.day_board(USER_ID)
        seen = []

        def failing_write(*_args: object) -> None:
            seen.append(cache.peek(day_board_key(USER_ID, TODAY)))
            raise StoreUnavailableError("The store could not be reached.")

        monkeypatch.setattr(service, "_write_completion", failing_write)

        with pytest.raises(StoreUnavailableError):
            service.complete_mission(USER_ID, habit.id)

        # Optimistic value during the write, snapshot afterwards
        assert seen[0].habits[0].is_completed is True
        assert cache.peek(day_board_key(USER_ID, TODAY)) == before
