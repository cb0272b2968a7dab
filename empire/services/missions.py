"""
Mission Service for Empire.

Implements the daily mission board and the completion state machine.

States per mission: incomplete -> completed, one way. There is no reopen.

Rules:
- at most one highlight per user and day (backed by a partial unique index)
- habit missions are completable at any time
- extra missions are completable only once the day's highlight is completed
- completing an already completed mission is a no-op and writes no ledger entry
- completion is two writes: the mission update, then the ledger append.
  A failed append after a successful update is not compensated and is
  raised as PartialWriteError

Completion and highlight suggestion go through ``optimistic_mutation`` so
the cached day board reflects the intended state immediately, is restored
on failure, and is invalidated once the write settles.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from empire.lib import errors
from empire.lib.exceptions import (
    ConflictError,
    ConstraintViolation,
    MissionLockedError,
    NotFoundError,
    PartialWriteError,
    StoreError,
    ValidationError,
)
from empire.lib.security import hash_uid
from empire.models.extras import Task
from empire.models.goal import Goal, HabitPlan
from empire.models.mission import (
    LEDGER_REASON_MISSION_COMPLETED,
    Mission,
    MissionType,
    PointsLedgerEntry,
)
from empire.models.plan import Cycle, LongTermPlan
from empire.services.query_cache import QueryCache, optimistic_mutation
from empire.store.client import StoreClient

logger = logging.getLogger(__name__)

DEFAULT_HIGHLIGHT_POINTS = 10
MAX_TITLE_LENGTH = 200


def day_board_key(user_id: str, day: date) -> tuple[str, str, str]:
    return ("missions", user_id, day.isoformat())


def progress_key(user_id: str) -> tuple[str, str]:
    return ("progress", user_id)


# =============================================================================
# Views
# =============================================================================


@dataclass(frozen=True)
class MissionView:
    id: str
    mission_date: date
    type: MissionType
    title: str
    is_highlight: bool
    points: int
    is_completed: bool
    completed_at: datetime | None
    created_at: datetime | None = None

    @property
    def counts_as_highlight(self) -> bool:
        return self.is_highlight or self.type is MissionType.HIGHLIGHT

    @classmethod
    def from_model(cls, mission: Mission) -> MissionView:
        return cls(
            id=mission.id,
            mission_date=mission.mission_date,
            type=MissionType(mission.type),
            title=mission.title or "",
            is_highlight=bool(mission.is_highlight),
            points=mission.points or 0,
            is_completed=bool(mission.is_completed),
            completed_at=mission.completed_at,
            created_at=mission.created_at,
        )


def _sort_key(mission: MissionView) -> tuple[bool, bool, str]:
    # Highlight first, incomplete before completed, then by type.
    # Stable: rows arrive in creation order.
    return (not mission.is_highlight, mission.is_completed, mission.type.value)


@dataclass(frozen=True)
class DayBoard:
    """A day's missions grouped for display."""

    day: date
    highlight: MissionView | None = None
    habits: list[MissionView] = field(default_factory=list)
    extras: list[MissionView] = field(default_factory=list)

    @property
    def extras_unlocked(self) -> bool:
        return self.highlight is not None and self.highlight.is_completed

    @property
    def missions(self) -> list[MissionView]:
        items = [self.highlight] if self.highlight is not None else []
        return items + self.habits + self.extras

    @classmethod
    def from_missions(cls, day: date, missions: list[MissionView]) -> DayBoard:
        ordered = sorted(missions, key=_sort_key)
        highlight = next((m for m in ordered if m.counts_as_highlight), None)
        rest = [m for m in ordered if m is not highlight]
        return cls(
            day=day,
            highlight=highlight,
            habits=[m for m in rest if m.type is MissionType.HABIT],
            extras=[m for m in rest if m.type is not MissionType.HABIT],
        )

    def _with(self, mission_id: str, **changes) -> DayBoard:
        missions = [
            replace(m, **changes) if m.id == mission_id else m for m in self.missions
        ]
        return DayBoard.from_missions(self.day, missions)

    def with_completed(self, mission_id: str, at: datetime) -> DayBoard:
        return self._with(mission_id, is_completed=True, completed_at=at)

    def with_highlight(self, mission_id: str) -> DayBoard:
        return self._with(mission_id, is_highlight=True)


@dataclass
class CompletionResult:
    """
    Outcome of a completion request.

    ``already_completed`` is True when the mission was completed before the
    request; nothing was written in that case.
    """

    mission: MissionView
    already_completed: bool
    points_awarded: int
    ledger_entry_id: str | None = None


# =============================================================================
# Service
# =============================================================================


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MissionService:
    """
    Mission operations scoped to a single user.

    Args:
        store: Store client
        cache: Optional query cache for day boards
        clock: Current-time source, injectable for tests
        highlight_points: Default points for a new highlight
    """

    def __init__(
        self,
        store: StoreClient,
        cache: QueryCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
        highlight_points: int = DEFAULT_HIGHLIGHT_POINTS,
    ):
        self._store = store
        self._cache = cache if cache is not None else QueryCache(default_ttl=0)
        self._clock = clock
        self._highlight_points = highlight_points

    def today(self) -> date:
        return self._clock().date()

    # =========================================================================
    # Queries
    # =========================================================================

    def day_board(self, user_id: str, day: date | None = None) -> DayBoard:
        """Return the day's missions grouped into highlight, habits and extras."""
        day = day or self.today()

        def load(session: Session) -> DayBoard:
            rows = session.scalars(self._day_query(user_id, day)).all()
            return DayBoard.from_missions(day, [MissionView.from_model(m) for m in rows])

        return self._cache.get_or_load(
            day_board_key(user_id, day),
            lambda: self._store.read(load),
        )

    # =========================================================================
    # Creation
    # =========================================================================

    def create_mission(
        self,
        user_id: str,
        mission_type: MissionType,
        day: date | None = None,
        title: str = "",
        points: int | None = None,
        *,
        cycle_id: str | None = None,
        task_id: str | None = None,
        habit_plan_id: str | None = None,
    ) -> MissionView:
        """
        Create a mission for a day.

        Highlights are routed through ``create_highlight``.

        Raises:
            ValidationError: Negative points or title too long
            ConflictError: A highlight already exists for the day
            NotFoundError: A referenced cycle, task or habit plan is not the user's
        """
        mission_type = MissionType(mission_type)
        day = day or self.today()
        if mission_type is MissionType.HIGHLIGHT:
            return self.create_highlight(user_id, day, title, points)

        mission = Mission(
            user_id=user_id,
            mission_date=day,
            type=mission_type.value,
            title=self._clean_title(title),
            is_highlight=False,
            points=self._check_points(points if points is not None else 0),
            is_completed=False,
            cycle_id=cycle_id,
            task_id=task_id,
            habit_plan_id=habit_plan_id,
        )
        with self._store.session() as session:
            self._check_references(
                session, user_id, cycle_id=cycle_id, task_id=task_id, habit_plan_id=habit_plan_id
            )
            session.add(mission)
            session.flush()
            view = MissionView.from_model(mission)

        self._cache.invalidate(day_board_key(user_id, day))
        return view

    def create_highlight(
        self,
        user_id: str,
        day: date | None = None,
        title: str = "",
        points: int | None = None,
    ) -> MissionView:
        """
        Create the day's highlight.

        Raises:
            ConflictError: HIGHLIGHT_EXISTS if the day already has one
        """
        day = day or self.today()
        mission = Mission(
            user_id=user_id,
            mission_date=day,
            type=MissionType.HIGHLIGHT.value,
            title=self._clean_title(title),
            is_highlight=True,
            points=self._check_points(points if points is not None else self._highlight_points),
            is_completed=False,
        )
        try:
            with self._store.session() as session:
                if self._find_highlight(session, user_id, day) is not None:
                    raise self._highlight_exists()
                session.add(mission)
                session.flush()
                view = MissionView.from_model(mission)
        except ConstraintViolation as e:
            if e.is_unique_violation:
                raise self._highlight_exists() from e
            raise

        self._cache.invalidate(day_board_key(user_id, day))
        logger.info("Highlight created user_hash=%s", hash_uid(user_id))
        return view

    def suggest_highlight(self, user_id: str, day: date | None = None) -> MissionView:
        """
        Promote the day's first incomplete, non-highlight mission to highlight.

        Raises:
            ConflictError: HIGHLIGHT_EXISTS if the day already has a highlight,
                NO_HIGHLIGHT_CANDIDATE if nothing can be promoted
        """
        day = day or self.today()

        def pick(session: Session) -> str:
            if self._find_highlight(session, user_id, day) is not None:
                raise self._highlight_exists()
            candidate = session.scalar(
                select(Mission.id)
                .where(
                    Mission.user_id == user_id,
                    Mission.mission_date == day,
                    Mission.is_completed.is_(False),
                    Mission.is_highlight.is_(False),
                    Mission.type != MissionType.HIGHLIGHT.value,
                )
                .order_by(Mission.created_at, Mission.id)
                .limit(1)
            )
            if candidate is None:
                raise ConflictError(
                    errors.get_error_message(errors.NO_HIGHLIGHT_CANDIDATE),
                    code=errors.NO_HIGHLIGHT_CANDIDATE,
                )
            return candidate

        mission_id = self._store.read(pick)

        def promote() -> MissionView:
            try:
                with self._store.session() as session:
                    mission = self._get_owned(session, user_id, mission_id)
                    mission.is_highlight = True
                    session.flush()
                    return MissionView.from_model(mission)
            except ConstraintViolation as e:
                if e.is_unique_violation:
                    raise self._highlight_exists() from e
                raise

        view = optimistic_mutation(
            self._cache,
            day_board_key(user_id, day),
            apply=lambda board: board.with_highlight(mission_id),
            run=promote,
        )
        logger.info("Highlight suggested user_hash=%s", hash_uid(user_id))
        return view

    # =========================================================================
    # Completion
    # =========================================================================

    def complete_mission(self, user_id: str, mission_id: str) -> CompletionResult:
        """
        Complete a mission and credit its points.

        Returns:
            CompletionResult; ``already_completed`` with no writes if the
            mission was completed before

        Raises:
            NotFoundError: Mission does not exist for this user
            MissionLockedError: Extra mission while the highlight is incomplete or absent
            PartialWriteError: Mission marked completed but the ledger append failed
        """

        def load(session: Session) -> tuple[MissionView, bool]:
            mission = self._get_owned(session, user_id, mission_id)
            view = MissionView.from_model(mission)
            unlocked = True
            if view.type is MissionType.EXTRA and not view.is_highlight:
                highlight = self._find_highlight(session, user_id, view.mission_date)
                unlocked = highlight is not None and bool(highlight.is_completed)
            return view, unlocked

        view, unlocked = self._store.read(load)

        if view.is_completed:
            return CompletionResult(mission=view, already_completed=True, points_awarded=0)
        if not unlocked:
            raise MissionLockedError(
                errors.get_error_message(errors.MISSION_LOCKED),
                code=errors.MISSION_LOCKED,
            )

        completed_at = self._clock()
        try:
            return optimistic_mutation(
                self._cache,
                day_board_key(user_id, view.mission_date),
                apply=lambda board: board.with_completed(mission_id, completed_at),
                run=lambda: self._write_completion(user_id, view, completed_at),
            )
        finally:
            # The mission update may have committed even when the ledger append failed
            self._cache.invalidate(progress_key(user_id))

    def _write_completion(
        self,
        user_id: str,
        view: MissionView,
        completed_at: datetime,
    ) -> CompletionResult:
        # Step 1: mark completed; the guard makes a concurrent second attempt a no-op
        with self._store.session() as session:
            updated = session.execute(
                update(Mission)
                .where(
                    Mission.id == view.id,
                    Mission.user_id == user_id,
                    Mission.is_completed.is_(False),
                )
                .values(is_completed=True, completed_at=completed_at)
            ).rowcount

        completed = replace(view, is_completed=True, completed_at=completed_at)
        if not updated:
            return CompletionResult(mission=completed, already_completed=True, points_awarded=0)

        # Step 2: ledger append, not compensated on failure
        points = view.points or 0
        try:
            with self._store.session() as session:
                entry = PointsLedgerEntry(
                    user_id=user_id,
                    mission_id=view.id,
                    points=points,
                    reason=LEDGER_REASON_MISSION_COMPLETED,
                    occurred_at=completed_at,
                )
                session.add(entry)
                session.flush()
                entry_id = entry.id
        except StoreError as e:
            logger.error(
                "Mission completed but ledger append failed user_hash=%s error=%s",
                hash_uid(user_id),
                type(e).__name__,
            )
            raise PartialWriteError(
                "Mission marked completed but points were not recorded.",
                completed_steps=["mission_completed"],
            ) from e

        logger.info(
            "Mission completed user_hash=%s type=%s points=%d",
            hash_uid(user_id),
            view.type.value,
            points,
        )
        return CompletionResult(
            mission=completed,
            already_completed=False,
            points_awarded=points,
            ledger_entry_id=entry_id,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _day_query(user_id: str, day: date):
        return (
            select(Mission)
            .where(Mission.user_id == user_id, Mission.mission_date == day)
            .order_by(
                Mission.is_highlight.desc(),
                Mission.is_completed.asc(),
                Mission.type.asc(),
                Mission.created_at.asc(),
            )
        )

    @staticmethod
    def _find_highlight(session: Session, user_id: str, day: date) -> Mission | None:
        return session.scalar(
            select(Mission)
            .where(
                Mission.user_id == user_id,
                Mission.mission_date == day,
                (Mission.is_highlight.is_(True)) | (Mission.type == MissionType.HIGHLIGHT.value),
            )
            .order_by(Mission.is_highlight.desc(), Mission.created_at)
            .limit(1)
        )

    @staticmethod
    def _get_owned(session: Session, user_id: str, mission_id: str) -> Mission:
        mission = session.scalar(
            select(Mission).where(Mission.id == mission_id, Mission.user_id == user_id)
        )
        if mission is None:
            raise NotFoundError("Mission not found.")
        return mission

    @staticmethod
    def _check_references(
        session: Session,
        user_id: str,
        *,
        cycle_id: str | None,
        task_id: str | None,
        habit_plan_id: str | None,
    ) -> None:
        """Raise NotFoundError unless every given reference belongs to the user."""
        if cycle_id is not None:
            owned = session.scalar(
                select(Cycle.id)
                .join(LongTermPlan, Cycle.long_term_id == LongTermPlan.id)
                .where(Cycle.id == cycle_id, LongTermPlan.user_id == user_id)
            )
            if owned is None:
                raise NotFoundError("Cycle not found.")
        if habit_plan_id is not None:
            owned = session.scalar(
                select(HabitPlan.id)
                .join(Goal, HabitPlan.goal_id == Goal.id)
                .where(HabitPlan.id == habit_plan_id, Goal.user_id == user_id)
            )
            if owned is None:
                raise NotFoundError("Habit plan not found.")
        if task_id is not None:
            owned = session.scalar(
                select(Task.id).where(Task.id == task_id, Task.user_id == user_id)
            )
            if owned is None:
                raise NotFoundError("Task not found.")

    @staticmethod
    def _highlight_exists() -> ConflictError:
        return ConflictError(
            errors.get_error_message(errors.HIGHLIGHT_EXISTS),
            code=errors.HIGHLIGHT_EXISTS,
        )

    @staticmethod
    def _check_points(points: int) -> int:
        if points < 0:
            raise ValidationError("Points cannot be negative.")
        return points

    @staticmethod
    def _clean_title(title: str | None) -> str:
        cleaned = (title or "").strip()
        if len(cleaned) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters.")
        return cleaned


__all__ = [
    "CompletionResult",
    "DayBoard",
    "MissionService",
    "MissionView",
    "day_board_key",
    "progress_key",
]
