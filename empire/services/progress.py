"""
Progress Service for Empire.

Derives a user's standing from the points ledger and completed work:
- total points: sum of ledger entries
- level: floor(total / 100) + 1, with XP into the level = total mod 100
- recent ledger entries (latest 20, newest first)
- missions completed today, goals completed
- current streak: consecutive days with at least one completed mission,
  ending today (or yesterday when nothing is completed yet today)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from empire.models.goal import Goal, GoalStatus
from empire.models.mission import Mission, PointsLedgerEntry
from empire.services.missions import progress_key
from empire.services.query_cache import QueryCache
from empire.store.client import StoreClient

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 100
RECENT_ENTRIES_LIMIT = 20


@dataclass(frozen=True)
class LevelInfo:
    level: int
    xp: int
    next_level_xp: int = POINTS_PER_LEVEL

    @classmethod
    def from_total(cls, total_points: int) -> LevelInfo:
        total = max(0, total_points)
        return cls(level=total // POINTS_PER_LEVEL + 1, xp=total % POINTS_PER_LEVEL)

    @property
    def percent(self) -> float:
        return self.xp / self.next_level_xp * 100


@dataclass(frozen=True)
class LedgerEntryView:
    id: str
    points: int
    reason: str
    mission_id: str | None
    occurred_at: datetime


@dataclass
class ProgressSnapshot:
    total_points: int
    level: LevelInfo
    missions_completed_today: int
    goals_completed: int
    current_streak: int
    recent_entries: list[LedgerEntryView] = field(default_factory=list)


def current_streak(completed_days: Iterable[date], today: date) -> int:
    """
    Count consecutive days with completions, ending today or yesterday.

    Args:
        completed_days: Days with at least one completed mission (any order)
        today: Reference day

    Returns:
        Streak length in days, 0 if neither today nor yesterday has completions
    """
    days = set(completed_days)
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProgressService:
    """Progress figures for a single user."""

    def __init__(
        self,
        store: StoreClient,
        cache: QueryCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._cache = cache if cache is not None else QueryCache(default_ttl=0)
        self._clock = clock

    def total_points(self, user_id: str) -> int:
        return self._store.read(lambda s: self._total_points(s, user_id))

    def snapshot(self, user_id: str) -> ProgressSnapshot:
        """Return the user's progress, cached until the next completion."""
        today = self._clock().date()

        def load(session: Session) -> ProgressSnapshot:
            total = self._total_points(session, user_id)

            entries = session.scalars(
                select(PointsLedgerEntry)
                .where(PointsLedgerEntry.user_id == user_id)
                .order_by(PointsLedgerEntry.occurred_at.desc(), PointsLedgerEntry.id)
                .limit(RECENT_ENTRIES_LIMIT)
            ).all()

            completed_today = session.scalar(
                select(func.count())
                .select_from(Mission)
                .where(
                    Mission.user_id == user_id,
                    Mission.mission_date == today,
                    Mission.is_completed.is_(True),
                )
            ) or 0

            goals_completed = session.scalar(
                select(func.count())
                .select_from(Goal)
                .where(Goal.user_id == user_id, Goal.status == GoalStatus.COMPLETED.value)
            ) or 0

            completed_days = session.scalars(
                select(Mission.mission_date)
                .where(
                    Mission.user_id == user_id,
                    Mission.is_completed.is_(True),
                    Mission.mission_date <= today,
                )
                .distinct()
            ).all()

            return ProgressSnapshot(
                total_points=total,
                level=LevelInfo.from_total(total),
                missions_completed_today=completed_today,
                goals_completed=goals_completed,
                current_streak=current_streak(completed_days, today),
                recent_entries=[
                    LedgerEntryView(
                        id=e.id,
                        points=e.points,
                        reason=e.reason,
                        mission_id=e.mission_id,
                        occurred_at=e.occurred_at,
                    )
                    for e in entries
                ],
            )

        return self._cache.get_or_load(progress_key(user_id), lambda: self._store.read(load))

    @staticmethod
    def _total_points(session: Session, user_id: str) -> int:
        total = session.scalar(
            select(func.coalesce(func.sum(PointsLedgerEntry.points), 0)).where(
                PointsLedgerEntry.user_id == user_id
            )
        )
        return int(total or 0)


__all__ = [
    "LedgerEntryView",
    "LevelInfo",
    "ProgressService",
    "ProgressSnapshot",
    "current_streak",
]
