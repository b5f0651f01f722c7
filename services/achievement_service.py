# -*- coding: utf-8 -*-

import datetime as dt
import json
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Set

from core.logging_handler import setup_logger

logger = setup_logger(__name__)

STATE_KEY = "achievements.unlocked"


class AchievementId(Enum):
    FIRST_STEP = "first_step"
    ON_FIRE = "on_fire"
    SCHOLAR = "scholar"
    FOCUS_MASTER = "focus_master"
    NIGHT_OWL = "night_owl"


@dataclass(frozen=True)
class Achievement:
    id: AchievementId
    title: str
    description: str


ACHIEVEMENTS = (
    Achievement(AchievementId.FIRST_STEP, "First Step", "Complete your first study session"),
    Achievement(AchievementId.ON_FIRE, "On Fire", "Achieve a 3-day study streak"),
    Achievement(AchievementId.SCHOLAR, "Scholar", "Study for a total of 10 hours"),
    Achievement(AchievementId.FOCUS_MASTER, "Focus Master", "Log 50+ study sessions"),
    Achievement(AchievementId.NIGHT_OWL, "Night Owl", "Complete a study session after 10 PM"),
)

STREAK_GOAL = 3
HOURS_GOAL = 10
SESSIONS_GOAL = 50
NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 4  # exclusive


@dataclass(frozen=True)
class AchievementStats:
    total_sessions: int = 0
    total_hours: float = 0.0
    streak: int = 0
    last_session_end_ts: Optional[int] = None


def get_achievement(achievement_id: AchievementId) -> Achievement:
    for a in ACHIEVEMENTS:
        if a.id is achievement_id:
            return a
    raise KeyError(achievement_id)


def _is_night(ts: Optional[int]) -> bool:
    if ts is None:
        return False
    hour = dt.datetime.fromtimestamp(ts).hour
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


def evaluate_achievements(
    stats: AchievementStats,
    unlocked: Iterable[AchievementId] = (),
) -> List[AchievementId]:
    """Ids whose rule now holds and that are not unlocked yet, in catalogue order."""
    unlocked = set(unlocked)
    reached = {
        AchievementId.FIRST_STEP: stats.total_sessions >= 1,
        AchievementId.ON_FIRE: stats.streak >= STREAK_GOAL,
        AchievementId.SCHOLAR: stats.total_hours >= HOURS_GOAL,
        AchievementId.FOCUS_MASTER: stats.total_sessions >= SESSIONS_GOAL,
        AchievementId.NIGHT_OWL: _is_night(stats.last_session_end_ts),
    }
    return [a.id for a in ACHIEVEMENTS if reached[a.id] and a.id not in unlocked]


class AchievementTracker:
    """
    Keeps the unlocked set (persisted by id in app_state) and a queue of
    unlocks waiting to be shown. Unlocks are monotonic; the queue is not
    persisted and is emptied by drain().
    """

    def __init__(self, state_repo=None):
        self.state_repo = state_repo
        self._unlocked: Set[AchievementId] = set()
        self._queue: List[AchievementId] = []
        self._load()

    def _load(self) -> None:
        if self.state_repo is None:
            return
        raw = self.state_repo.get(STATE_KEY)
        if not raw:
            return
        try:
            ids = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable achievement state: %r", raw)
            return
        for value in ids if isinstance(ids, list) else []:
            try:
                self._unlocked.add(AchievementId(value))
            except ValueError:
                logger.warning("Ignoring unknown achievement id %r", value)

    def _save(self) -> None:
        if self.state_repo is None:
            return
        ids = [a.id.value for a in ACHIEVEMENTS if a.id in self._unlocked]
        self.state_repo.set(STATE_KEY, json.dumps(ids))

    @property
    def unlocked(self) -> Set[AchievementId]:
        return set(self._unlocked)

    def is_unlocked(self, achievement_id: AchievementId) -> bool:
        return achievement_id in self._unlocked

    def check(self, stats: AchievementStats) -> List[AchievementId]:
        """Unlock whatever the stats now satisfy; returns only the new ids."""
        new_ids = evaluate_achievements(stats, self._unlocked)
        if not new_ids:
            return []
        for achievement_id in new_ids:
            self._unlocked.add(achievement_id)
            self._queue.append(achievement_id)
            logger.info("Achievement unlocked: %s", achievement_id.value)
        self._save()
        return new_ids

    def pending(self) -> List[AchievementId]:
        return list(self._queue)

    def drain(self) -> List[AchievementId]:
        """Hand over queued unlocks and acknowledge them."""
        out, self._queue = self._queue, []
        return out
