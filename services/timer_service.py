# -*- coding: utf-8 -*-

import asyncio
from dataclasses import dataclass, replace
from typing import Optional, Set

from core.errors import ConflictError, PersistenceError
from core.event import Event
from core.logging_handler import setup_logger
from core.timer_engine import TickResult, TimerEngine, TimerState, next_phase
from domain.models import Phase, TimerPreferences
from services.achievement_service import AchievementStats, AchievementTracker
from services.notifier import NotificationPort, completion_message
from services.session_recorder import SessionRecorder
from services.stats_service import SessionSummary, StatsService

logger = setup_logger(__name__)


@dataclass(frozen=True)
class CompletionEvent:
    phase: Phase
    at_ts: float


class TimerService:
    """
    Orchestrates:
    - TimerEngine state and the phase-selection policy
    - focus session logging through the SessionRecorder
    - stats / achievement refresh after a session is persisted
    - notifications and events for the UI

    Must be used from inside a running asyncio loop: store calls and
    notifications are scheduled as tasks so tick() never waits on I/O.
    """

    def __init__(
        self,
        engine: TimerEngine,
        recorder: SessionRecorder,
        preferences: Optional[TimerPreferences] = None,
        stats: Optional[StatsService] = None,
        achievements: Optional[AchievementTracker] = None,
        notifier: Optional[NotificationPort] = None,
        completed_focus_count: int = 0,
        auto_advance: bool = True,
    ):
        self.engine = engine
        self.recorder = recorder
        self.stats = stats
        self.achievements = achievements
        self.notifier = notifier
        self.auto_advance = auto_advance

        self.prefs = preferences or TimerPreferences()
        self._pending_prefs: Optional[TimerPreferences] = None

        self.completed_focus_count = max(0, int(completed_focus_count))
        # set once the current focus phase has been counted toward the interval
        self._phase_counted = False
        self.subject_id: Optional[str] = None
        self.last_summary: Optional[SessionSummary] = None

        self.on_tick = Event()
        self.on_state_change = Event()
        self.on_complete = Event()
        self.on_phase_change = Event()
        self.on_stats = Event()
        self.on_unlock = Event()
        self.on_persistence_error = Event()

        self._tasks: Set[asyncio.Task] = set()

    # ----- Task bookkeeping -----
    def _spawn(self, coro, what: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._track(task, what)
        return task

    def _track(self, task: "asyncio.Future", what: str) -> None:
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_task_done(t, what))

    def _on_task_done(self, task: "asyncio.Future", what: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, PersistenceError):
            logger.warning("%s failed: %s", what, exc)
            self.on_persistence_error.emit(exc)
        else:
            logger.error("%s failed", what, exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait for in-flight store calls, refreshes and notifications."""
        while self._tasks or self.recorder.pending:
            await self.recorder.wait_idle()
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ----- Public API -----
    def get_snapshot(self) -> TimerState:
        return self.engine.snapshot()

    @property
    def phase(self) -> Phase:
        return self.engine.phase

    def upcoming_phase(self) -> Phase:
        return next_phase(
            self.engine.phase,
            self.completed_focus_count,
            self.prefs.long_break_interval,
        )

    def start(self, subject_id: Optional[str] = None) -> bool:
        if subject_id is not None:
            self.subject_id = subject_id
        if not self.engine.start():
            return False

        if self.engine.phase is Phase.FOCUS and not self.recorder.has_open_session:
            try:
                self._track(self.recorder.open_session(self.subject_id), "open session")
            except ConflictError:
                logger.warning("Focus session already open, keeping it.")

        logger.info("Timer started (%s, %ss left)", self.engine.phase.value, self.engine.remaining_sec)
        self.on_state_change.emit(self.get_snapshot())
        return True

    def pause(self) -> bool:
        if not self.engine.pause():
            return False
        self._promote_pending_prefs()
        logger.info("Timer paused (%ss left)", self.engine.remaining_sec)
        self.on_state_change.emit(self.get_snapshot())
        return True

    def reset(self) -> None:
        """Stop and refill the current phase. An open focus session stays open."""
        self.engine.pause()
        self._promote_pending_prefs()
        self.engine.reset_timer(self.prefs.duration_for(self.engine.phase))
        self._phase_counted = False
        self.on_state_change.emit(self.get_snapshot())

    def tick(self, now: Optional[float] = None) -> TickResult:
        """
        Should be called about once per second by the host loop.
        Handles focus accounting, completion and phase switching.
        """
        result = self.engine.tick(now)
        if result.consumed and result.phase is Phase.FOCUS:
            self.recorder.accumulate(result.consumed)

        self.on_tick.emit(self.get_snapshot())

        if result.completed:
            at_ts = self.engine.clock.now() if now is None else now
            self._on_phase_completed(result.phase, at_ts)
        return result

    def skip(self) -> Phase:
        """
        End the current phase with the completion policy. A partial focus
        session is finalized with whatever time it accumulated; a focus phase
        that already completed is not counted a second time.
        """
        ended = self.engine.phase
        if ended is Phase.FOCUS and not self._phase_counted:
            self.completed_focus_count += 1
            self._phase_counted = True
        nxt = self.upcoming_phase()
        logger.info("Skipping %s -> %s", ended.value, nxt.value)
        self.switch_phase(nxt)
        return nxt

    def switch_phase(self, phase: Phase, focus_score: Optional[int] = None) -> None:
        self.engine.pause()
        self._promote_pending_prefs()
        previous = self.engine.switch_phase(phase, self.prefs.duration_for(phase))
        self._phase_counted = False

        if previous is Phase.FOCUS and self.recorder.has_open_session:
            self._close_session(focus_score)

        self.on_phase_change.emit(self.get_snapshot())
        self.on_state_change.emit(self.get_snapshot())

    def finish_session(self, focus_score: Optional[int] = None) -> bool:
        """Stop the countdown and close the open focus session, staying in the phase."""
        if not self.recorder.has_open_session:
            return False
        self.engine.pause()
        self._close_session(focus_score)
        self.on_state_change.emit(self.get_snapshot())
        return True

    def apply_preferences(self, prefs: TimerPreferences) -> bool:
        """
        Adopt new preferences. While running they are held back until the
        next pause / switch, so the live countdown is never altered.
        Returns True if applied immediately.
        """
        if self.engine.is_running:
            self._pending_prefs = prefs
            logger.info("Preferences deferred until the timer stops.")
            return False
        self._adopt(prefs)
        return True

    async def restore(self) -> None:
        """
        Seed the long-break counter from today's sessions and load stats.
        The store does not record why a session closed, so every closed focus
        session of today counts here, manual switches included.
        """
        if self.stats is None:
            return
        try:
            self.completed_focus_count = await self.stats.focus_count_today()
        except PersistenceError as e:
            logger.warning("Could not restore today's focus count: %s", e)
            self.on_persistence_error.emit(e)
            return
        await self.refresh_stats()

    async def refresh_stats(self) -> Optional[SessionSummary]:
        """Recompute stats from the store, then evaluate achievements."""
        if self.stats is None:
            return None
        summary = await self.stats.summary()
        self.last_summary = summary
        self.on_stats.emit(summary)

        if self.achievements is not None:
            new_ids = self.achievements.check(
                AchievementStats(
                    total_sessions=summary.total_sessions,
                    total_hours=summary.total_hours,
                    streak=summary.streak,
                    last_session_end_ts=summary.last_end_ts,
                )
            )
            for achievement_id in new_ids:
                self.on_unlock.emit(achievement_id)
        return summary

    # ----- internals -----
    def _on_phase_completed(self, phase: Phase, at_ts: float) -> None:
        if phase is Phase.FOCUS:
            self.completed_focus_count += 1
            self._phase_counted = True
            if self.recorder.has_open_session:
                self._close_session()
        logger.info("%s phase complete", phase.value)
        self.on_complete.emit(CompletionEvent(phase=phase, at_ts=at_ts))
        self._notify_completion(phase)

        if not self.auto_advance:
            return

        nxt = self.upcoming_phase()
        self.switch_phase(nxt)

        if nxt.is_break and self.prefs.auto_start_breaks:
            self.start()
        elif nxt is Phase.FOCUS and self.prefs.auto_start_pomodoros:
            self.start()

    def _close_session(self, focus_score: Optional[int] = None) -> None:
        closing = self.recorder.close_session(focus_score)
        self._track(closing, "close session")
        if self.stats is not None:
            self._spawn(self._refresh_after(closing), "refresh stats")

    async def _refresh_after(self, closing) -> None:
        try:
            await closing
        except PersistenceError:
            # reported by the close task itself
            return
        await self.refresh_stats()

    def _notify_completion(self, phase: Phase) -> None:
        if self.notifier is None:
            return
        if self.prefs.notifications_enabled:
            title, body = completion_message(phase)
            self._spawn(self.notifier.notify(title, body), "notification")
        if self.prefs.sound_enabled:
            self._spawn(self.notifier.play_sound(self.prefs.sound_volume), "sound")

    def _promote_pending_prefs(self) -> None:
        if self._pending_prefs is not None:
            prefs, self._pending_prefs = self._pending_prefs, None
            self._adopt(prefs)

    def _adopt(self, prefs: TimerPreferences) -> None:
        old = self.prefs
        self.prefs = replace(prefs, long_break_interval=max(1, prefs.long_break_interval))
        phase = self.engine.phase
        # refill only an untouched phase; a paused countdown keeps its progress
        fresh = self.engine.remaining_sec == old.duration_for(phase)
        if fresh and old.duration_for(phase) != self.prefs.duration_for(phase):
            self.engine.reset_timer(self.prefs.duration_for(phase))
        logger.debug("Preferences applied: %s", self.prefs)
