# -*- coding: utf-8 -*-

import math
from dataclasses import dataclass
from typing import Optional

from core.clock import SystemClock
from core.logging_handler import setup_logger
from domain.models import Phase

logger = setup_logger(__name__)


@dataclass(frozen=True)
class TimerState:
    phase: Phase
    remaining_seconds: int
    running: bool
    last_tick: Optional[float]
    accumulated_focus_seconds: int


@dataclass(frozen=True)
class TickResult:
    phase: Phase
    consumed: int = 0
    completed: bool = False


def next_phase(ended: Phase, completed_focus_count: int, long_break_interval: int) -> Phase:
    """
    Phase that follows `ended`.
    `completed_focus_count` already includes the focus phase that just ended.
    """
    if ended is not Phase.FOCUS:
        return Phase.FOCUS
    interval = max(1, int(long_break_interval))
    if completed_focus_count > 0 and completed_focus_count % interval == 0:
        return Phase.LONG_BREAK
    return Phase.SHORT_BREAK


class TimerEngine:
    """
    Pure countdown engine (no I/O, no thread).
    The host calls tick() periodically; elapsed time comes from wall-clock
    deltas so late or missed calls do not desynchronize the countdown.
    Every operation is total: invalid calls are no-ops.
    """

    def __init__(self, focus_sec: int = 25 * 60, clock=None):
        self.clock = clock or SystemClock()

        self.phase = Phase.FOCUS
        self.remaining_sec = max(0, int(focus_sec))
        self.is_running = False
        self.last_tick: Optional[float] = None
        self.accumulated_focus_sec = 0

    def snapshot(self) -> TimerState:
        return TimerState(
            phase=self.phase,
            remaining_seconds=self.remaining_sec,
            running=self.is_running,
            last_tick=self.last_tick,
            accumulated_focus_seconds=self.accumulated_focus_sec,
        )

    def _now(self, now: Optional[float]) -> float:
        return self.clock.now() if now is None else float(now)

    def start(self, now: Optional[float] = None) -> bool:
        if self.is_running or self.remaining_sec <= 0:
            return False
        self.is_running = True
        self.last_tick = self._now(now)
        return True

    def pause(self) -> bool:
        if not self.is_running:
            return False
        self.is_running = False
        self.last_tick = None
        return True

    def tick(self, now: Optional[float] = None) -> TickResult:
        if not self.is_running or self.remaining_sec <= 0:
            return TickResult(phase=self.phase)

        now = self._now(now)
        if now < self.last_tick:
            # wall clock stepped backwards
            logger.debug("Clock moved back %.3fs, re-basing tick origin.", self.last_tick - now)
            self.last_tick = now
            return TickResult(phase=self.phase)

        delta = math.floor(now - self.last_tick)
        if delta < 1:
            return TickResult(phase=self.phase)

        consumed = min(delta, self.remaining_sec)
        self.remaining_sec -= consumed
        self.last_tick += delta
        if self.phase is Phase.FOCUS:
            self.accumulated_focus_sec += consumed

        completed = False
        if self.remaining_sec == 0:
            self.is_running = False
            self.last_tick = None
            completed = True

        return TickResult(phase=self.phase, consumed=consumed, completed=completed)

    def reset_timer(self, duration: int) -> bool:
        if self.is_running:
            return False
        self.remaining_sec = max(0, int(duration))
        return True

    def switch_phase(self, phase: Phase, duration: int) -> Phase:
        previous = self.phase
        self.is_running = False
        self.last_tick = None
        self.phase = phase
        self.remaining_sec = max(0, int(duration))
        return previous
