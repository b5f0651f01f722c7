# -*- coding: utf-8 -*-

import time


class SystemClock:
    """
    Wall-clock reader (epoch seconds).
    Wall time keeps advancing while the host is suspended, so the next tick
    sees the real elapsed interval.
    """

    def now(self) -> float:
        return time.time()


class ManualClock:
    """Clock driven by hand: replays, simulations and tests."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, ts: float) -> None:
        self._now = float(ts)

    def advance(self, seconds: float) -> float:
        self._now += seconds
        return self._now
