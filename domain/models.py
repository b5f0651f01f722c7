# -*- coding: utf-8 -*-

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Phase(Enum):
    FOCUS = "focus"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"

    @property
    def is_break(self) -> bool:
        return self is not Phase.FOCUS

    @classmethod
    def parse(cls, tag: str) -> "Phase":
        # older rows were written as "pomodoro"
        if tag == "pomodoro":
            return cls.FOCUS
        return cls(tag)


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    subject_id: Optional[str]
    phase_kind: str  # focus | shortBreak | longBreak
    start_ts: int
    end_ts: Optional[int]
    elapsed_sec: int
    focus_score: Optional[int] = None

    @property
    def is_closed(self) -> bool:
        return self.end_ts is not None


@dataclass(frozen=True)
class TimerPreferences:
    focus_duration: int = 25 * 60
    short_break_duration: int = 5 * 60
    long_break_duration: int = 15 * 60
    long_break_interval: int = 4
    sound_enabled: bool = True
    notifications_enabled: bool = True
    auto_start_breaks: bool = False
    auto_start_pomodoros: bool = False
    sound_volume: int = 70  # 0-100

    def duration_for(self, phase: Phase) -> int:
        if phase is Phase.FOCUS:
            return self.focus_duration
        if phase is Phase.SHORT_BREAK:
            return self.short_break_duration
        return self.long_break_duration
