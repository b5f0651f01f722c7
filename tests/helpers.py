import asyncio
import datetime as dt
from dataclasses import replace

from core.errors import PersistenceError
from domain.models import Phase, Session

TODAY = dt.date(2026, 10, 19)


def local_ts(day: dt.date, hour: int = 12, minute: int = 0) -> int:
    return int(dt.datetime(day.year, day.month, day.day, hour, minute).timestamp())


def closed_session(
    day: dt.date,
    hour: int = 12,
    minute: int = 0,
    elapsed: int = 1500,
    subject_id=None,
    sid: str = "x",
) -> Session:
    end_ts = local_ts(day, hour, minute)
    return Session(
        id=sid,
        user_id="user-1",
        subject_id=subject_id,
        phase_kind=Phase.FOCUS.value,
        start_ts=end_ts - elapsed,
        end_ts=end_ts,
        elapsed_sec=elapsed,
    )


class FakeStore:
    """In-memory async record store with switchable failures and latency."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.sessions = {}
        self.fail_creates = 0
        self.fail_updates = 0
        self.calls = []

    async def _wait(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)

    async def create_session(self, user_id, subject_id, phase_kind, start_ts):
        self.calls.append("create")
        await self._wait()
        if self.fail_creates:
            self.fail_creates -= 1
            raise PersistenceError("create failed")
        sid = f"s{len(self.sessions) + 1}"
        self.sessions[sid] = Session(
            id=sid,
            user_id=user_id,
            subject_id=subject_id,
            phase_kind=phase_kind,
            start_ts=start_ts,
            end_ts=None,
            elapsed_sec=0,
        )
        return sid

    async def update_session(self, session_id, end_ts=None, elapsed_sec=None, focus_score=None):
        self.calls.append("update")
        await self._wait()
        if self.fail_updates:
            self.fail_updates -= 1
            raise PersistenceError("update failed", session_id)
        s = self.sessions[session_id]
        s = replace(
            s,
            end_ts=end_ts if end_ts is not None else s.end_ts,
            elapsed_sec=elapsed_sec if elapsed_sec is not None else s.elapsed_sec,
            focus_score=focus_score if focus_score is not None else s.focus_score,
        )
        self.sessions[session_id] = s
        return s

    async def list_sessions(self, user_id, start_ts=None, end_ts=None, phase_kind=None, closed_only=False):
        await asyncio.sleep(0)
        out = []
        for s in self.sessions.values():
            if s.user_id != user_id:
                continue
            if phase_kind and s.phase_kind != phase_kind:
                continue
            if closed_only and s.end_ts is None:
                continue
            if start_ts is not None and (s.end_ts is None or s.end_ts < start_ts):
                continue
            if end_ts is not None and (s.end_ts is None or s.end_ts > end_ts):
                continue
            out.append(s)
        return out

    def closed(self):
        return [s for s in self.sessions.values() if s.end_ts is not None]

    def open(self):
        return [s for s in self.sessions.values() if s.end_ts is None]


class MemoryState:
    """Stand-in for AppStateRepo."""

    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value

    def delete(self, key):
        self.values.pop(key, None)


class RecordingNotifier:
    def __init__(self):
        self.notifications = []
        self.sounds = []

    async def notify(self, title, body=None):
        self.notifications.append((title, body))

    async def play_sound(self, volume=70):
        self.sounds.append(volume)
