# -*- coding: utf-8 -*-

import datetime as dt
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from domain.models import Phase, Session

ONE_DAY = dt.timedelta(days=1)

# minutes needed for heatmap levels 2..4; any logged time is level 1
HEATMAP_LEVELS = (30, 60, 120)


@dataclass(frozen=True)
class DayBucket:
    date: dt.date
    seconds: int
    sessions: int

    @property
    def hours(self) -> float:
        return self.seconds / 3600


@dataclass(frozen=True)
class HeatmapDay:
    date: dt.date
    minutes: float
    level: int  # 0..4


@dataclass(frozen=True)
class SubjectShare:
    subject_id: str
    seconds: int
    percentage: float


@dataclass(frozen=True)
class SessionSummary:
    total_sessions: int
    total_seconds: int
    today_seconds: int
    sessions_today: int
    sessions_this_week: int
    last_end_ts: Optional[int]
    streak: int

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600


def local_date(ts: float) -> dt.date:
    return dt.datetime.fromtimestamp(ts).date()


def start_of_day_ts(day: dt.date) -> int:
    return int(dt.datetime.combine(day, dt.time.min).timestamp())


def _window_start(today: dt.date, days: int) -> dt.date:
    """First day of a `days`-long window that ends with (and includes) today."""
    return today - dt.timedelta(days=max(1, days) - 1)


def _closed(sessions: Iterable[Session]) -> List[Session]:
    return [s for s in sessions if s.end_ts is not None]


def compute_streak(sessions: Iterable[Session], today: Optional[dt.date] = None) -> int:
    """
    Consecutive local calendar days with at least one closed session that
    logged time, counted back from the most recent such day. The streak is
    broken (0) when that day is older than yesterday.
    """
    today = today or dt.date.today()
    dates = sorted(
        {local_date(s.end_ts) for s in _closed(sessions) if s.elapsed_sec > 0},
        reverse=True,
    )
    if not dates or dates[0] < today - ONE_DAY:
        return 0

    streak = 0
    expected = dates[0]
    for day in dates:
        if day != expected:
            break
        streak += 1
        expected -= ONE_DAY
    return streak


def daily_buckets(sessions: Iterable[Session], start: dt.date, end: dt.date) -> List[DayBucket]:
    """One bucket per day in [start, end], zero-filled for days without sessions."""
    if end < start:
        return []

    seconds: Dict[dt.date, int] = {}
    counts: Dict[dt.date, int] = {}
    for s in _closed(sessions):
        day = local_date(s.end_ts)
        if start <= day <= end:
            seconds[day] = seconds.get(day, 0) + s.elapsed_sec
            counts[day] = counts.get(day, 0) + 1

    out = []
    day = start
    while day <= end:
        out.append(DayBucket(date=day, seconds=seconds.get(day, 0), sessions=counts.get(day, 0)))
        day += ONE_DAY
    return out


def weekly_buckets(
    sessions: Iterable[Session],
    today: Optional[dt.date] = None,
    days: int = 7,
) -> List[DayBucket]:
    today = today or dt.date.today()
    return daily_buckets(sessions, _window_start(today, days), today)


def hour_histogram(sessions: Iterable[Session], keep_empty: bool = True) -> Dict[int, int]:
    """
    Session count per local hour of completion.
    keep_empty=True gives all 24 hours (heatmaps); False keeps only hours
    with activity ("most productive hours").
    """
    counts = {hour: 0 for hour in range(24)}
    for s in _closed(sessions):
        counts[dt.datetime.fromtimestamp(s.end_ts).hour] += 1
    if keep_empty:
        return counts
    return {hour: n for hour, n in counts.items() if n > 0}


def _heat_level(minutes: float) -> int:
    if minutes <= 0:
        return 0
    level = 1
    for i, threshold in enumerate(HEATMAP_LEVELS, start=2):
        if minutes >= threshold:
            level = i
    return level


def activity_heatmap(
    sessions: Iterable[Session],
    today: Optional[dt.date] = None,
    days: int = 365,
) -> List[HeatmapDay]:
    return [
        HeatmapDay(date=b.date, minutes=b.seconds / 60, level=_heat_level(b.seconds / 60))
        for b in weekly_buckets(sessions, today=today, days=days)
    ]


def subject_breakdown(sessions: Iterable[Session]) -> List[SubjectShare]:
    totals: Dict[str, int] = {}
    for s in _closed(sessions):
        if s.subject_id:
            totals[s.subject_id] = totals.get(s.subject_id, 0) + s.elapsed_sec

    grand = sum(totals.values())
    shares = [
        SubjectShare(
            subject_id=sid,
            seconds=sec,
            percentage=(sec / grand * 100) if grand > 0 else 0.0,
        )
        for sid, sec in totals.items()
    ]
    return sorted(shares, key=lambda x: x.seconds, reverse=True)


def summarize(sessions: Iterable[Session], today: Optional[dt.date] = None) -> SessionSummary:
    today = today or dt.date.today()
    closed = _closed(sessions)
    week_start = _window_start(today, 7)

    today_seconds = 0
    sessions_today = 0
    sessions_this_week = 0
    for s in closed:
        day = local_date(s.end_ts)
        if day == today:
            today_seconds += s.elapsed_sec
            sessions_today += 1
        if week_start <= day <= today:
            sessions_this_week += 1

    return SessionSummary(
        total_sessions=len(closed),
        total_seconds=sum(s.elapsed_sec for s in closed),
        today_seconds=today_seconds,
        sessions_today=sessions_today,
        sessions_this_week=sessions_this_week,
        last_end_ts=max((s.end_ts for s in closed), default=None),
        streak=compute_streak(closed, today=today),
    )


class StatsService:
    """Loads closed focus sessions from the record store and derives stats."""

    def __init__(self, store, user_id: str):
        self.store = store
        self.user_id = user_id

    async def focus_sessions(
        self,
        since: Optional[dt.date] = None,
        until: Optional[dt.date] = None,
    ) -> List[Session]:
        return await self.store.list_sessions(
            self.user_id,
            start_ts=start_of_day_ts(since) if since else None,
            end_ts=start_of_day_ts(until + ONE_DAY) - 1 if until else None,
            phase_kind=Phase.FOCUS.value,
            closed_only=True,
        )

    async def summary(self, today: Optional[dt.date] = None) -> SessionSummary:
        return summarize(await self.focus_sessions(), today=today)

    async def streak(self, today: Optional[dt.date] = None) -> int:
        return compute_streak(await self.focus_sessions(), today=today)

    async def daily(self, start: dt.date, end: dt.date) -> List[DayBucket]:
        return daily_buckets(await self.focus_sessions(since=start, until=end), start, end)

    async def weekly(self, today: Optional[dt.date] = None, days: int = 7) -> List[DayBucket]:
        today = today or dt.date.today()
        sessions = await self.focus_sessions(since=_window_start(today, days))
        return weekly_buckets(sessions, today=today, days=days)

    async def productive_hours(
        self,
        today: Optional[dt.date] = None,
        days: int = 30,
        keep_empty: bool = False,
    ) -> Dict[int, int]:
        today = today or dt.date.today()
        sessions = await self.focus_sessions(since=_window_start(today, days))
        return hour_histogram(sessions, keep_empty=keep_empty)

    async def heatmap(self, today: Optional[dt.date] = None, days: int = 365) -> List[HeatmapDay]:
        today = today or dt.date.today()
        sessions = await self.focus_sessions(since=_window_start(today, days))
        return activity_heatmap(sessions, today=today, days=days)

    async def subjects(self, today: Optional[dt.date] = None, days: int = 30) -> List[SubjectShare]:
        today = today or dt.date.today()
        return subject_breakdown(await self.focus_sessions(since=_window_start(today, days)))

    async def total_today_focus_sec(self, today: Optional[dt.date] = None) -> int:
        today = today or dt.date.today()
        sessions = await self.focus_sessions(since=today, until=today)
        return sum(s.elapsed_sec for s in sessions)

    async def focus_count_today(self, today: Optional[dt.date] = None) -> int:
        today = today or dt.date.today()
        return len(await self.focus_sessions(since=today, until=today))
