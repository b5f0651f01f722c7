import asyncio
import datetime as dt
import random
from dataclasses import replace

import pytest

from core.timer_engine import TimerEngine
from domain.models import Phase, TimerPreferences
from helpers import FakeStore, MemoryState, closed_session
from services.achievement_service import AchievementId, AchievementTracker
from services.session_recorder import SessionRecorder
from services.stats_service import StatsService
from services.timer_service import TimerService


def make_service(store, clock, prefs=None, **kw):
    prefs = prefs or TimerPreferences()
    engine = TimerEngine(focus_sec=prefs.focus_duration, clock=clock)
    recorder = SessionRecorder(store, "user-1", clock=clock)
    return TimerService(engine, recorder, preferences=prefs, **kw)


def run_seconds(service, clock, seconds):
    for _ in range(seconds):
        clock.advance(1)
        service.tick()


def test_full_focus_phase_logs_one_session(store, clock):
    completions = []

    async def main():
        service = make_service(store, clock)
        service.on_complete.add_listener(completions.append)
        service.start()
        run_seconds(service, clock, 1500)
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    assert [c.phase for c in completions] == [Phase.FOCUS]
    assert [s.elapsed_sec for s in store.closed()] == [1500]
    assert store.open() == []
    snap = service.get_snapshot()
    assert snap.phase is Phase.SHORT_BREAK
    assert snap.remaining_seconds == 300
    assert snap.running is False
    assert service.completed_focus_count == 1


def test_switching_mid_focus_closes_partial_session(store, clock):
    async def main():
        service = make_service(store, clock)
        service.start("math")
        run_seconds(service, clock, 600)
        service.switch_phase(Phase.SHORT_BREAK)
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    (session,) = store.closed()
    assert session.elapsed_sec == 600
    assert session.subject_id == "math"
    assert service.get_snapshot().remaining_seconds == 300
    # a manual switch is not a completion
    assert service.completed_focus_count == 0


def test_pause_keeps_session_open(store, clock):
    async def main():
        service = make_service(store, clock)
        service.start()
        run_seconds(service, clock, 30)
        service.pause()
        clock.advance(3600)
        service.tick()
        await service.wait_idle()
        open_while_paused = len(store.open())

        service.start()
        run_seconds(service, clock, 20)
        service.finish_session()
        await service.wait_idle()
        return open_while_paused

    assert asyncio.run(main()) == 1
    assert [s.elapsed_sec for s in store.closed()] == [50]
    assert len(store.sessions) == 1


def test_skip_finalizes_partial_focus_and_counts_it(store, clock):
    async def main():
        service = make_service(store, clock)
        service.start()
        run_seconds(service, clock, 90)
        nxt = service.skip()
        await service.wait_idle()
        return service, nxt

    service, nxt = asyncio.run(main())

    assert nxt is Phase.SHORT_BREAK
    assert [s.elapsed_sec for s in store.closed()] == [90]
    assert service.completed_focus_count == 1
    assert service.get_snapshot().running is False


def test_skipping_a_break_returns_to_focus(store, clock):
    async def main():
        service = make_service(store, clock)
        service.switch_phase(Phase.LONG_BREAK)
        return service.skip()

    assert asyncio.run(main()) is Phase.FOCUS
    assert store.sessions == {}


def test_long_break_after_interval(store, clock):
    prefs = TimerPreferences(focus_duration=10, short_break_duration=3, long_break_duration=7, long_break_interval=2)
    phases = []

    async def main():
        service = make_service(store, clock, prefs)
        service.on_phase_change.add_listener(lambda snap: phases.append(snap.phase))
        for _ in range(2):
            service.start()
            run_seconds(service, clock, 10)
            service.start()
            run_seconds(service, clock, 3 if service.phase is Phase.SHORT_BREAK else 7)
        await service.wait_idle()

    asyncio.run(main())

    assert phases == [Phase.SHORT_BREAK, Phase.FOCUS, Phase.LONG_BREAK, Phase.FOCUS]
    assert len(store.closed()) == 2


def test_break_time_is_not_logged(store, clock):
    async def main():
        service = make_service(store, clock)
        service.switch_phase(Phase.SHORT_BREAK)
        service.start()
        run_seconds(service, clock, 300)
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    assert store.sessions == {}
    assert service.phase is Phase.FOCUS
    assert service.engine.accumulated_focus_sec == 0


def test_start_while_running_is_rejected(store, clock):
    async def main():
        service = make_service(store, clock)
        first = service.start()
        second = service.start()
        await service.wait_idle()
        return first, second

    assert asyncio.run(main()) == (True, False)
    assert len(store.sessions) == 1


def test_random_interleavings_keep_one_open_session(clock):
    store = FakeStore()
    rng = random.Random(7)
    prefs = TimerPreferences(focus_duration=20, short_break_duration=5, long_break_duration=8)

    async def main():
        service = make_service(store, clock, prefs)
        ops = [
            lambda: service.start(),
            lambda: service.pause(),
            lambda: service.skip(),
            lambda: service.switch_phase(rng.choice(list(Phase))),
            lambda: service.finish_session(),
            lambda: service.reset(),
        ]
        for _ in range(400):
            roll = rng.random()
            if roll < 0.5:
                clock.advance(rng.choice([0.4, 1, 1, 3]))
                service.tick()
            elif roll < 0.8:
                rng.choice(ops)()
            else:
                await asyncio.sleep(0)
            assert len(store.open()) <= 1
        service.finish_session()
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    assert store.open() == []
    assert not service.recorder.has_open_session
    logged = sum(s.elapsed_sec for s in store.closed())
    assert logged == service.engine.accumulated_focus_sec


def test_persistence_error_is_reported_and_countdown_goes_on(store, clock):
    errors = []

    async def main():
        service = make_service(store, clock)
        service.on_persistence_error.add_listener(errors.append)
        service.start()
        run_seconds(service, clock, 10)
        store.fail_updates = 1
        service.switch_phase(Phase.SHORT_BREAK)
        await service.wait_idle()

        service.start()
        run_seconds(service, clock, 60)
        return service

    service = asyncio.run(main())

    assert len(errors) == 1
    assert service.recorder.unsynced == 1
    assert service.phase is Phase.SHORT_BREAK
    assert service.get_snapshot().remaining_seconds == 240


def test_preferences_are_deferred_while_running(store, clock):
    async def main():
        service = make_service(store, clock)
        service.start()
        run_seconds(service, clock, 5)

        applied = service.apply_preferences(replace(service.prefs, focus_duration=600, long_break_interval=0))
        assert applied is False
        assert service.prefs.focus_duration == 1500
        run_seconds(service, clock, 5)
        assert service.get_snapshot().remaining_seconds == 1490

        service.pause()
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    assert service.prefs.focus_duration == 600
    assert service.prefs.long_break_interval == 1
    # paused progress is kept
    assert service.get_snapshot().remaining_seconds == 1490


def test_preferences_refill_an_untouched_phase(store, clock):
    service = make_service(store, clock)

    assert service.apply_preferences(replace(service.prefs, focus_duration=600)) is True
    assert service.get_snapshot().remaining_seconds == 600


def test_auto_start_breaks(store, clock):
    prefs = TimerPreferences(focus_duration=5, auto_start_breaks=True)

    async def main():
        service = make_service(store, clock, prefs)
        service.start()
        run_seconds(service, clock, 5)
        snap = service.get_snapshot()
        await service.wait_idle()
        return snap

    snap = asyncio.run(main())

    assert snap.phase is Phase.SHORT_BREAK
    assert snap.running is True


def test_auto_advance_off_stays_on_finished_phase(store, clock):
    async def main():
        service = make_service(store, clock, TimerPreferences(focus_duration=5), auto_advance=False)
        service.start()
        run_seconds(service, clock, 5)
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    assert service.phase is Phase.FOCUS
    assert service.get_snapshot().remaining_seconds == 0
    # closed when the phase ran out, not when the host moves on
    assert not service.recorder.has_open_session
    assert store.open() == []
    (session,) = store.closed()
    assert session.elapsed_sec == 5
    assert session.end_ts == int(clock.now())


def test_completed_session_end_is_not_moved_by_a_late_switch(store, clock):
    async def main():
        service = make_service(store, clock, TimerPreferences(focus_duration=5), auto_advance=False)
        service.start()
        run_seconds(service, clock, 5)
        finished_at = int(clock.now())
        clock.advance(7200)
        service.switch_phase(Phase.SHORT_BREAK)
        await service.wait_idle()
        return finished_at

    finished_at = asyncio.run(main())

    (session,) = store.closed()
    assert session.end_ts == finished_at
    assert len(store.sessions) == 1


def test_skip_after_completion_counts_focus_once(store, clock):
    prefs = TimerPreferences(focus_duration=5, long_break_interval=4)

    async def main():
        service = make_service(store, clock, prefs, auto_advance=False)
        service.start()
        run_seconds(service, clock, 5)
        assert service.completed_focus_count == 1
        nxt = service.skip()
        await service.wait_idle()
        return service, nxt

    service, nxt = asyncio.run(main())

    assert service.completed_focus_count == 1
    assert nxt is Phase.SHORT_BREAK


def test_long_break_interval_holds_when_skipping_finished_phases(store, clock):
    prefs = TimerPreferences(focus_duration=5, short_break_duration=2, long_break_interval=4)
    breaks = []

    async def main():
        service = make_service(store, clock, prefs, auto_advance=False)
        for _ in range(4):
            service.start()
            run_seconds(service, clock, 5)
            breaks.append(service.skip())
            service.skip()
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    assert breaks == [Phase.SHORT_BREAK, Phase.SHORT_BREAK, Phase.SHORT_BREAK, Phase.LONG_BREAK]
    assert service.completed_focus_count == 4
    assert len(store.closed()) == 4


@pytest.mark.parametrize(
    "notifications, sound, expected",
    [(True, True, (1, 1)), (False, True, (0, 1)), (True, False, (1, 0)), (False, False, (0, 0))],
)
def test_completion_notifications_follow_preferences(store, clock, notifier, notifications, sound, expected):
    prefs = TimerPreferences(
        focus_duration=3,
        notifications_enabled=notifications,
        sound_enabled=sound,
        sound_volume=40,
    )

    async def main():
        service = make_service(store, clock, prefs, notifier=notifier)
        service.start()
        run_seconds(service, clock, 3)
        await service.wait_idle()

    asyncio.run(main())

    assert (len(notifier.notifications), len(notifier.sounds)) == expected
    if notifications:
        assert notifier.notifications[0][0] == "Focus Session Complete!"
    if sound:
        assert notifier.sounds == [40]


def test_first_completion_unlocks_first_step(store, clock):
    state = MemoryState()
    unlocked = []

    async def main():
        tracker = AchievementTracker(state)
        service = make_service(
            store,
            clock,
            TimerPreferences(focus_duration=60),
            stats=StatsService(store, "user-1"),
            achievements=tracker,
        )
        service.on_unlock.add_listener(unlocked.append)
        service.start()
        run_seconds(service, clock, 60)
        await service.wait_idle()
        return service, tracker

    service, tracker = asyncio.run(main())

    assert AchievementId.FIRST_STEP in unlocked
    assert service.last_summary.total_sessions == 1
    assert AchievementId.FIRST_STEP in tracker.drain()
    assert tracker.drain() == []


def test_restore_seeds_focus_count_from_today(store, clock):
    today = dt.date.today()
    yesterday = today - dt.timedelta(days=1)
    store.sessions = {
        sid: replace(s, id=sid)
        for sid, s in {
            "a": closed_session(today, hour=0, minute=30),
            "b": closed_session(today, hour=1, minute=30),
            "c": closed_session(yesterday, hour=12),
        }.items()
    }

    async def main():
        service = make_service(store, clock, stats=StatsService(store, "user-1"))
        await service.restore()
        return service

    service = asyncio.run(main())

    assert service.completed_focus_count == 2
    assert service.last_summary.total_sessions == 3


def test_reset_refills_current_phase(store, clock):
    async def main():
        service = make_service(store, clock)
        service.start()
        run_seconds(service, clock, 42)
        service.reset()
        await service.wait_idle()
        return service

    service = asyncio.run(main())

    snap = service.get_snapshot()
    assert snap.running is False
    assert snap.remaining_seconds == 1500
    assert service.recorder.has_open_session
