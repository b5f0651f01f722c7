#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import argparse
import asyncio
import datetime as dt
import sys
from dataclasses import replace

from core.clock import SystemClock
from core.config import AppConfig, load_config
from core.logging_handler import configure_loggers, setup_logger
from core.ticker import run_ticker
from core.timer_engine import TimerEngine
from domain.models import Phase
from services.achievement_service import AchievementTracker, get_achievement
from services.notifier import LogNotifier
from services.session_recorder import SessionRecorder
from services.stats_service import StatsService
from services.timer_service import TimerService
from storage.db import Database
from storage.repos import AppStateRepo, PreferencesRepo, SessionRepo
from storage.session_store import SessionStore

logger = setup_logger("focustimer")


def format_time(seconds: int) -> str:
    m = max(0, seconds) // 60
    s = max(0, seconds) % 60
    return f"{m:02d}:{s:02d}"


def build_service(config: AppConfig, db: Database, clock=None) -> TimerService:
    clock = clock or SystemClock()
    state_repo = AppStateRepo(db)
    prefs = PreferencesRepo(state_repo).load()
    store = SessionStore(SessionRepo(db))

    return TimerService(
        engine=TimerEngine(focus_sec=prefs.focus_duration, clock=clock),
        recorder=SessionRecorder(store, config.user_id, clock=clock),
        preferences=prefs,
        stats=StatsService(store, config.user_id),
        achievements=AchievementTracker(state_repo),
        notifier=LogNotifier(),
    )


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Pomodoro focus timer with session tracking.")
    p.add_argument("--env-file", default=None, help="dotenv file with FOCUSTIMER_* settings")
    p.add_argument("--subject", default=None, help="subject id to attach focus sessions to")
    p.add_argument("--cycles", type=int, default=1, help="focus phases to run before exiting")
    p.add_argument("--stats", action="store_true", help="print stats and exit")
    p.add_argument("--focus-minutes", type=int, default=None)
    p.add_argument("--short-break-minutes", type=int, default=None)
    p.add_argument("--long-break-minutes", type=int, default=None)
    p.add_argument("--long-break-interval", type=int, default=None)
    return p.parse_args(argv)


def save_preference_overrides(args, db: Database) -> None:
    changes = {}
    if args.focus_minutes is not None:
        changes["focus_duration"] = args.focus_minutes * 60
    if args.short_break_minutes is not None:
        changes["short_break_duration"] = args.short_break_minutes * 60
    if args.long_break_minutes is not None:
        changes["long_break_duration"] = args.long_break_minutes * 60
    if args.long_break_interval is not None:
        changes["long_break_interval"] = max(1, args.long_break_interval)
    if changes:
        PreferencesRepo(AppStateRepo(db)).update(**changes)


async def print_stats(service: TimerService) -> None:
    summary = await service.refresh_stats()
    week = await service.stats.weekly()
    hours = await service.stats.productive_hours()

    print(f"Sessions: {summary.total_sessions}  Total: {summary.total_hours:.1f}h  "
          f"Today: {summary.today_seconds // 3600}h {summary.today_seconds % 3600 // 60}m  "
          f"Streak: {summary.streak}")
    for bucket in week:
        print(f"  {bucket.date:%a %d}  {bucket.hours:5.2f}h  ({bucket.sessions})")
    if hours:
        top = ", ".join(f"{h:02d}:00 x{n}" for h, n in sorted(hours.items(), key=lambda x: -x[1])[:3])
        print(f"Most productive hours: {top}")
    for achievement_id in service.achievements.drain():
        print(f"Achievement unlocked: {get_achievement(achievement_id).title}")


async def run(args, config: AppConfig) -> int:
    db = Database(db_path=config.db_path)
    db.init_schema()
    save_preference_overrides(args, db)

    service = build_service(config, db)
    try:
        await service.restore()
        if args.stats:
            await print_stats(service)
            return 0

        # a terminal run flows through phases on its own
        service.apply_preferences(
            replace(service.prefs, auto_start_breaks=True, auto_start_pomodoros=True)
        )

        stop = asyncio.Event()
        focus_done = 0

        def on_complete(event):
            nonlocal focus_done
            if event.phase is Phase.FOCUS:
                focus_done += 1
                if focus_done >= args.cycles:
                    stop.set()

        def on_tick(snap):
            sys.stdout.write(f"\r{snap.phase.value:<10} {format_time(snap.remaining_seconds)}")
            sys.stdout.flush()

        def on_unlock(achievement_id):
            print(f"\nAchievement unlocked: {get_achievement(achievement_id).title}")

        service.on_complete.add_listener(on_complete)
        service.on_tick.add_listener(on_tick)
        service.on_unlock.add_listener(on_unlock)

        service.start(args.subject)
        await run_ticker(service.tick, period=config.tick_seconds, stop=stop)
        print()
        return 0
    finally:
        service.finish_session()
        await service.wait_idle()
        service.achievements.drain()
        db.close()
        logger.info("Exited at %s", dt.datetime.now().isoformat(timespec="seconds"))


def main(argv=None) -> int:
    args = parse_args(argv)
    config = load_config(args.env_file)
    configure_loggers(config.log_level, config.log_dir)
    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
