# -*- coding: utf-8 -*-

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    db_path: str = "focustimer.db"
    user_id: str = "user-1"
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    tick_seconds: float = 1.0


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """
    Read settings from the environment, after loading a .env file if present.
    Timer durations are not here: they live in the preference store.
    """
    load_dotenv(env_file)

    return AppConfig(
        db_path=os.getenv("FOCUSTIMER_DB_PATH", AppConfig.db_path),
        user_id=os.getenv("FOCUSTIMER_USER_ID", AppConfig.user_id),
        log_level=os.getenv("FOCUSTIMER_LOG_LEVEL", AppConfig.log_level).upper(),
        log_dir=os.getenv("FOCUSTIMER_LOG_DIR") or None,
        tick_seconds=_float_env("FOCUSTIMER_TICK_SECONDS", AppConfig.tick_seconds),
    )
