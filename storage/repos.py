# storage/repos.py
#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import time
import uuid
from dataclasses import asdict, fields, replace
from typing import Any, List, Optional

from domain.models import Phase, Session, TimerPreferences
from storage.db import Database


def _now_ts() -> int:
    return int(time.time())


def _to_bool(value: Any) -> bool:
    # SQLite hands back 0/1 (or their text form from app_state)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def row_to_session(row) -> Session:
    """The one place raw sqlite rows become domain Sessions."""
    r = dict(row)
    return Session(
        id=str(r["id"]),
        user_id=str(r["user_id"]),
        subject_id=r.get("subject_id") or None,
        phase_kind=Phase.parse(r["phase_kind"]).value,
        start_ts=int(r["start_ts"]),
        end_ts=_to_int(r.get("end_ts")),
        elapsed_sec=max(0, _to_int(r.get("elapsed_sec"), 0)),
        focus_score=_to_int(r.get("focus_score")),
    )


class AppStateRepo:
    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        with self.db.lock:
            row = self.db.conn.execute(
                "SELECT value FROM app_state WHERE key=?",
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self.db.lock:
            self.db.conn.execute(
                """
                INSERT INTO app_state(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )
            self.db.conn.commit()

    def delete(self, key: str) -> None:
        with self.db.lock:
            self.db.conn.execute("DELETE FROM app_state WHERE key=?", (key,))
            self.db.conn.commit()


class SessionRepo:
    _COLUMNS = (
        "id, user_id, subject_id, phase_kind, start_ts, end_ts, elapsed_sec, focus_score"
    )

    def __init__(self, db: Database):
        self.db = db

    def create(
        self,
        user_id: str,
        phase_kind: str,
        start_ts: int,
        subject_id: Optional[str] = None,
    ) -> Session:
        sid = str(uuid.uuid4())
        with self.db.lock:
            self.db.conn.execute(
                """
                INSERT INTO sessions(
                    id, user_id, subject_id, phase_kind,
                    start_ts, elapsed_sec, created_at
                )
                VALUES(?,?,?,?,?,0,?)
                """,
                (sid, user_id, subject_id, phase_kind, int(start_ts), _now_ts()),
            )
            self.db.conn.commit()
        return self.get(sid)

    def get(self, session_id: str) -> Optional[Session]:
        with self.db.lock:
            r = self.db.conn.execute(
                f"SELECT {self._COLUMNS} FROM sessions WHERE id=?",
                (session_id,),
            ).fetchone()
        return row_to_session(r) if r else None

    def update(
        self,
        session_id: str,
        end_ts: Optional[int] = None,
        elapsed_sec: Optional[int] = None,
        focus_score: Optional[int] = None,
    ) -> Optional[Session]:
        sets = []
        values: List[Any] = []
        if end_ts is not None:
            sets.append("end_ts=?")
            values.append(int(end_ts))
        if elapsed_sec is not None:
            sets.append("elapsed_sec=?")
            values.append(max(0, int(elapsed_sec)))
        if focus_score is not None:
            sets.append("focus_score=?")
            values.append(int(focus_score))

        if sets:
            values.append(session_id)
            with self.db.lock:
                cur = self.db.conn.execute(
                    f"UPDATE sessions SET {', '.join(sets)} WHERE id=?",
                    values,
                )
                self.db.conn.commit()
            if cur.rowcount == 0:
                return None
        return self.get(session_id)

    def list(
        self,
        user_id: str,
        start_ts: Optional[int] = None,
        end_ts: Optional[int] = None,
        phase_kind: Optional[str] = None,
        closed_only: bool = False,
    ) -> List[Session]:
        where = ["user_id = ?"]
        params: List[Any] = [user_id]

        if phase_kind:
            if Phase.parse(phase_kind) is Phase.FOCUS:
                where.append("phase_kind IN ('focus', 'pomodoro')")
            else:
                where.append("phase_kind = ?")
                params.append(phase_kind)
        # date range filters on completion time, like every stats reader
        if start_ts is not None:
            where.append("end_ts >= ?")
            params.append(int(start_ts))
        if end_ts is not None:
            where.append("end_ts <= ?")
            params.append(int(end_ts))
        if closed_only:
            where.append("end_ts IS NOT NULL")

        with self.db.lock:
            rows = self.db.conn.execute(
                f"""
                SELECT {self._COLUMNS} FROM sessions
                WHERE {' AND '.join(where)}
                ORDER BY COALESCE(end_ts, start_ts) DESC
                """,
                params,
            ).fetchall()
        return [row_to_session(r) for r in rows]

    def delete(self, session_id: str) -> None:
        with self.db.lock:
            self.db.conn.execute("DELETE FROM sessions WHERE id=?", (session_id,))
            self.db.conn.commit()


class PreferencesRepo:
    """Timer preferences stored one key per field in app_state."""

    PREFIX = "timer."

    def __init__(self, state: AppStateRepo):
        self.state = state

    def load(self) -> TimerPreferences:
        defaults = TimerPreferences()
        values = {}
        for f in fields(TimerPreferences):
            raw = self.state.get(self.PREFIX + f.name)
            if raw is None:
                continue
            default = getattr(defaults, f.name)
            if isinstance(default, bool):
                values[f.name] = _to_bool(raw)
            else:
                values[f.name] = _to_int(raw, default)
        return replace(defaults, **values)

    def save(self, prefs: TimerPreferences) -> None:
        for name, value in asdict(prefs).items():
            if isinstance(value, bool):
                value = 1 if value else 0
            self.state.set(self.PREFIX + name, str(value))

    def update(self, **changes) -> TimerPreferences:
        prefs = replace(self.load(), **changes)
        self.save(prefs)
        return prefs

    def reset_to_defaults(self) -> TimerPreferences:
        prefs = TimerPreferences()
        self.save(prefs)
        return prefs
