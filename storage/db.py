#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import sqlite3
import threading

from core.logging_handler import setup_logger

logger = setup_logger(__name__)

SCHEMA_VERSION = "2"


class Database:
    def __init__(self, db_path: str = "focustimer.db"):
        self.db_path = db_path
        # repos are reached from worker threads (asyncio.to_thread); calls are
        # serialized with self.lock
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON;")
        self.lock = threading.RLock()

    def _table_exists(self, name: str) -> bool:
        r = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (name,),
        ).fetchone()
        return bool(r)

    def _cols(self, table: str):
        try:
            return [
                r["name"]
                for r in self.conn.execute(f"PRAGMA table_info({table});").fetchall()
            ]
        except sqlite3.Error:
            return []

    def init_schema(self):
        with self.lock:
            cur = self.conn.cursor()

            cur.execute("""
                CREATE TABLE IF NOT EXISTS app_state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                );
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                );
            """)

            # --- sessions ---
            cur.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    subject_id TEXT,
                    phase_kind TEXT NOT NULL,
                    start_ts INTEGER NOT NULL,
                    end_ts INTEGER,
                    elapsed_sec INTEGER NOT NULL DEFAULT 0,
                    focus_score INTEGER,
                    created_at INTEGER NOT NULL
                );
            """)

            # sessions migrations (v1 had no subject/score columns)
            cols = self._cols("sessions")
            if "subject_id" not in cols:
                logger.info("Migrating sessions: adding subject_id")
                cur.execute("ALTER TABLE sessions ADD COLUMN subject_id TEXT;")
            if "focus_score" not in cols:
                logger.info("Migrating sessions: adding focus_score")
                cur.execute("ALTER TABLE sessions ADD COLUMN focus_score INTEGER;")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_user_end ON sessions(user_id, end_ts);"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_kind ON sessions(phase_kind);"
            )

            cur.execute(
                """
                INSERT INTO schema_meta(key, value) VALUES('schema_version', ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (SCHEMA_VERSION,),
            )
            self.conn.commit()

    def close(self):
        try:
            self.conn.close()
        except sqlite3.Error:
            logger.warning("Failed to close database %s", self.db_path, exc_info=True)
