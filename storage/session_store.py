# -*- coding: utf-8 -*-

import asyncio
import sqlite3
from typing import List, Optional

from core.errors import PersistenceError
from domain.models import Session
from storage.repos import SessionRepo


class SessionStore:
    """
    Asynchronous record store used by the timer core.
    Wraps the blocking SessionRepo in worker threads so a slow disk never
    stalls the host loop that keeps calling tick().
    sqlite errors come out as PersistenceError.
    """

    def __init__(self, repo: SessionRepo):
        self.repo = repo

    async def create_session(
        self,
        user_id: str,
        subject_id: Optional[str],
        phase_kind: str,
        start_ts: int,
    ) -> str:
        try:
            session = await asyncio.to_thread(
                self.repo.create,
                user_id=user_id,
                phase_kind=phase_kind,
                start_ts=start_ts,
                subject_id=subject_id,
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not create session: {e}") from e
        return session.id

    async def update_session(
        self,
        session_id: str,
        end_ts: Optional[int] = None,
        elapsed_sec: Optional[int] = None,
        focus_score: Optional[int] = None,
    ) -> Session:
        try:
            session = await asyncio.to_thread(
                self.repo.update,
                session_id,
                end_ts=end_ts,
                elapsed_sec=elapsed_sec,
                focus_score=focus_score,
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not update session: {e}", session_id) from e
        if session is None:
            raise PersistenceError(f"Session {session_id} not found", session_id)
        return session

    async def list_sessions(
        self,
        user_id: str,
        start_ts: Optional[int] = None,
        end_ts: Optional[int] = None,
        phase_kind: Optional[str] = None,
        closed_only: bool = False,
    ) -> List[Session]:
        try:
            return await asyncio.to_thread(
                self.repo.list,
                user_id,
                start_ts=start_ts,
                end_ts=end_ts,
                phase_kind=phase_kind,
                closed_only=closed_only,
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not list sessions: {e}") from e
