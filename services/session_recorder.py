# -*- coding: utf-8 -*-

import asyncio
from dataclasses import dataclass
from typing import Awaitable, List, Optional, Set, Tuple

from core.clock import SystemClock
from core.errors import ConflictError, PersistenceError
from core.logging_handler import setup_logger
from domain.models import Phase, Session

logger = setup_logger(__name__)


@dataclass
class OpenSession:
    subject_id: Optional[str]
    start_ts: int
    elapsed_sec: int = 0
    session_id: Optional[str] = None
    opening: Optional["asyncio.Task[str]"] = None


async def _nothing() -> None:
    return None


class SessionRecorder:
    """
    Only writer of Session records. Holds at most one open session.

    Slot changes (open / close) happen synchronously when the method is
    called; the store round-trip runs as a task on the running loop, which
    is returned so callers can await or track it. Elapsed time lives in
    memory (accumulate never does I/O) and is written on close.
    """

    def __init__(self, store, user_id: str, clock=None):
        self.store = store
        self.user_id = user_id
        self.clock = clock or SystemClock()

        self._current: Optional[OpenSession] = None
        self._pending: Set[asyncio.Task] = set()
        # closes whose store update failed: (record, end_ts, focus_score)
        self._unsynced: List[Tuple[OpenSession, int, Optional[int]]] = []
        # store writes go out one at a time, in call order
        self._io_lock = asyncio.Lock()

    @property
    def has_open_session(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> Optional[OpenSession]:
        return self._current

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def unsynced(self) -> int:
        return len(self._unsynced)

    def _spawn(self, coro) -> asyncio.Task:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    # ----- Public API -----
    def open_session(self, subject_id: Optional[str] = None) -> "asyncio.Task[str]":
        """
        Claim the open-session slot and persist a new focus session.
        Raises ConflictError if a session is already open (or still being
        created). The returned task resolves to the new session id.
        """
        if self._current is not None:
            raise ConflictError("A focus session is already open.")

        record = OpenSession(subject_id=subject_id, start_ts=int(self.clock.now()))
        self._current = record
        try:
            record.opening = self._spawn(self._persist_open(record))
        except RuntimeError:
            self._current = None
            raise
        return record.opening

    def accumulate(self, seconds: int) -> None:
        if seconds <= 0:
            return
        if self._current is None:
            logger.debug("Dropping %ss of focus time: no open session.", seconds)
            return
        self._current.elapsed_sec += int(seconds)

    def close_session(self, focus_score: Optional[int] = None) -> Awaitable[Optional[Session]]:
        """
        Detach the open session, stamp its end time and persist the final
        elapsed total. Without an open session this only logs a warning.
        """
        record = self._current
        if record is None:
            logger.warning("close_session() with no open session, ignoring.")
            return self._spawn(_nothing())

        self._current = None
        end_ts = int(self.clock.now())
        return self._spawn(self._persist_close(record, end_ts, focus_score))

    async def wait_idle(self) -> None:
        """Wait until every in-flight store call has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ----- Store round-trips -----
    async def _create(self, record: OpenSession) -> str:
        try:
            return await self.store.create_session(
                self.user_id,
                record.subject_id,
                Phase.FOCUS.value,
                record.start_ts,
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not create session: {e}") from e

    async def _persist_open(self, record: OpenSession) -> str:
        async with self._io_lock:
            record.session_id = await self._create(record)
        logger.info("Opened focus session %s", record.session_id)
        return record.session_id

    async def _persist_close(
        self,
        record: OpenSession,
        end_ts: int,
        focus_score: Optional[int],
    ) -> Session:
        async with self._io_lock:
            await self._retry_unsynced()
            try:
                return await self._write_close(record, end_ts, focus_score)
            except PersistenceError:
                # kept in memory; the next close (or retry_unsynced) sends it again
                self._unsynced.append((record, end_ts, focus_score))
                raise

    async def retry_unsynced(self) -> int:
        """Re-send closes that failed earlier. Returns how many are still unsynced."""
        async with self._io_lock:
            return await self._retry_unsynced()

    async def _retry_unsynced(self) -> int:
        items, self._unsynced = self._unsynced, []
        for item in items:
            try:
                await self._write_close(*item)
            except PersistenceError as e:
                logger.warning("Session still not persisted: %s", e)
                self._unsynced.append(item)
        return len(self._unsynced)

    async def _write_close(
        self,
        record: OpenSession,
        end_ts: int,
        focus_score: Optional[int],
    ) -> Session:
        if record.opening is not None:
            try:
                await record.opening
            except PersistenceError:
                logger.info("Create failed earlier; retrying before close.")

        if record.session_id is None:
            record.session_id = await self._create(record)

        try:
            session = await self.store.update_session(
                record.session_id,
                end_ts=end_ts,
                elapsed_sec=record.elapsed_sec,
                focus_score=focus_score,
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not close session: {e}", record.session_id) from e

        logger.info(
            "Closed focus session %s with %ss elapsed",
            record.session_id,
            record.elapsed_sec,
        )
        return session
