import asyncio
import inspect

from core.logging_handler import setup_logger

logger = setup_logger(__name__)


class Event:
    """Multi-listener notification hook. Listener errors are logged, never raised."""

    def __init__(self):
        self._listeners = []
        self._tasks = set()

    def add_listener(self, listener):
        if not callable(listener):
            raise ValueError("Listener must be callable")
        self._listeners.append(listener)

    def remove_listener(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, *args, **kwargs):
        for listener in list(self._listeners):
            try:
                result = listener(*args, **kwargs)

                # If listener returned a coroutine, schedule it on the running loop
                if inspect.iscoroutine(result):
                    try:
                        loop = asyncio.get_running_loop()
                    except RuntimeError:
                        result.close()
                        raise RuntimeError("Async listener requires a running event loop")
                    task = loop.create_task(self._safe_task(result))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)

            except Exception:
                logger.exception("Error in event listener")

    async def _safe_task(self, coro):
        try:
            await coro
        except Exception:
            logger.exception("Unhandled exception in async event listener")
