"""
Cancellable timers for the asyncio reconciliation layer

One Scheduler owns every debounce, auto-clear and form timeout timer of an
application context, so tearing the context down cancels all of them.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Set

logger = logging.getLogger(__name__)


class Timer:
    """Handle for one scheduled callback"""

    def __init__(self, key: Hashable, handle: asyncio.TimerHandle):
        self.key = key
        self._handle = handle
        self.fired = False

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()

    def cancel(self):
        self._handle.cancel()


class Scheduler:
    """
    Keyed timers on the running event loop

    Scheduling under a key that already has a live timer replaces it, which is
    exactly debounce semantics. Coroutine callbacks run as tasks that are
    tracked so ``cancel_all`` can stop them as well.
    """

    def __init__(self):
        self._timers: Dict[Hashable, Timer] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def call_later(self, key: Hashable, delay: float, callback: Callable[[], Any]) -> Timer:
        if self._closed:
            raise RuntimeError("Scheduler is closed")

        self.cancel(key)
        loop = asyncio.get_running_loop()

        timer = None

        def fire():
            timer.fired = True
            if self._timers.get(key) is timer:
                del self._timers[key]
            self._run(key, callback)

        timer = Timer(key, loop.call_later(max(delay, 0), fire))
        self._timers[key] = timer
        return timer

    def _run(self, key, callback):
        try:
            result = callback()
        except Exception as e:
            logger.error(f"Timer {key!r} callback failed: {str(e)}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Scheduled task failed: {str(error)}")

    def cancel(self, key: Hashable) -> bool:
        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def pending(self, key: Hashable) -> bool:
        return key in self._timers

    def cancel_all(self):
        for timer in list(self._timers.values()):
            timer.cancel()
        self._timers.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def close(self):
        self.cancel_all()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


async def with_timeout(awaitable: Awaitable, timeout: Optional[float], on_timeout: Callable[[], Any] = None):
    """
    Await ``awaitable`` for at most ``timeout`` seconds

    On expiry ``on_timeout`` is invoked and ``asyncio.TimeoutError`` propagates.
    """
    if not timeout:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Operation timed out after {timeout}s")
        if on_timeout:
            on_timeout()
        raise
