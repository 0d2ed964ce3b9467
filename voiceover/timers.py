"""
Named one-shot timers on the asyncio loop.

Each continuation delay in the engine (inter-item pause, restart backoff,
farewell grace, ...) is a named timer, so scheduling a name again replaces
the pending one and deactivation can clear everything in one call.
"""

import asyncio
import inspect
import logging
from typing import Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)


class TimerRegistry:
    """Replaceable, cancellable named timers"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, name: str, delay: float, callback: Callable[[], object]) -> None:
        """Run callback after delay seconds, replacing any pending timer of the same name.

        Coroutine functions are started as tasks so they can be cancelled too.
        """
        self.cancel(name)
        self._handles[name] = self.loop.call_later(max(delay, 0.0), self._fire, name, callback)

    def _fire(self, name: str, callback: Callable[[], object]) -> None:
        self._handles.pop(name, None)
        try:
            result = callback()
        except Exception:
            logger.exception(f"❌ Timer '{name}' callback failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"❌ Timer task failed: {task.exception()}")

    def cancel(self, name: str) -> bool:
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every pending timer and any coroutine they started"""
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def pending(self, name: str) -> bool:
        return name in self._handles

    def __len__(self) -> int:
        return len(self._handles)
