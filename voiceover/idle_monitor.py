"""
Idle Monitor

Periodic asyncio task that nudges the user after a stretch of silence.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Callable, List

from .collaborators import FlagsAccessor, Obligation
from .config_manager import IdleConfig
from .state import Transition, TransitionRequest

logger = logging.getLogger(__name__)


@dataclass
class IdleContext:
    """What the nudge needs to know about the current screen"""
    screen_title: str
    pending: List[Obligation]
    caregiver_name: str = ""


def build_nudge(context: IdleContext) -> str:
    """Context-aware idle prompt"""
    title = context.screen_title or "current screen"
    nudge = f"Hey, are you still there? You've been on the {title} for a while. "

    if context.pending:
        count = len(context.pending)
        plural = "s" if count > 1 else ""
        caregiver = context.caregiver_name.split()[0] if context.caregiver_name else "your caregiver"
        nudge += (f"You still have {count} medication{plural} to take. "
                  f"Would you like to take your medicine, call {caregiver}, or say what you need?")
    else:
        nudge += ("Would you like to browse your memories, check your safety status, "
                  "or do something else? Just tell me.")
    return nudge


class IdleMonitor:
    """Ticks every interval and speaks a nudge once the user has been idle too long"""

    def __init__(
        self,
        config: IdleConfig,
        flags: FlagsAccessor,
        speak: Callable[[str, bool], bool],
        request_transition: Callable[[TransitionRequest], None],
        describe: Callable[[], IdleContext],
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self._flags = flags
        self._speak = speak
        self._request = request_transition
        self._describe = describe
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self.nudges = 0

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start ticking; restarting replaces any previous task"""
        if not self.config.enabled:
            return
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._tick_loop())
        logger.debug(f"⏱️ Idle monitor started (every {self.config.interval}s)")

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _tick_loop(self):
        while True:
            try:
                await asyncio.sleep(self.config.interval)
                self.check()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ Idle check failed: {e}")

    def check(self, now: Optional[float] = None) -> bool:
        """Run one idle check. Returns True if a nudge was spoken."""
        flags = self._flags()
        # Keeps ticking while on hold; only the check is gated
        if not flags.active or flags.on_hold or flags.speaking or flags.closing:
            return False

        now = self._clock() if now is None else now
        idle_seconds = now - flags.last_activity
        if idle_seconds <= self.config.threshold:
            return False

        logger.info(f"💤 User idle for {idle_seconds:.0f}s, nudging")
        self._speak(build_nudge(self._describe()), False)
        self._request(TransitionRequest(Transition.ACTIVITY, timestamp=now))
        self.nudges += 1
        return True
