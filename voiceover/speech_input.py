"""
Speech Input Listener

Continuous recognition with auto-restart. Every effective start bumps a
generation id; callbacks and restart timers from an older generation are
ignored, so a stop() can never be undone by a late engine event.
"""

import logging
import time
from typing import Optional, Callable, Dict, Any

from .collaborators import Recognizer, RecognitionHandlers, FlagsAccessor, NoticeCallback
from .config_manager import SpeechInputConfig
from .error_handling import (
    ErrorCategory, ErrorContext, CapabilityMissingError, SpeechInputError, classify_recognizer_error
)
from .state import Transition, TransitionRequest
from .structured_logging import VoiceOverLogger
from .timers import TimerRegistry

logger = logging.getLogger(__name__)

RESTART_TIMER = "listener_restart"

TranscriptCallback = Callable[[str, float], None]


class SpeechInputListener:
    """Keeps a recognizer running while the session is active"""

    def __init__(
        self,
        recognizer: Optional[Recognizer],
        config: SpeechInputConfig,
        flags: FlagsAccessor,
        request_transition: Callable[[TransitionRequest], None],
        on_transcript: TranscriptCallback,
        timers: TimerRegistry,
        on_notice: Optional[NoticeCallback] = None,
        event_logger: Optional[VoiceOverLogger] = None,
        clock: Callable[[], float] = time.time
    ):
        self.recognizer = recognizer
        self.config = config
        self._flags = flags
        self._request = request_transition
        self._on_transcript = on_transcript
        self.timers = timers
        self._on_notice = on_notice
        self.event_logger = event_logger
        self._clock = clock

        self._generation = 0
        self._running = False
        self._should_restart = False
        self._pending_error = False
        self._error_retries = 0
        self._capability_notified = False

        self.statistics: Dict[str, int] = {
            'starts': 0,
            'restarts': 0,
            'transcripts': 0,
            'errors': 0,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def generation(self) -> int:
        return self._generation

    def start(self) -> bool:
        """Start listening. A no-op while already running."""
        if self.recognizer is None:
            self._notify_capability_missing()
            return False
        if self._running:
            return False

        self._should_restart = True
        self._error_retries = 0
        self.timers.cancel(RESTART_TIMER)
        return self._begin()

    def stop(self) -> None:
        """Stop listening and forbid auto-restart. Safe to call repeatedly."""
        # Must be cleared before abort(): the engine's on_end may fire synchronously
        self._should_restart = False
        self.timers.cancel(RESTART_TIMER)
        if not self._running:
            return

        self._generation += 1
        self._running = False
        try:
            self.recognizer.abort()
        except Exception as e:
            logger.warning(f"⚠️ Recognizer abort failed: {e}")
        self._request(TransitionRequest(Transition.RECOGNIZER_STOPPED))
        logger.debug(f"🔇 Listener stopped (generation {self._generation})")

    def _begin(self) -> bool:
        self._generation += 1
        generation = self._generation
        self._pending_error = False

        handlers = RecognitionHandlers(
            on_result=lambda transcript, is_final: self._handle_result(generation, transcript, is_final),
            on_end=lambda: self._handle_end(generation),
            on_error=lambda code: self._handle_error(generation, code),
        )

        try:
            self.recognizer.start(
                handlers,
                continuous=True,
                interim_results=False,
                max_alternatives=1,
                lang=self.config.lang,
            )
        except CapabilityMissingError:
            self._should_restart = False
            self._notify_capability_missing()
            return False
        except Exception as e:
            logger.warning(f"⚠️ Recognizer failed to start: {e}")
            self._running = True
            self._handle_error(generation, "start-failed")
            return False

        self._running = True
        self.statistics['starts'] += 1
        self._request(TransitionRequest(Transition.RECOGNIZER_STARTED))
        logger.debug(f"🎤 Listener started (generation {generation})")
        return True

    def _handle_result(self, generation: int, transcript: str, is_final: bool) -> None:
        if generation != self._generation or not is_final:
            return
        text = (transcript or "").strip().lower()
        if not text:
            return

        self._error_retries = 0
        self.statistics['transcripts'] += 1
        if self.event_logger:
            self.event_logger.log_transcript(text, self._flags().speaking)
        self._on_transcript(text, self._clock())

    def _handle_end(self, generation: int) -> None:
        if generation != self._generation:
            return
        was_running = self._running
        self._running = False
        if was_running:
            self._request(TransitionRequest(Transition.RECOGNIZER_STOPPED))

        if self._pending_error:
            # The error handler already decided whether to restart
            self._pending_error = False
            return

        if self._should_restart and self._flags().active:
            self.timers.schedule(RESTART_TIMER, self.config.restart_delay,
                                 lambda: self._restart(generation))

    def _handle_error(self, generation: int, code: str) -> None:
        if generation != self._generation:
            return

        category = classify_recognizer_error(code)
        if category is None or category == ErrorCategory.EXPECTED_EMPTY:
            # on_end follows and restarts as usual
            return

        self.statistics['errors'] += 1
        self._pending_error = True
        if self._running:
            self._running = False
            self._request(TransitionRequest(Transition.RECOGNIZER_STOPPED))

        if category == ErrorCategory.CAPABILITY_MISSING:
            self._should_restart = False
            self._notify_capability_missing()
            return

        error = SpeechInputError(
            f"Recognizer error: {code}",
            category,
            context=ErrorContext(component="speech_input", operation="recognize",
                                 timestamp=self._clock(), code=code, generation=generation),
            retryable=self._error_retries < self.config.max_error_retries,
        )
        if error.retryable and self._should_restart:
            self._error_retries += 1
            logger.warning(f"⚠️ {error}; retrying in {self.config.error_backoff}s")
            self.timers.schedule(RESTART_TIMER, self.config.error_backoff,
                                 lambda: self._restart(generation))
        else:
            logger.warning(f"⚠️ {error}; giving up until the listener is restarted")
            self._should_restart = False

    def _restart(self, expected_generation: int) -> None:
        if expected_generation != self._generation:
            logger.debug(f"Ignoring stale restart for generation {expected_generation}")
            return
        if not self._should_restart or self._running or not self._flags().active:
            return
        self.statistics['restarts'] += 1
        self._begin()

    def _notify_capability_missing(self) -> None:
        if self._capability_notified:
            return
        self._capability_notified = True
        error = CapabilityMissingError("Speech recognition")
        logger.warning(f"ℹ️ {error}")
        if self.event_logger:
            self.event_logger.log_notice(error.user_message, error.category.value)
        if self._on_notice:
            self._on_notice(error.user_message)

    def get_status(self) -> Dict[str, Any]:
        return {
            'running': self._running,
            'generation': self._generation,
            'should_restart': self._should_restart,
            'error_retries': self._error_retries,
            **self.statistics,
        }
