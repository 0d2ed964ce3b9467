"""
Error Handling for the MemoCare VoiceOver Engine

Error taxonomy, exception types and the circuit breaker that guards the
best-effort NLP collaborators. Nothing raised here is fatal to the host app:
the worst case is that the assistant falls silent.
"""

import logging
import time
from enum import Enum
from typing import Dict, Any, Optional, Callable, Awaitable
from dataclasses import dataclass
from contextvars import ContextVar

# Context variables for transcript tracking
session_id_var: ContextVar[str] = ContextVar('session_id', default='')
transcript_id_var: ContextVar[str] = ContextVar('transcript_id', default='')

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Structured error categories for the voice engine"""
    EXPECTED_EMPTY = "expected_empty"                    # "no speech" on a quiet room
    TRANSIENT_ENGINE = "transient_engine"                # recognizer/synthesizer hiccup
    CAPABILITY_MISSING = "capability_missing"            # feature unsupported here
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"  # NLP correction/relevance down


@dataclass
class ErrorContext:
    """Context attached to an engine error"""
    component: str
    operation: str
    timestamp: float
    code: Optional[str] = None
    session_id: Optional[str] = None
    generation: Optional[int] = None


class VoiceOverException(Exception):
    """Base exception for voice engine operations"""
    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        context: Optional[ErrorContext] = None,
        retryable: bool = False,
        original_exception: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.category = category
        self.context = context
        self.retryable = retryable
        self.original_exception = original_exception
        self.user_message = user_message or self._generate_user_message()
        self.timestamp = time.time()

    def _generate_user_message(self) -> str:
        """Generate a user-facing notice"""
        if self.category == ErrorCategory.CAPABILITY_MISSING:
            return "Voice features are not available on this device. You can still use the app by tapping."
        elif self.category == ErrorCategory.TRANSIENT_ENGINE:
            return "I had trouble hearing you. Let me try again."
        elif self.category == ErrorCategory.COLLABORATOR_UNAVAILABLE:
            return "I could not reach the helper service, so I will keep things simple."
        return ""


class SpeechOutputError(VoiceOverException):
    """Text-to-speech specific errors"""
    pass


class SpeechInputError(VoiceOverException):
    """Speech recognition specific errors"""
    pass


class CapabilityMissingError(VoiceOverException):
    """Raised when speech recognition or synthesis is unsupported"""
    def __init__(self, capability: str, message: Optional[str] = None):
        super().__init__(
            message or f"{capability} is not supported in this environment",
            ErrorCategory.CAPABILITY_MISSING,
            retryable=False
        )
        self.capability = capability


class CollaboratorUnavailableError(VoiceOverException):
    """Raised when an NLP collaborator call fails or times out"""
    def __init__(self, collaborator: str, message: str, original_exception: Optional[Exception] = None):
        super().__init__(
            f"{collaborator}: {message}",
            ErrorCategory.COLLABORATOR_UNAVAILABLE,
            retryable=False,
            original_exception=original_exception
        )
        self.collaborator = collaborator


class CircuitOpenError(CollaboratorUnavailableError):
    """Raised when the circuit breaker refuses a call"""
    def __init__(self, service_name: str):
        super().__init__(service_name, "circuit breaker open, failing fast")
        self.service_name = service_name


# Recognizer error codes, as reported by platform speech engines
EXPECTED_EMPTY_CODES = frozenset({"no-speech"})
SELF_INFLICTED_CODES = frozenset({"aborted"})
CAPABILITY_CODES = frozenset({"not-allowed", "service-not-allowed", "audio-capture", "unsupported"})


def classify_recognizer_error(code: Optional[str]) -> Optional[ErrorCategory]:
    """Map a recognizer error code to a category.

    Returns None for "aborted", which is what the engine reports after our own
    stop() and is not an error at all.
    """
    normalized = (code or "").strip().lower()
    if normalized in EXPECTED_EMPTY_CODES:
        return ErrorCategory.EXPECTED_EMPTY
    if normalized in SELF_INFLICTED_CODES:
        return None
    if normalized in CAPABILITY_CODES:
        return ErrorCategory.CAPABILITY_MISSING
    return ErrorCategory.TRANSIENT_ENGINE


# Circuit Breaker Implementation
class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration"""
    failure_threshold: int = 3      # Consecutive failures before opening
    success_threshold: int = 1      # Successes in half-open before closing
    reset_timeout: float = 30.0     # Seconds before trying half-open


class CircuitBreaker:
    """Consecutive-failure circuit breaker for best-effort collaborators"""

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.consecutive_successes = 0
        self.total_calls = 0
        self.failed_calls = 0
        self._clock = clock
        self.state_change_time = clock()
        self.logger = logging.getLogger(f"circuit_breaker.{name}")

    def can_execute(self) -> bool:
        """Check if the breaker allows a call, moving OPEN -> HALF_OPEN on timeout"""
        if self.state == CircuitState.OPEN:
            if self._clock() - self.state_change_time >= self.config.reset_timeout:
                self._transition(CircuitState.HALF_OPEN)
                return True
            return False
        return True

    async def call(self, func: Callable[[], Awaitable[Any]]) -> Any:
        """Execute func with circuit breaker protection"""
        if not self.can_execute():
            raise CircuitOpenError(self.name)

        self.total_calls += 1
        try:
            result = await func()
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def _record_success(self):
        self.consecutive_failures = 0
        self.consecutive_successes += 1
        if self.state == CircuitState.HALF_OPEN and self.consecutive_successes >= self.config.success_threshold:
            self._transition(CircuitState.CLOSED)

    def _record_failure(self):
        self.failed_calls += 1
        self.consecutive_failures += 1
        self.consecutive_successes = 0
        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self.state == CircuitState.CLOSED and self.consecutive_failures >= self.config.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState):
        old_state = self.state
        self.state = new_state
        self.state_change_time = self._clock()
        if new_state == CircuitState.OPEN:
            self.logger.warning(f"🔓 Circuit breaker OPENED for {self.name} after {self.consecutive_failures} failures")
        else:
            self.logger.info(f"🔄 Circuit breaker {old_state.value} → {new_state.value} for {self.name}")

    def reset(self):
        """Force the breaker closed"""
        self.consecutive_failures = 0
        self.consecutive_successes = 0
        self._transition(CircuitState.CLOSED)

    def get_state_info(self) -> Dict[str, Any]:
        """Get circuit breaker state information"""
        return {
            'name': self.name,
            'state': self.state.value,
            'total_calls': self.total_calls,
            'failed_calls': self.failed_calls,
            'consecutive_failures': self.consecutive_failures,
            'time_in_current_state': self._clock() - self.state_change_time
        }
