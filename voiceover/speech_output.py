"""
Speech Output Controller

Owns the text-to-speech channel:
- Priority utterances cancel whatever is in flight, synchronously
- Non-priority utterances wait their turn in a FIFO, like the platform queue
- Fixed, gentle prosody and a deterministic voice preference order
- Callbacks from a cancelled utterance are ignored (utterance id guard)
"""

import logging
from collections import deque
from typing import Optional, List, Callable, Deque, Dict, Any

from .collaborators import (
    Synthesizer, SynthesisRequest, SpeechHandlers, Voice, FlagsAccessor, NoticeCallback
)
from .config_manager import SpeechOutputConfig
from .error_handling import CapabilityMissingError, SpeechOutputError, ErrorCategory
from .state import Utterance, Transition, TransitionRequest
from .structured_logging import VoiceOverLogger

logger = logging.getLogger(__name__)


def select_voice(voices: List[Voice], preferred_names: List[str], lang: str = "en-GB") -> Optional[Voice]:
    """Pick a synthesis voice; first match in the preference order wins.

    Order: a preferred name, then the exact language on-device, then any
    on-device voice of the base language, then any voice of the base language.
    """
    base_lang = lang.split('-')[0].lower()

    for name in preferred_names:
        for voice in voices:
            if name.lower() in voice.name.lower():
                return voice

    candidates = [
        lambda v: v.lang.lower() == lang.lower() and v.local_service,
        lambda v: v.lang.lower().startswith(base_lang) and v.local_service,
        lambda v: v.lang.lower().startswith(base_lang),
    ]
    for matches in candidates:
        for voice in voices:
            if matches(voice):
                return voice
    return None


class SpeechOutputController:
    """Speaks utterances with priority/interrupt semantics"""

    def __init__(
        self,
        synthesizer: Optional[Synthesizer],
        config: SpeechOutputConfig,
        flags: FlagsAccessor,
        request_transition: Callable[[TransitionRequest], None],
        on_preempt: Callable[[], None],
        on_idle: Callable[[], None],
        on_notice: Optional[NoticeCallback] = None,
        event_logger: Optional[VoiceOverLogger] = None
    ):
        self.synthesizer = synthesizer
        self.config = config
        self._flags = flags
        self._request = request_transition
        self._on_preempt = on_preempt
        self._on_idle = on_idle
        self._on_notice = on_notice
        self.event_logger = event_logger

        self._utterance_id = 0
        self._in_flight: Optional[int] = None
        self._pending: Deque[Utterance] = deque()
        self._capability_notified = False

        self.statistics: Dict[str, int] = {
            'spoken': 0,
            'preempted': 0,
            'dropped': 0,
            'errors': 0,
        }

    @property
    def is_busy(self) -> bool:
        """True while an utterance is in flight"""
        return self._in_flight is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def speak(self, text: str, priority: bool = False) -> bool:
        """Speak text. Returns False when the call was gated or could not be issued."""
        text = (text or "").strip()
        if not text:
            return False

        flags = self._flags()
        if not priority and (not flags.active or flags.on_hold):
            logger.debug(f"Speech gated (active={flags.active}, on_hold={flags.on_hold}): {text[:40]}")
            self.statistics['dropped'] += 1
            return False

        if self.synthesizer is None:
            self._notify_capability_missing()
            return False

        utterance = Utterance(text=text, priority=priority)

        if priority:
            self._preempt()
        elif self._in_flight is not None:
            self._pending.append(utterance)
            return True

        return self._dispatch(utterance)

    def cancel(self) -> None:
        """Silence everything: in-flight and pending. No continuation follows."""
        self._pending.clear()
        was_speaking = self._in_flight is not None
        self._in_flight = None
        if self.synthesizer is not None and was_speaking:
            self._safe_engine_cancel()

    def _preempt(self) -> None:
        # Forget the in-flight id first so its late callbacks are stale
        if self._in_flight is not None:
            self.statistics['preempted'] += 1
        self._in_flight = None
        self._pending.clear()
        self._safe_engine_cancel()
        self._on_preempt()

    def _safe_engine_cancel(self) -> None:
        try:
            self.synthesizer.cancel()
        except Exception as e:
            logger.warning(f"⚠️ Synthesizer cancel failed: {e}")

    def _dispatch(self, utterance: Utterance) -> bool:
        self._utterance_id += 1
        utterance_id = self._utterance_id
        self._in_flight = utterance_id

        request = SynthesisRequest(
            text=utterance.text,
            voice=self._pick_voice(),
            lang=self.config.lang,
            rate=self.config.rate,
            pitch=self.config.pitch,
            volume=self.config.volume,
        )

        if self.event_logger:
            self.event_logger.log_utterance(utterance.text, utterance.priority, utterance_id)

        try:
            self.synthesizer.speak(request, self._handlers_for(utterance_id))
        except CapabilityMissingError:
            self._in_flight = None
            self._notify_capability_missing()
            return False
        except Exception as e:
            error = SpeechOutputError(f"Synthesizer refused utterance: {e}", ErrorCategory.TRANSIENT_ENGINE,
                                      original_exception=e)
            logger.warning(f"⚠️ {error}")
            self._handle_error(utterance_id, "synthesis-failed")
            return False

        self.statistics['spoken'] += 1
        return True

    def _pick_voice(self) -> Optional[Voice]:
        try:
            voices = self.synthesizer.list_voices()
        except Exception as e:
            logger.debug(f"Voice list unavailable: {e}")
            return None
        return select_voice(voices, self.config.preferred_voices, self.config.lang)

    def _handlers_for(self, utterance_id: int) -> SpeechHandlers:
        return SpeechHandlers(
            on_start=lambda: self._handle_start(utterance_id),
            on_end=lambda: self._handle_end(utterance_id),
            on_error=lambda code: self._handle_error(utterance_id, code),
        )

    def _handle_start(self, utterance_id: int) -> None:
        if utterance_id != self._in_flight:
            return
        self._request(TransitionRequest(Transition.SPEECH_STARTED))

    def _handle_end(self, utterance_id: int) -> None:
        if utterance_id != self._in_flight:
            logger.debug(f"Ignoring end of stale utterance #{utterance_id}")
            return
        self._in_flight = None

        # Drain the FIFO before handing control back to the session
        while self._pending:
            utterance = self._pending.popleft()
            flags = self._flags()
            if not flags.active or flags.on_hold:
                self._pending.clear()
                break
            if self._dispatch(utterance):
                return

        self._request(TransitionRequest(Transition.SPEECH_ENDED))
        self._on_idle()

    def _handle_error(self, utterance_id: int, code: str) -> None:
        if utterance_id != self._in_flight:
            return
        # No retry: a malfunctioning synthesizer must not loop
        self._in_flight = None
        self.statistics['dropped'] += len(self._pending)
        self._pending.clear()
        self.statistics['errors'] += 1
        logger.warning(f"⚠️ Speech error on utterance #{utterance_id}: {code}")
        self._request(TransitionRequest(Transition.SPEECH_ENDED))

    def _notify_capability_missing(self) -> None:
        if self._capability_notified:
            return
        self._capability_notified = True
        error = CapabilityMissingError("Speech synthesis")
        logger.warning(f"ℹ️ {error}")
        if self.event_logger:
            self.event_logger.log_notice(error.user_message, error.category.value)
        if self._on_notice:
            self._on_notice(error.user_message)

    def get_status(self) -> Dict[str, Any]:
        return {
            'busy': self.is_busy,
            'pending': len(self._pending),
            'last_utterance_id': self._utterance_id,
            **self.statistics,
        }
