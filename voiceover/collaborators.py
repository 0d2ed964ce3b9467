"""
External collaborators of the VoiceOver engine.

The engine coordinates; it does not synthesize, recognize, render screens or
talk to a language model itself. These are the seams it talks through.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Callable, Dict, Any, Protocol, runtime_checkable

from .state import NarrationItem, RelevanceVerdict, SessionFlags


@dataclass(frozen=True)
class Voice:
    """A synthesis voice offered by the platform"""
    name: str
    lang: str
    local_service: bool = False


@dataclass(frozen=True)
class SynthesisRequest:
    """What the synthesizer is asked to speak"""
    text: str
    voice: Optional[Voice]
    lang: str
    rate: float
    pitch: float
    volume: float


@dataclass
class SpeechHandlers:
    """Callbacks a synthesizer fires for one utterance"""
    on_start: Callable[[], None]
    on_end: Callable[[], None]
    on_error: Callable[[str], None]


@dataclass
class RecognitionHandlers:
    """Callbacks a recognizer fires for one recognition session"""
    on_result: Callable[[str, bool], None]
    on_end: Callable[[], None]
    on_error: Callable[[str], None]
    on_start: Optional[Callable[[], None]] = None


@dataclass
class ScreenMeta:
    """What a screen says about itself"""
    overview: str
    purpose: str
    items: List[NarrationItem] = field(default_factory=list)
    title: str = ""


@dataclass(frozen=True)
class Obligation:
    """Something pending for the user, e.g. a medication due"""
    id: str
    name: str
    detail: str = ""
    due: str = ""


@dataclass(frozen=True)
class MoodEntry:
    label: str
    emoji: str = ""
    time: str = ""


@runtime_checkable
class Synthesizer(Protocol):
    def speak(self, request: SynthesisRequest, handlers: SpeechHandlers) -> None: ...

    def cancel(self) -> None: ...

    def list_voices(self) -> List[Voice]: ...


@runtime_checkable
class Recognizer(Protocol):
    def start(self, handlers: RecognitionHandlers, continuous: bool = True,
              interim_results: bool = False, max_alternatives: int = 1, lang: str = "en-GB") -> None: ...

    def abort(self) -> None: ...


class ScreenMetadataProvider(Protocol):
    def get_meta(self, screen_id: str, app_snapshot: Dict[str, Any]) -> ScreenMeta: ...


class AppState(Protocol):
    """Domain actions and queries consumed by intent side effects"""
    patient_name: str
    caregiver_name: str

    def navigate(self, tab: str) -> None: ...

    def mark_obligation_done(self, obligation_id: str) -> None: ...

    def set_mood(self, entry: MoodEntry) -> None: ...

    def trigger_emergency(self) -> None: ...

    def cancel_emergency(self) -> None: ...

    def pending_obligations(self) -> List[Obligation]: ...

    def current_screen(self) -> str: ...

    def current_flow_step(self) -> str: ...

    def snapshot(self) -> Dict[str, Any]: ...


class TextCorrector(Protocol):
    async def correct_value(self, raw_text: str, semantic_type: str, label: str = "") -> str: ...


class RelevanceChecker(Protocol):
    async def check_relevance(self, transcript: str, screen_id: str,
                              screen_purpose: str, flow_step: str) -> RelevanceVerdict: ...


# Called when the engine surfaces a user-visible notice (capability missing)
NoticeCallback = Callable[[str], None]
# Called when voice-fill commits a value into a screen input
FillInputCallback = Callable[[str, str], None]
# Snapshot accessor handed to components
FlagsAccessor = Callable[[], SessionFlags]
