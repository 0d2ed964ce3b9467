"""
Session state types for the VoiceOver engine.

SessionState is the single mutable record of the engine and is owned by
VoiceOverSession. Everything else sees frozen SessionFlags snapshots and asks
for changes with TransitionRequest messages.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, List, Tuple
import time


class NarrationKind(Enum):
    """Kinds of narration items a screen can describe"""
    HEADING = "heading"
    SUBHEADING = "subheading"
    DESCRIPTION = "description"
    BUTTON = "button"
    INPUT = "input"
    STAT = "stat"
    STATUS = "status"
    SECTION = "section"


@dataclass(frozen=True)
class NarrationItem:
    """One thing on screen that the reading queue will narrate"""
    kind: NarrationKind
    label: str
    detail: Optional[str] = None
    input_slot_id: Optional[str] = None
    input_type: str = "text"


@dataclass(frozen=True)
class Utterance:
    """One discrete unit of speech output"""
    text: str
    priority: bool = False


@dataclass(frozen=True)
class HighlightedInput:
    """Opaque reference to the screen input targeted by voice-fill"""
    slot_id: str
    label: str
    input_type: str = "text"


@dataclass(frozen=True)
class RelevanceVerdict:
    """Answer from the relevance collaborator"""
    relevant: bool
    summary: Optional[str] = None
    redirect_message: Optional[str] = None


@dataclass(frozen=True)
class CaretakerLogEntry:
    transcript: str
    screen_id: str
    timestamp: float


class CaretakerLog:
    """Append-only record of off-topic utterances, consumed by the caretaker view"""

    def __init__(self):
        self._entries: List[CaretakerLogEntry] = []

    def append(self, transcript: str, screen_id: str, timestamp: Optional[float] = None):
        self._entries.append(CaretakerLogEntry(transcript, screen_id, timestamp or time.time()))

    def transcripts(self) -> List[str]:
        return [entry.transcript for entry in self._entries]

    @property
    def entries(self) -> Tuple[CaretakerLogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class CommandMode(Enum):
    """Interpreter states"""
    NORMAL = "normal"
    ON_HOLD = "on_hold"
    WAITING_FOR_INPUT = "waiting_for_input"


class Transition(Enum):
    """Transitions a component may request from the state machine"""
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    CLOSE = "close"                      # cancel intent accepted, farewell pending
    SPEECH_STARTED = "speech_started"
    SPEECH_ENDED = "speech_ended"
    RECOGNIZER_STARTED = "recognizer_started"
    RECOGNIZER_STOPPED = "recognizer_stopped"
    ENTER_HOLD = "enter_hold"
    LEAVE_HOLD = "leave_hold"
    AWAIT_INPUT = "await_input"
    INPUT_RESOLVED = "input_resolved"
    READING_STARTED = "reading_started"
    READING_FINISHED = "reading_finished"
    SCREEN_CHANGED = "screen_changed"
    ACTIVITY = "activity"


@dataclass(frozen=True)
class TransitionRequest:
    """One-way request for a state change"""
    transition: Transition
    slot: Optional[HighlightedInput] = None
    screen_id: Optional[str] = None
    timestamp: Optional[float] = None


# Mode changes allowed by the interpreter state machine. Anything not listed
# for a mode-changing transition is rejected.
TRANSITIONS: Dict[Tuple[CommandMode, Transition], CommandMode] = {
    (CommandMode.NORMAL, Transition.ENTER_HOLD): CommandMode.ON_HOLD,
    (CommandMode.ON_HOLD, Transition.LEAVE_HOLD): CommandMode.NORMAL,
    (CommandMode.NORMAL, Transition.AWAIT_INPUT): CommandMode.WAITING_FOR_INPUT,
    (CommandMode.WAITING_FOR_INPUT, Transition.AWAIT_INPUT): CommandMode.WAITING_FOR_INPUT,
    (CommandMode.WAITING_FOR_INPUT, Transition.INPUT_RESOLVED): CommandMode.NORMAL,
    (CommandMode.NORMAL, Transition.CLOSE): CommandMode.NORMAL,
    (CommandMode.ON_HOLD, Transition.CLOSE): CommandMode.NORMAL,
    (CommandMode.WAITING_FOR_INPUT, Transition.CLOSE): CommandMode.NORMAL,
}

MODE_TRANSITIONS = frozenset(transition for _, transition in TRANSITIONS)


@dataclass(frozen=True)
class SessionFlags:
    """Immutable snapshot of the session state"""
    active: bool = False
    listening: bool = False
    standby: bool = False
    speaking: bool = False
    on_hold: bool = False
    waiting_for_input: bool = False
    reading: bool = False
    closing: bool = False
    screen_id: str = ""
    highlighted_input: Optional[HighlightedInput] = None
    last_activity: float = 0.0
    epoch: int = 0

    @property
    def mode(self) -> CommandMode:
        if self.on_hold:
            return CommandMode.ON_HOLD
        if self.waiting_for_input:
            return CommandMode.WAITING_FOR_INPUT
        return CommandMode.NORMAL


@dataclass
class SessionState:
    """The engine's only mutable shared state"""
    active: bool = False
    recognizer_running: bool = False
    speaking: bool = False
    on_hold: bool = False
    waiting_for_input: bool = False
    reading: bool = False
    closing: bool = False
    screen_id: str = ""
    highlighted_input: Optional[HighlightedInput] = None
    last_activity: float = 0.0
    epoch: int = 0

    @property
    def mode(self) -> CommandMode:
        if self.on_hold:
            return CommandMode.ON_HOLD
        if self.waiting_for_input:
            return CommandMode.WAITING_FOR_INPUT
        return CommandMode.NORMAL

    def snapshot(self) -> SessionFlags:
        # While held the recognizer stays attached in standby so that
        # "continue" and "stop" are heard; it is not command listening.
        return SessionFlags(
            active=self.active,
            listening=self.recognizer_running and not self.on_hold,
            standby=self.recognizer_running and self.on_hold,
            speaking=self.speaking,
            on_hold=self.on_hold,
            waiting_for_input=self.waiting_for_input,
            reading=self.reading,
            closing=self.closing,
            screen_id=self.screen_id,
            highlighted_input=self.highlighted_input,
            last_activity=self.last_activity,
            epoch=self.epoch,
        )

    def reset(self):
        """Reset every flag; screen identity and epoch survive"""
        self.active = False
        self.recognizer_running = False
        self.speaking = False
        self.on_hold = False
        self.waiting_for_input = False
        self.reading = False
        self.closing = False
        self.highlighted_input = None
