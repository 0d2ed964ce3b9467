"""
Command Interpreter

Turns one final transcript into an Outcome: what was understood, what to say
and which transitions and session actions to request. It never touches the
session flags; side effects on the host app go through the AppState
collaborator.

Rules, highest priority first:
    cancel > hold > resume > still waiting (on hold) > input fill
    > domain intents > affirm mid-read > relevance fallback
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Callable

from . import intents
from .collaborators import (
    AppState, ScreenMetadataProvider, TextCorrector, RelevanceChecker,
    FillInputCallback, FlagsAccessor, MoodEntry
)
from .config_manager import InterpreterConfig
from .error_handling import CollaboratorUnavailableError
from .intents import IntentTag, IntentMatch
from .state import (
    SessionFlags, CommandMode, Utterance, Transition, TransitionRequest,
    HighlightedInput, CaretakerLog, RelevanceVerdict
)

logger = logging.getLogger(__name__)


class SessionAction(Enum):
    """Session-level follow-ups an outcome may ask for"""
    READ_SCREEN = "read_screen"
    RESUME_READING = "resume_reading"
    STOP_READING = "stop_reading"
    DEACTIVATE = "deactivate"


@dataclass(frozen=True)
class ActionRequest:
    action: SessionAction
    delay: float = 0.0


@dataclass
class Outcome:
    """Result of interpreting one transcript"""
    tag: IntentTag
    utterances: List[Utterance] = field(default_factory=list)
    transitions: List[TransitionRequest] = field(default_factory=list)
    actions: List[ActionRequest] = field(default_factory=list)
    target: Optional[str] = None

    def say(self, text: str, priority: bool = False) -> 'Outcome':
        self.utterances.append(Utterance(text, priority))
        return self


FAREWELL = 'Switching to browse mode. Say "hey memo" to activate me again.'
HOLD_ACK = "Okay, I'll wait. Say continue when you're ready."
STILL_WAITING = "I'm still waiting. Say continue when you're ready, or stop to switch to browse mode."
MID_READ_PROMPT = "Okay. What would you like to do?"

MOOD_ENTRIES = {
    "happy": ("😊", "Happy", "Glad to hear you are feeling happy! I've logged your mood."),
    "sad": ("😔", "Sad", "I'm sorry to hear that. I've logged your mood. "
                        "Would you like to chat with {caregiver} or see some happy memories?"),
    "tired": ("😴", "Tired", "I've logged that you're feeling tired. Maybe it's a good time to rest."),
}

NAVIGATION_CONFIRMATIONS = {
    "today": "Navigating to Today screen.",
    "memories": "Navigating to Memories. Browse your cherished photos and albums.",
    "safety": "Navigating to Safety. You can see your location and emergency contacts here.",
    "care": "Navigating to Care Circle. Chat with your family and view care tasks.",
    "wellbeing": "Navigating to My Wellbeing. View your health and change settings.",
}


def capitalize_value(raw_text: str, semantic_type: str) -> str:
    """Local fallback when no text corrector is available"""
    text = raw_text.strip()
    if not text:
        return text
    if semantic_type == "name":
        return text.title()
    return text[0].upper() + text[1:]


def first_name(full_name: str, default: str = "your caregiver") -> str:
    return full_name.split()[0] if full_name and full_name.strip() else default


class CommandInterpreter:
    """Maps transcripts to outcomes in strict rule order"""

    def __init__(
        self,
        config: InterpreterConfig,
        app_state: AppState,
        screen_metadata: ScreenMetadataProvider,
        flags: FlagsAccessor,
        caretaker_log: CaretakerLog,
        fill_input: Optional[FillInputCallback] = None,
        text_corrector: Optional[TextCorrector] = None,
        relevance_checker: Optional[RelevanceChecker] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self.app_state = app_state
        self.screen_metadata = screen_metadata
        self._flags = flags
        self.caretaker_log = caretaker_log
        self.fill_input = fill_input
        self.text_corrector = text_corrector
        self.relevance_checker = relevance_checker
        self._clock = clock

    @staticmethod
    def is_cancel(transcript: str) -> bool:
        return intents.match_pattern(transcript, intents.CANCEL) is not None

    async def interpret(self, transcript: str, flags: SessionFlags) -> Outcome:
        """Resolve one transcript against the flags it was heard under"""
        if not flags.active or flags.closing:
            return Outcome(IntentTag.IGNORED)

        mode = flags.mode

        if self.is_cancel(transcript):
            return self.cancel_outcome()

        if mode == CommandMode.NORMAL and intents.match_pattern(transcript, intents.HOLD):
            return self._hold()

        if mode == CommandMode.ON_HOLD:
            if intents.match_pattern(transcript, intents.RESUME):
                return self._resume()
            return Outcome(IntentTag.STILL_WAITING).say(STILL_WAITING, priority=True)

        if mode == CommandMode.WAITING_FOR_INPUT and flags.highlighted_input is not None:
            return await self._input_fill(transcript, flags, flags.highlighted_input)

        match = intents.match_intent(transcript, intents.domain_patterns(self.app_state.caregiver_name))
        if match is not None:
            return self._domain(match)

        if flags.reading and intents.match_pattern(transcript, intents.AFFIRM):
            outcome = Outcome(IntentTag.AFFIRM, actions=[ActionRequest(SessionAction.STOP_READING)])
            return outcome.say(MID_READ_PROMPT)

        return await self._fallback(transcript, flags)

    # Control rules

    def cancel_outcome(self) -> Outcome:
        return Outcome(
            IntentTag.CANCEL,
            transitions=[TransitionRequest(Transition.CLOSE)],
            actions=[
                ActionRequest(SessionAction.STOP_READING),
                ActionRequest(SessionAction.DEACTIVATE, self.config.farewell_grace),
            ],
        ).say(FAREWELL, priority=True)

    def _hold(self) -> Outcome:
        return Outcome(
            IntentTag.HOLD,
            transitions=[TransitionRequest(Transition.ENTER_HOLD)],
            actions=[ActionRequest(SessionAction.STOP_READING)],
        ).say(HOLD_ACK, priority=True)

    def _resume(self) -> Outcome:
        return Outcome(
            IntentTag.RESUME,
            transitions=[TransitionRequest(Transition.LEAVE_HOLD)],
            actions=[ActionRequest(SessionAction.READ_SCREEN, self.config.resume_read_delay)],
        ).say("Okay, let's carry on.")

    # Input fill

    async def _input_fill(self, transcript: str, flags: SessionFlags, slot: HighlightedInput) -> Outcome:
        if intents.match_pattern(transcript, intents.SKIP):
            return Outcome(
                IntentTag.INPUT_SKIP,
                transitions=[TransitionRequest(Transition.INPUT_RESOLVED)],
                actions=[ActionRequest(SessionAction.RESUME_READING, self.config.skip_resume_delay)],
            ).say(f"Okay, skipping {slot.label}.")

        if intents.match_pattern(transcript, intents.RETRY):
            return Outcome(IntentTag.INPUT_RETRY).say(f"Okay, please say it again. {slot.label}?")

        value = await self._corrected_value(transcript, slot)
        if self._flags().epoch != flags.epoch:
            logger.debug("Session ended during correction, dropping input value")
            return Outcome(IntentTag.IGNORED)

        if self.fill_input is not None:
            self.fill_input(slot.slot_id, value)
        logger.info(f"✏️ Filled '{slot.slot_id}' with '{value}'")

        return Outcome(
            IntentTag.INPUT_FILLED,
            transitions=[TransitionRequest(Transition.INPUT_RESOLVED)],
            actions=[ActionRequest(SessionAction.RESUME_READING, self.config.skip_resume_delay)],
            target=value,
        ).say(f"I've entered {value} for {slot.label}.")

    async def _corrected_value(self, transcript: str, slot: HighlightedInput) -> str:
        fallback = capitalize_value(transcript, slot.input_type)
        if self.text_corrector is None:
            return fallback
        try:
            corrected = await asyncio.wait_for(
                self.text_corrector.correct_value(transcript, slot.input_type, slot.label),
                timeout=self.config.nlp_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Text correction timed out after {self.config.nlp_timeout}s")
            return fallback
        except CollaboratorUnavailableError as e:
            logger.warning(f"⚠️ {e.user_message} ({e})")
            return fallback
        except Exception as e:
            logger.warning(f"⚠️ Text correction failed: {e}")
            return fallback
        corrected = (corrected or "").strip()
        return corrected or fallback

    # Domain intents

    def _domain(self, match: IntentMatch) -> Outcome:
        tag = match.tag
        caregiver = self.app_state.caregiver_name
        outcome = Outcome(tag, target=match.target)

        if tag == IntentTag.NAVIGATE:
            self.app_state.navigate(match.target)
            return outcome.say(NAVIGATION_CONFIRMATIONS[match.target])

        if tag == IntentTag.TAKE_MEDICINE:
            pending = self.app_state.pending_obligations()
            if not pending:
                return outcome.say("All your medications have been taken already. Well done!")
            done = pending[0]
            self.app_state.mark_obligation_done(done.id)
            remaining = len(pending) - 1
            tail = (f"You still have {remaining} more to take." if remaining
                    else "All medications are done for now!")
            self.app_state.navigate("today")
            return outcome.say(f"Done! I've marked {' '.join(filter(None, [done.name, done.detail]))} as taken. {tail}")

        if tag == IntentTag.CALL_CAREGIVER:
            self.app_state.navigate("safety")
            self.app_state.trigger_emergency()
            return outcome.say(f"Calling {caregiver or 'your caregiver'}, your primary caregiver. Please hold.")

        if tag == IntentTag.EMERGENCY:
            self.app_state.trigger_emergency()
            self.app_state.navigate("safety")
            callee = f"your caregiver {first_name(caregiver)}" if caregiver else "your caregiver"
            return outcome.say(f"Activating emergency SOS. Calling {callee} now.", priority=True)

        if tag == IntentTag.CANCEL_EMERGENCY:
            self.app_state.cancel_emergency()
            return outcome.say("Emergency call cancelled.")

        if tag == IntentTag.MOOD:
            emoji, label, reply = MOOD_ENTRIES[match.target]
            self.app_state.set_mood(MoodEntry(label=label, emoji=emoji,
                                              time=time.strftime("%H:%M", time.localtime(self._clock()))))
            return outcome.say(reply.format(caregiver=first_name(caregiver)))

        if tag == IntentTag.READ_SCREEN:
            outcome.actions.append(ActionRequest(SessionAction.READ_SCREEN))
            return outcome

        if tag == IntentTag.OPTIONS:
            return outcome.say(self.options_text())

        return outcome

    def options_text(self) -> str:
        caregiver = first_name(self.app_state.caregiver_name)
        return (f"Here are things you can say: Take my medicine. Call {caregiver}. Go to Memories. "
                f"Go to Safety. I feel happy. Read the screen. Wait, to pause me. "
                f"Or say Stop to switch to browse mode.")

    # Fallback

    def _not_understood(self, transcript: str) -> Outcome:
        caregiver = first_name(self.app_state.caregiver_name)
        return Outcome(IntentTag.NOT_UNDERSTOOD).say(
            f'I heard "{transcript}". I\'m not sure what you\'d like to do. You can say take my medicine, '
            f'call {caregiver}, go to Memories, or say help to hear all commands.'
        )

    async def _fallback(self, transcript: str, flags: SessionFlags) -> Outcome:
        if self.relevance_checker is None:
            return self._not_understood(transcript)

        screen_id = flags.screen_id or self.app_state.current_screen()
        meta = self.screen_metadata.get_meta(screen_id, self.app_state.snapshot())
        try:
            verdict: RelevanceVerdict = await asyncio.wait_for(
                self.relevance_checker.check_relevance(
                    transcript, screen_id, meta.purpose, self.app_state.current_flow_step()
                ),
                timeout=self.config.nlp_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Relevance check timed out after {self.config.nlp_timeout}s")
            return self._not_understood(transcript)
        except Exception as e:
            logger.warning(f"⚠️ Relevance check failed: {e}")
            return self._not_understood(transcript)

        if self._flags().epoch != flags.epoch:
            return Outcome(IntentTag.IGNORED)

        if verdict.relevant:
            return self._not_understood(transcript)

        self.caretaker_log.append(transcript, screen_id, self._clock())
        logger.info(f"📝 Off-topic utterance logged for caretaker: {transcript}")
        redirect = verdict.redirect_message or (
            f"Let's stay with this screen for now. {meta.purpose} Say help to hear what you can do."
        )
        return Outcome(IntentTag.OFF_TOPIC).say(redirect)
