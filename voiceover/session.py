"""
VoiceOver Session

Top-level coordinator. Owns the only mutable SessionState, applies transition
requests from its components, decides what follows each utterance and
serializes command side effects through a single worker task.
"""

import asyncio
import logging
import time
import uuid
from typing import Optional, Callable, Dict, Any

from .collaborators import (
    AppState, ScreenMetadataProvider, Synthesizer, Recognizer, TextCorrector,
    RelevanceChecker, FillInputCallback, NoticeCallback
)
from .command_interpreter import CommandInterpreter, Outcome, ActionRequest, SessionAction, first_name
from .config_manager import VoiceOverConfig
from .idle_monitor import IdleMonitor, IdleContext
from .intents import SCREEN_NAMES
from .reading_queue import ScreenReadingQueue
from .speech_input import SpeechInputListener
from .speech_output import SpeechOutputController
from .state import (
    SessionState, SessionFlags, Transition, TransitionRequest, TRANSITIONS, MODE_TRANSITIONS,
    CaretakerLog
)
from .structured_logging import VoiceOverLogger, get_voice_over_logger, command_context
from .timers import TimerRegistry

logger = logging.getLogger(__name__)

# Named continuation timers
ITEM_TIMER = "narration_next"
INPUT_LISTEN_TIMER = "input_listen"
READ_TIMER = "read_screen"
FAREWELL_TIMER = "farewell"
TAP_TIMER = "tap_window"

# Transitions honored while the session is inactive
_INACTIVE_TRANSITIONS = frozenset({
    Transition.ACTIVATE, Transition.DEACTIVATE, Transition.SCREEN_CHANGED,
    Transition.SPEECH_ENDED, Transition.RECOGNIZER_STOPPED, Transition.READING_FINISHED,
})


class VoiceOverSession:
    """Voice-first narration and command session for one app user"""

    def __init__(
        self,
        config: VoiceOverConfig,
        app_state: AppState,
        screen_metadata: ScreenMetadataProvider,
        synthesizer: Optional[Synthesizer] = None,
        recognizer: Optional[Recognizer] = None,
        text_corrector: Optional[TextCorrector] = None,
        relevance_checker: Optional[RelevanceChecker] = None,
        fill_input: Optional[FillInputCallback] = None,
        on_notice: Optional[NoticeCallback] = None,
        event_logger: Optional[VoiceOverLogger] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self.app_state = app_state
        self.screen_metadata = screen_metadata
        self.event_logger = event_logger or get_voice_over_logger()
        self._clock = clock
        self._on_notice = on_notice
        self.session_id = str(uuid.uuid4())

        self.state = SessionState(screen_id=app_state.current_screen())
        self.timers = TimerRegistry()
        self.caretaker_log = CaretakerLog()
        self.notices = []
        self.last_transcript = ""

        self.speech = SpeechOutputController(
            synthesizer, config.speech_output, self._snapshot, self._apply,
            on_preempt=self._on_preempt, on_idle=self._on_speech_idle,
            on_notice=self._notice, event_logger=self.event_logger,
        )
        self.listener = SpeechInputListener(
            recognizer, config.speech_input, self._snapshot, self._apply,
            on_transcript=self.submit_transcript, timers=self.timers,
            on_notice=self._notice, event_logger=self.event_logger, clock=clock,
        )
        self.reading = ScreenReadingQueue(self.speak, self._apply)
        self.idle = IdleMonitor(config.idle, self._snapshot, self.speak, self._apply,
                                describe=self._idle_context, clock=clock)
        self.interpreter = CommandInterpreter(
            config.interpreter, app_state, screen_metadata, self._snapshot, self.caretaker_log,
            fill_input=fill_input, text_corrector=text_corrector,
            relevance_checker=relevance_checker, clock=clock,
        )

        self._commands: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._current_command: Optional[asyncio.Task] = None
        self._tap_count = 0

        self.statistics: Dict[str, Any] = {
            'activations': 0,
            'utterances': 0,
            'transcripts': 0,
            'dropped_transcripts': 0,
            'commands': {},
            'rejected_transitions': 0,
        }

    # State

    @property
    def flags(self) -> SessionFlags:
        return self.state.snapshot()

    def _snapshot(self) -> SessionFlags:
        return self.state.snapshot()

    def _apply(self, request: TransitionRequest) -> bool:
        """Apply one transition request. The only place session flags change."""
        transition = request.transition
        state = self.state

        if not state.active and transition not in _INACTIVE_TRANSITIONS:
            logger.debug(f"Ignoring {transition.value} while inactive")
            return False

        old_mode = state.mode
        if transition in MODE_TRANSITIONS and (old_mode, transition) not in TRANSITIONS:
            self.statistics['rejected_transitions'] += 1
            logger.debug(f"Rejected {transition.value} from {old_mode.value}")
            return False

        now = self._clock() if request.timestamp is None else request.timestamp

        if transition == Transition.ACTIVATE:
            state.active = True
            state.closing = False
            state.last_activity = now
        elif transition == Transition.DEACTIVATE:
            state.reset()
        elif transition == Transition.CLOSE:
            state.on_hold = False
            state.waiting_for_input = False
            state.highlighted_input = None
            state.closing = True
        elif transition == Transition.SPEECH_STARTED:
            state.speaking = True
        elif transition == Transition.SPEECH_ENDED:
            state.speaking = False
        elif transition == Transition.RECOGNIZER_STARTED:
            state.recognizer_running = True
        elif transition == Transition.RECOGNIZER_STOPPED:
            state.recognizer_running = False
        elif transition == Transition.ENTER_HOLD:
            state.on_hold = True
        elif transition == Transition.LEAVE_HOLD:
            state.on_hold = False
        elif transition == Transition.AWAIT_INPUT:
            state.waiting_for_input = True
            state.highlighted_input = request.slot
        elif transition == Transition.INPUT_RESOLVED:
            state.waiting_for_input = False
            state.highlighted_input = None
        elif transition == Transition.READING_STARTED:
            state.reading = True
        elif transition == Transition.READING_FINISHED:
            state.reading = False
        elif transition == Transition.SCREEN_CHANGED:
            state.screen_id = request.screen_id or state.screen_id
        elif transition == Transition.ACTIVITY:
            state.last_activity = now

        new_mode = state.mode
        if new_mode != old_mode:
            self.event_logger.log_transition(transition.value, old_mode.value, new_mode.value)
        return True

    # Lifecycle

    def activate(self) -> bool:
        """Turn voice-over on: greet, listen and start the idle monitor"""
        if self.state.active:
            return False

        self._apply(TransitionRequest(Transition.ACTIVATE, timestamp=self._clock()))
        self._apply(TransitionRequest(Transition.SCREEN_CHANGED, screen_id=self.app_state.current_screen()))
        self.statistics['activations'] += 1

        self._commands = asyncio.Queue(maxsize=self.config.interpreter.command_queue_size)
        self._worker = asyncio.get_running_loop().create_task(self._command_worker(self._commands))
        self.idle.start()

        self.listener.start()
        self.speak(self.welcome_text(), priority=True)
        self.event_logger.log_session_event("activated", screen_id=self.state.screen_id,
                                            additional_context={'session_id': self.session_id,
                                                                'epoch': self.state.epoch})
        return True

    def deactivate(self) -> bool:
        """Turn voice-over off. Safe to call repeatedly."""
        if not self.state.active:
            return False

        self.speech.cancel()
        self.listener.stop()
        self.timers.cancel_all()
        self.idle.stop()
        self._stop_commands()
        self.reading.clear()

        self.state.epoch += 1
        self._apply(TransitionRequest(Transition.DEACTIVATE))
        self._tap_count = 0
        self.event_logger.log_session_event("deactivated", screen_id=self.state.screen_id,
                                            additional_context={'epoch': self.state.epoch})
        return True

    def update_config(self, config: VoiceOverConfig):
        """Swap in reloaded settings; they take effect on next use"""
        self.config = config
        self.speech.config = config.speech_output
        self.listener.config = config.speech_input
        self.idle.config = config.idle
        self.interpreter.config = config.interpreter
        logger.info("🔄 Session configuration updated")

    def toggle(self) -> bool:
        """On-screen button. Returns the new active state."""
        if self.state.active:
            self.deactivate()
        else:
            self.activate()
        return self.state.active

    async def aclose(self):
        """Deactivate and wait for background tasks to finish cancelling"""
        tasks = [task for task in (self._worker, self._current_command, self.idle.task) if task]
        self.deactivate()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"❌ Background task failed during shutdown: {e}")

    # Speech

    def speak(self, text: str, priority: bool = False) -> bool:
        spoken = self.speech.speak(text, priority)
        if spoken:
            self.statistics['utterances'] += 1
        return spoken

    def _on_preempt(self):
        # A priority utterance discards unspoken narration
        self.reading.clear()
        self.timers.cancel(ITEM_TIMER)

    def _on_speech_idle(self):
        """Decide what follows a finished utterance"""
        flags = self._snapshot()
        if not flags.active or flags.on_hold or flags.closing:
            return
        if flags.waiting_for_input:
            self.timers.schedule(INPUT_LISTEN_TIMER, self.config.speech_output.input_listen_delay,
                                 self.listener.start)
            return
        if self.reading.has_items:
            self.timers.schedule(ITEM_TIMER, self.config.speech_output.item_pause, self._next_item)
            return
        self.listener.start()

    def _next_item(self):
        flags = self._snapshot()
        if not flags.active or flags.on_hold or flags.waiting_for_input:
            return
        self.reading.next()

    # Transcripts and commands

    def submit_transcript(self, transcript: str, timestamp: Optional[float] = None):
        """Hand a final transcript to the interpreter (barge-in allowed)"""
        if not self.state.active:
            return
        self.last_transcript = transcript
        self.statistics['transcripts'] += 1
        self._apply(TransitionRequest(Transition.ACTIVITY, timestamp=self._clock() if timestamp is None else timestamp))

        if self.state.closing:
            logger.debug(f"Closing, ignoring transcript: {transcript}")
            return

        if self.interpreter.is_cancel(transcript):
            self._cancel_now()
            return

        try:
            self._commands.put_nowait(transcript)
        except asyncio.QueueFull:
            self.statistics['dropped_transcripts'] += 1
            logger.warning(f"⚠️ Command queue full, dropping transcript: {transcript}")

    def _cancel_now(self):
        """Cancel bypasses the command queue and pre-empts the command in flight"""
        if self._current_command is not None and not self._current_command.done():
            self._current_command.cancel()
        while not self._commands.empty():
            self._commands.get_nowait()
            self._commands.task_done()
        self._commit(self.interpreter.cancel_outcome())

    async def _command_worker(self, commands: asyncio.Queue):
        """Drain one activation's queue; a later activation gets its own worker"""
        while True:
            transcript = await commands.get()
            task = None
            try:
                task = asyncio.get_running_loop().create_task(self._run_command(transcript))
                self._current_command = task
                await asyncio.wait({task})
                if not task.cancelled() and task.exception() is not None:
                    logger.error(f"❌ Command '{transcript}' failed: {task.exception()}")
            finally:
                if self._current_command is task:
                    self._current_command = None
                commands.task_done()

    async def _run_command(self, transcript: str):
        flags = self._snapshot()
        async with command_context(self.event_logger, self.session_id, flags.screen_id):
            start_time = time.time()
            outcome = await self.interpreter.interpret(transcript, flags)
            if self.state.epoch != flags.epoch:
                logger.debug(f"Session changed while interpreting '{transcript}', discarding outcome")
                return
            self._commit(outcome)
            self.event_logger.log_command(outcome.tag.value, (time.time() - start_time) * 1000,
                                          screen_id=flags.screen_id)

    def _stop_commands(self):
        if self._current_command is not None:
            self._current_command.cancel()
            self._current_command = None
        if self._worker is not None:
            self._worker.cancel()
            self._worker = None
        self._commands = None

    def _commit(self, outcome: Outcome):
        """Apply an outcome: transitions, then session actions, then speech"""
        commands = self.statistics['commands']
        commands[outcome.tag.value] = commands.get(outcome.tag.value, 0) + 1

        for request in outcome.transitions:
            self._apply(request)
        for action in outcome.actions:
            self._run_action(action)
        for utterance in outcome.utterances:
            self.speak(utterance.text, utterance.priority)

    def _run_action(self, request: ActionRequest):
        action = request.action
        if action == SessionAction.STOP_READING:
            self.timers.cancel(ITEM_TIMER)
            self.reading.stop_early()
        elif action == SessionAction.READ_SCREEN:
            self.timers.schedule(READ_TIMER, request.delay, self.read_screen)
        elif action == SessionAction.RESUME_READING:
            if self.reading.has_items:
                self.timers.schedule(ITEM_TIMER, request.delay, self._next_item)
        elif action == SessionAction.DEACTIVATE:
            self.timers.schedule(FAREWELL_TIMER, request.delay, self.deactivate)

    # Screen reading

    def read_screen(self) -> bool:
        """Narrate the current screen from the top"""
        flags = self._snapshot()
        if not flags.active or flags.on_hold or flags.closing:
            return False

        screen_id = self.app_state.current_screen()
        if screen_id != flags.screen_id:
            self._apply(TransitionRequest(Transition.SCREEN_CHANGED, screen_id=screen_id))
        if flags.waiting_for_input:
            self._apply(TransitionRequest(Transition.INPUT_RESOLVED))

        meta = self.screen_metadata.get_meta(screen_id, self.app_state.snapshot())
        self.timers.cancel(ITEM_TIMER)
        self.reading.clear()
        self.reading.load(meta.items)

        if meta.overview:
            self.speak(meta.overview)
        elif self.reading.has_items and not self.speech.is_busy:
            self.reading.next()
        return True

    def notify_screen_changed(self, screen_id: str):
        """The host switched screens: drop narration and re-read after a short delay"""
        if screen_id == self.state.screen_id:
            return
        self._apply(TransitionRequest(Transition.SCREEN_CHANGED, screen_id=screen_id))
        if not self.state.active:
            return

        self.timers.cancel(ITEM_TIMER)
        self.reading.clear()
        if self.state.waiting_for_input:
            self._apply(TransitionRequest(Transition.INPUT_RESOLVED))
        self._apply(TransitionRequest(Transition.ACTIVITY))
        self.timers.schedule(READ_TIMER, self.config.interpreter.screen_change_delay, self.read_screen)
        self.event_logger.log_session_event("screen_changed", screen_id=screen_id)

    # Taps

    def notify_tap(self):
        """A tap anywhere on screen. Many quick taps suggest the user is lost."""
        if not self.state.active:
            return
        self._apply(TransitionRequest(Transition.ACTIVITY))
        self._tap_count += 1
        self.timers.schedule(TAP_TIMER, self.config.taps.window, self._tap_window_closed)

    def _tap_window_closed(self):
        count, self._tap_count = self._tap_count, 0
        if count >= self.config.taps.threshold:
            caregiver = first_name(self.app_state.caregiver_name)
            self.speak(
                "Hey, it looks like you're tapping quite a bit. Let me help you. What would you like to do? "
                f'You can say "take my medicine", "call {caregiver}", or "go to" any screen.'
            )

    # Text builders

    def welcome_text(self) -> str:
        hour = time.localtime(self._clock()).tm_hour
        if hour < 12:
            greeting = "Good morning"
        elif hour < 17:
            greeting = "Good afternoon"
        else:
            greeting = "Good evening"

        name = self.app_state.patient_name
        caregiver = first_name(self.app_state.caregiver_name)
        welcome = (f"{greeting}{', ' + name if name else ''}! I'm your MemoCare voice assistant. "
                   "I'll help you navigate and stay on track.")

        pending = self.app_state.pending_obligations()
        if pending:
            plural = "s" if len(pending) > 1 else ""
            welcome += (f" You have {len(pending)} medication{plural} to take. "
                        f"Would you like to take your medicine, call {caregiver}, or explore your app?")
        else:
            welcome += (" All your medications are taken. "
                        "Would you like to see your memories, check safety, or explore your app?")
        return welcome + ' Say "stop" at any time to switch to browse mode.'

    def _idle_context(self) -> IdleContext:
        screen_id = self.app_state.current_screen()
        meta = self.screen_metadata.get_meta(screen_id, self.app_state.snapshot())
        title = meta.title or SCREEN_NAMES.get(screen_id, "")
        return IdleContext(screen_title=title, pending=self.app_state.pending_obligations(),
                           caregiver_name=self.app_state.caregiver_name)

    def _notice(self, message: str):
        self.notices.append(message)
        if self._on_notice:
            self._on_notice(message)

    def get_status(self) -> Dict[str, Any]:
        flags = self.flags
        return {
            'session_id': self.session_id,
            'active': flags.active,
            'mode': flags.mode.value,
            'listening': flags.listening,
            'standby': flags.standby,
            'speaking': flags.speaking,
            'screen_id': flags.screen_id,
            'last_transcript': self.last_transcript,
            'caretaker_log': [{'transcript': entry.transcript, 'screen_id': entry.screen_id,
                               'timestamp': entry.timestamp} for entry in self.caretaker_log.entries],
            'nudges': self.idle.nudges,
            'speech': self.speech.get_status(),
            'listener': self.listener.get_status(),
            **{key: value for key, value in self.statistics.items() if key != 'commands'},
            'commands': dict(self.statistics['commands']),
        }
