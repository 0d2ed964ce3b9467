"""
MemoCare VoiceOver Engine

A voice-first narration and command layer for the MemoCare patient app:
- Reads each screen aloud, item by item
- Listens continuously and lets the user talk over it (barge-in)
- Hold, resume and cancel by voice
- Fills on-screen inputs by dictation
- Nudges the user after long silence
"""

__version__ = "1.0.0"

from .state import (
    NarrationKind, NarrationItem, Utterance, HighlightedInput, RelevanceVerdict,
    CaretakerLog, CaretakerLogEntry, CommandMode, Transition, TransitionRequest,
    SessionFlags, SessionState, TRANSITIONS
)
from .collaborators import (
    Voice, SynthesisRequest, SpeechHandlers, RecognitionHandlers, ScreenMeta, Obligation, MoodEntry,
    Synthesizer, Recognizer, ScreenMetadataProvider, AppState, TextCorrector, RelevanceChecker
)
from .config_manager import (
    VoiceOverConfig, ConfigManager, ConfigurationError, get_config_manager, get_config, reload_config
)
from .error_handling import (
    ErrorCategory, VoiceOverException, SpeechOutputError, SpeechInputError, CapabilityMissingError,
    CollaboratorUnavailableError, CircuitOpenError, CircuitBreaker, CircuitBreakerConfig,
    classify_recognizer_error
)
from .structured_logging import VoiceOverLogger, get_voice_over_logger, set_voice_over_logger, command_context
from .timers import TimerRegistry
from .speech_output import SpeechOutputController, select_voice
from .speech_input import SpeechInputListener
from .reading_queue import ScreenReadingQueue, render
from .idle_monitor import IdleMonitor, IdleContext, build_nudge
from .intents import IntentTag, IntentPattern, IntentMatch, match_intent
from .command_interpreter import CommandInterpreter, Outcome, SessionAction, ActionRequest
from .session import VoiceOverSession
from .app_state import InMemoryAppState, Medication
from .screen_metadata import DefaultScreenMetadata
from .nlp_client import VoiceNLPClient

__all__ = [
    # State
    'NarrationKind', 'NarrationItem', 'Utterance', 'HighlightedInput', 'RelevanceVerdict',
    'CaretakerLog', 'CaretakerLogEntry', 'CommandMode', 'Transition', 'TransitionRequest',
    'SessionFlags', 'SessionState', 'TRANSITIONS',

    # Collaborators
    'Voice', 'SynthesisRequest', 'SpeechHandlers', 'RecognitionHandlers', 'ScreenMeta',
    'Obligation', 'MoodEntry', 'Synthesizer', 'Recognizer', 'ScreenMetadataProvider', 'AppState',
    'TextCorrector', 'RelevanceChecker',

    # Configuration
    'VoiceOverConfig', 'ConfigManager', 'ConfigurationError', 'get_config_manager', 'get_config',
    'reload_config',

    # Errors and logging
    'ErrorCategory', 'VoiceOverException', 'SpeechOutputError', 'SpeechInputError',
    'CapabilityMissingError', 'CollaboratorUnavailableError', 'CircuitOpenError', 'CircuitBreaker',
    'CircuitBreakerConfig', 'classify_recognizer_error',
    'VoiceOverLogger', 'get_voice_over_logger', 'set_voice_over_logger', 'command_context',

    # Engine
    'TimerRegistry', 'SpeechOutputController', 'select_voice', 'SpeechInputListener',
    'ScreenReadingQueue', 'render', 'IdleMonitor', 'IdleContext', 'build_nudge',
    'IntentTag', 'IntentPattern', 'IntentMatch', 'match_intent',
    'CommandInterpreter', 'Outcome', 'SessionAction', 'ActionRequest', 'VoiceOverSession',

    # Reference collaborators
    'InMemoryAppState', 'Medication', 'DefaultScreenMetadata', 'VoiceNLPClient',
]
