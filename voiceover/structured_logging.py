"""
Structured Logging for the MemoCare VoiceOver Engine
Session, transition and utterance events with transcript context tracking
"""

import logging
import json
import time
import uuid
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict
from contextlib import asynccontextmanager
from pathlib import Path

from .error_handling import session_id_var, transcript_id_var, VoiceOverException


@dataclass
class VoiceOverLogContext:
    """Structured context for engine logging"""
    event: str
    session_id: str
    timestamp: float
    transcript_id: Optional[str] = None
    screen_id: Optional[str] = None
    duration_ms: Optional[float] = None
    additional_context: Optional[Dict[str, Any]] = None


class VoiceOverLogger:
    """Structured logger for the voice engine.

    Console output always; JSONL files only when a log directory is given,
    so tests and embedded hosts do not litter the working directory.
    """

    def __init__(self, name: str, level: int = logging.INFO, log_dir: Optional[str] = None):
        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Clear existing handlers to avoid duplicates
        self.logger.handlers.clear()

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(ColoredConsoleFormatter())
        self.logger.addHandler(console_handler)

        if log_dir:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)
            formatter = StructuredFormatter()

            file_handler = logging.FileHandler(log_path / f'{name}.jsonl')
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

            error_handler = logging.FileHandler(log_path / f'{name}_errors.jsonl')
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(formatter)
            self.logger.addHandler(error_handler)

    def _emit(self, level: int, message: str, event: str, screen_id: Optional[str] = None,
              duration_ms: Optional[float] = None, additional_context: Optional[Dict[str, Any]] = None):
        context = VoiceOverLogContext(
            event=event,
            session_id=session_id_var.get(),
            timestamp=time.time(),
            transcript_id=transcript_id_var.get() or None,
            screen_id=screen_id,
            duration_ms=duration_ms,
            additional_context=additional_context
        )
        self.logger.log(level, message, extra={"structured_data": asdict(context)})

    def log_session_event(self, event_type: str, screen_id: Optional[str] = None,
                          additional_context: Optional[Dict[str, Any]] = None):
        """Log activation, deactivation and other session lifecycle events"""
        emoji = "🟢" if event_type == "activated" else "🔴" if event_type == "deactivated" else "🔄"
        self._emit(logging.INFO, f"{emoji} Session {event_type}", 'session_event',
                   screen_id=screen_id, additional_context=additional_context)

    def log_transition(self, transition: str, old_mode: str, new_mode: str,
                       additional_context: Optional[Dict[str, Any]] = None):
        """Log a state machine transition"""
        self._emit(logging.DEBUG, f"🔄 {transition}: {old_mode} → {new_mode}", 'transition',
                   additional_context={'transition': transition, 'from': old_mode, 'to': new_mode,
                                       **(additional_context or {})})

    def log_utterance(self, text: str, priority: bool, utterance_id: int):
        """Log an utterance handed to the synthesizer"""
        marker = "⚡" if priority else "🔊"
        self._emit(logging.INFO, f"{marker} {text}", 'utterance',
                   additional_context={'priority': priority, 'utterance_id': utterance_id,
                                       'text_length': len(text)})

    def log_transcript(self, transcript: str, speaking: bool):
        """Log a final transcript from the recognizer"""
        self._emit(logging.INFO, f"🎤 \"{transcript}\"", 'transcript',
                   additional_context={'barge_in': speaking, 'text_length': len(transcript)})

    def log_command(self, tag: str, duration_ms: float, screen_id: Optional[str] = None):
        """Log a resolved command"""
        self._emit(logging.INFO, f"✅ Command {tag}", 'command', screen_id=screen_id,
                   duration_ms=duration_ms, additional_context={'tag': tag})

    def log_notice(self, message: str, category: Optional[str] = None):
        """Log a user-visible notice (capability missing and similar)"""
        self._emit(logging.WARNING, f"ℹ️ {message}", 'notice',
                   additional_context={'category': category})

    def log_collaborator_failure(self, collaborator: str, error: Exception):
        """Log a failed best-effort collaborator call"""
        category = error.category.value if isinstance(error, VoiceOverException) else None
        self._emit(logging.WARNING, f"⚠️ {collaborator} unavailable: {error}", 'collaborator_failure',
                   additional_context={'collaborator': collaborator, 'error_type': type(error).__name__,
                                       'error_category': category})

    # Standard logger interface methods for compatibility
    def debug(self, message: str, *args, **kwargs):
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs):
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs):
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs):
        self.logger.error(message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs):
        self.logger.exception(message, *args, **kwargs)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if hasattr(record, 'structured_data'):
            log_data.update(record.structured_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for better readability"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        timestamp = time.strftime('%H:%M:%S', time.localtime(record.created))

        context_info = ""
        if hasattr(record, 'structured_data'):
            data = record.structured_data
            if data.get('transcript_id'):
                context_info += f" [{data['transcript_id'][:8]}]"
            if data.get('screen_id'):
                context_info += f" @{data['screen_id']}"
            if data.get('duration_ms') is not None:
                context_info += f" ({data['duration_ms']:.1f}ms)"

        return f"{color}{timestamp}{reset} {record.getMessage()}{context_info}"


@asynccontextmanager
async def command_context(logger: VoiceOverLogger, session_id: str, screen_id: Optional[str] = None):
    """Context manager that tags everything logged while one transcript is processed"""
    transcript_id = str(uuid.uuid4())
    session_token = session_id_var.set(session_id)
    transcript_token = transcript_id_var.set(transcript_id)
    start_time = time.time()
    try:
        yield transcript_id
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger._emit(logging.ERROR, f"❌ Command failed: {e}", 'command_error', screen_id=screen_id,
                     duration_ms=duration_ms, additional_context={'error_type': type(e).__name__})
        raise
    finally:
        transcript_id_var.reset(transcript_token)
        session_id_var.reset(session_token)


# Global logger instance
_global_logger: Optional[VoiceOverLogger] = None


def get_voice_over_logger(name: str = "voiceover") -> VoiceOverLogger:
    """Get or create the global engine logger"""
    global _global_logger
    if _global_logger is None:
        _global_logger = VoiceOverLogger(name)
    return _global_logger


def set_voice_over_logger(logger: VoiceOverLogger):
    """Set the global engine logger"""
    global _global_logger
    _global_logger = logger
