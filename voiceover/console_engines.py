"""
Console stand-ins for the platform speech engines.

ConsoleSynthesizer prints each utterance and finishes after a duration
estimated from its length. ConsoleRecognizer treats each line typed on stdin
as one final transcript; lines starting with "/" are control commands for the
CLI instead of speech.
"""

import asyncio
import logging
import sys
from typing import Optional, List, Callable, TextIO

from .collaborators import SynthesisRequest, SpeechHandlers, RecognitionHandlers, Voice

logger = logging.getLogger(__name__)

CONTROL_PREFIX = "/"


class ConsoleSynthesizer:
    """Prints utterances; speaking time scales with word count and rate"""

    def __init__(self, words_per_second: float = 2.5, stream: Optional[TextIO] = None):
        self.words_per_second = words_per_second
        self.stream = stream or sys.stdout
        self._end_handle: Optional[asyncio.TimerHandle] = None

    def list_voices(self) -> List[Voice]:
        return [Voice(name="Console Serena", lang="en-GB", local_service=True)]

    def speak(self, request: SynthesisRequest, handlers: SpeechHandlers) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()

        voice = request.voice.name if request.voice else "default"
        print(f"🗣️  [{voice}] {request.text}", file=self.stream, flush=True)

        duration = len(request.text.split()) / (self.words_per_second * max(request.rate, 0.1))
        loop.call_soon(handlers.on_start)
        self._end_handle = loop.call_later(duration, handlers.on_end)

    def cancel(self) -> None:
        if self._end_handle is not None:
            self._end_handle.cancel()
            self._end_handle = None


class ConsoleRecognizer:
    """Reads transcripts from stdin without blocking the event loop"""

    def __init__(self, stream: Optional[TextIO] = None, on_control: Optional[Callable[[str], None]] = None):
        self.stream = stream or sys.stdin
        self.on_control = on_control
        self._handlers: Optional[RecognitionHandlers] = None
        self._reader: Optional[asyncio.Task] = None

    def start(self, handlers: RecognitionHandlers, continuous: bool = True, interim_results: bool = False,
              max_alternatives: int = 1, lang: str = "en-GB") -> None:
        self._handlers = handlers
        if self._reader is None or self._reader.done():
            self._reader = asyncio.get_running_loop().create_task(self._read_loop())
        if handlers.on_start:
            handlers.on_start()

    def abort(self) -> None:
        # The blocking readline cannot be interrupted; later lines are simply not delivered
        self._handlers = None

    async def _read_loop(self):
        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, self.stream.readline)
            if not line:
                handlers, self._handlers = self._handlers, None
                if handlers:
                    handlers.on_end()
                if self.on_control:
                    self.on_control(f"{CONTROL_PREFIX}quit")
                return

            text = line.strip()
            if not text:
                continue
            if text.startswith(CONTROL_PREFIX):
                if self.on_control:
                    self.on_control(text)
                continue
            if self._handlers is not None:
                self._handlers.on_result(text, True)
            else:
                logger.debug(f"Not listening, ignored: {text}")

    def close(self):
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
