"""
Screen Reading Queue

Narrates a screen one item per speech-completion cycle. The session calls
next() from its speech-end continuation; an input item parks the queue until
the interpreter resolves the input.
"""

import logging
from collections import deque
from typing import Callable, Deque, Iterable, Optional

from .state import NarrationItem, NarrationKind, HighlightedInput, Transition, TransitionRequest

logger = logging.getLogger(__name__)

SpeakCallback = Callable[[str, bool], bool]


def _sentence(*parts: Optional[str]) -> str:
    return " ".join(part.strip() for part in parts if part and part.strip())


def render(item: NarrationItem) -> str:
    """Spoken form of a narration item"""
    label, detail = item.label, item.detail
    kind = item.kind

    if kind in (NarrationKind.HEADING, NarrationKind.SUBHEADING):
        return label if label.endswith((".", "!", "?")) else f"{label}."
    if kind == NarrationKind.DESCRIPTION:
        return label
    if kind == NarrationKind.BUTTON:
        return _sentence(f"Button: {label}.", detail)
    if kind == NarrationKind.INPUT:
        return _sentence(f"Input field: {label}.", detail, "Say skip to move on.")
    if kind == NarrationKind.STAT:
        return f"{label}: {detail}" if detail else label
    if kind == NarrationKind.STATUS:
        return f"{label} status: {detail}" if detail else f"{label} status."
    if kind == NarrationKind.SECTION:
        return _sentence(f"Section: {label}.", detail)
    return label


class ScreenReadingQueue:
    """FIFO of narration items for the current screen"""

    def __init__(self, speak: SpeakCallback, request_transition: Callable[[TransitionRequest], None]):
        self._speak = speak
        self._request = request_transition
        self._items: Deque[NarrationItem] = deque()
        self._reading = False
        self.items_read = 0

    @property
    def has_items(self) -> bool:
        return bool(self._items)

    @property
    def is_reading(self) -> bool:
        return self._reading

    def __len__(self) -> int:
        return len(self._items)

    def load(self, items: Iterable[NarrationItem]) -> None:
        """Replace the queue and mark the page read as in progress"""
        self._items = deque(items)
        if self._items:
            self._set_reading(True)
        logger.debug(f"📖 Loaded {len(self._items)} narration items")

    def next(self) -> bool:
        """Speak the next item. Returns False when nothing was left."""
        if not self._items:
            self._set_reading(False)
            return False

        item = self._items.popleft()
        self.items_read += 1
        if not self._items:
            self._set_reading(False)

        if item.kind == NarrationKind.INPUT:
            slot = HighlightedInput(
                slot_id=item.input_slot_id or item.label,
                label=item.label,
                input_type=item.input_type,
            )
            # Parks the queue: resumed by the interpreter after fill, skip or retry
            self._request(TransitionRequest(Transition.AWAIT_INPUT, slot=slot))

        self._speak(render(item), False)
        return True

    def clear(self) -> None:
        """Drop everything; used on interrupt, hold, screen change and deactivation"""
        self._items.clear()
        self._set_reading(False)

    def stop_early(self) -> bool:
        """End an in-progress read. Returns whether a read was in progress."""
        was_reading = self._reading or bool(self._items)
        if was_reading:
            logger.debug(f"⏹️ Reading stopped early with {len(self._items)} items left")
        self.clear()
        return was_reading

    def _set_reading(self, reading: bool) -> None:
        if reading == self._reading:
            return
        self._reading = reading
        self._request(TransitionRequest(
            Transition.READING_STARTED if reading else Transition.READING_FINISHED
        ))
