"""
Command vocabulary and matching.

Phrases match by word-aligned containment: "stop" matches "please stop now"
but not "stopwatch", and "me" never matches inside "memories".
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Sequence


class IntentTag(Enum):
    """Everything the interpreter can conclude about a transcript"""
    CANCEL = "cancel"
    HOLD = "hold"
    RESUME = "resume"
    STILL_WAITING = "still_waiting"
    INPUT_SKIP = "input_skip"
    INPUT_RETRY = "input_retry"
    INPUT_FILLED = "input_filled"
    NAVIGATE = "navigate"
    TAKE_MEDICINE = "take_medicine"
    CALL_CAREGIVER = "call_caregiver"
    EMERGENCY = "emergency"
    CANCEL_EMERGENCY = "cancel_emergency"
    MOOD = "mood"
    READ_SCREEN = "read_screen"
    OPTIONS = "options"
    AFFIRM = "affirm"
    OFF_TOPIC = "off_topic"
    NOT_UNDERSTOOD = "not_understood"
    IGNORED = "ignored"


@dataclass(frozen=True)
class IntentPattern:
    """A named phrase set. With `requires`, a second phrase must also be present."""
    tag: IntentTag
    phrases: Tuple[str, ...]
    requires: Tuple[str, ...] = ()
    target: Optional[str] = None


@dataclass(frozen=True)
class IntentMatch:
    tag: IntentTag
    target: Optional[str] = None
    phrase: str = ""


_PUNCTUATION = re.compile(r"[^\w\s']+")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lower-case, drop punctuation except apostrophes, collapse whitespace"""
    text = _PUNCTUATION.sub(" ", (text or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


def contains_phrase(text: str, phrase: str) -> bool:
    return f" {phrase} " in f" {normalize(text)} "


def _first_phrase(text: str, phrases: Sequence[str]) -> Optional[str]:
    padded = f" {normalize(text)} "
    for phrase in phrases:
        if f" {phrase} " in padded:
            return phrase
    return None


def match_pattern(text: str, pattern: IntentPattern) -> Optional[IntentMatch]:
    phrase = _first_phrase(text, pattern.phrases)
    if phrase is None:
        return None
    if pattern.requires and _first_phrase(text, pattern.requires) is None:
        return None
    return IntentMatch(tag=pattern.tag, target=pattern.target, phrase=phrase)


def match_intent(text: str, patterns: Sequence[IntentPattern]) -> Optional[IntentMatch]:
    """First matching pattern in order wins"""
    for pattern in patterns:
        match = match_pattern(text, pattern)
        if match is not None:
            return match
    return None


# Control vocabulary
CANCEL = IntentPattern(IntentTag.CANCEL, (
    "stop", "quiet", "be quiet", "mute", "silence", "browse mode", "stop talking",
))
HOLD = IntentPattern(IntentTag.HOLD, (
    "wait", "hold on", "pause", "one moment", "hang on", "just a moment", "give me a moment",
))
RESUME = IntentPattern(IntentTag.RESUME, (
    "continue", "go on", "resume", "carry on", "keep going",
))
SKIP = IntentPattern(IntentTag.INPUT_SKIP, (
    "skip", "skip it", "move on", "next", "leave it", "no thanks",
))
RETRY = IntentPattern(IntentTag.INPUT_RETRY, (
    "retry", "try again", "again", "redo", "start over", "that's wrong", "wrong",
))
AFFIRM = IntentPattern(IntentTag.AFFIRM, (
    "yes", "okay", "ok", "continue", "next", "got it", "sure", "alright",
))

# Screens reachable by voice: tab id -> spoken name
SCREEN_NAMES = {
    "today": "Today",
    "memories": "Memories",
    "safety": "Safety",
    "care": "Care Circle",
    "wellbeing": "My Wellbeing",
}

NAVIGATION = (
    IntentPattern(IntentTag.NAVIGATE, ("today", "home", "today screen"), target="today"),
    IntentPattern(IntentTag.NAVIGATE, ("memories", "memory", "photos", "pictures"), target="memories"),
    IntentPattern(IntentTag.NAVIGATE, ("safety", "safety screen", "location"), target="safety"),
    IntentPattern(IntentTag.NAVIGATE, ("care circle", "care", "family", "chat"), target="care"),
    IntentPattern(IntentTag.NAVIGATE, ("wellbeing", "well being", "profile", "settings"), target="wellbeing"),
)

MOODS = (
    IntentPattern(IntentTag.MOOD, ("happy", "feel good", "feeling good", "great"), target="happy"),
    IntentPattern(IntentTag.MOOD, ("sad", "upset", "feeling down", "feel down"), target="sad"),
    IntentPattern(IntentTag.MOOD, ("tired", "sleepy", "exhausted"), target="tired"),
)


def caregiver_call_pattern(caregiver_name: Optional[str] = None) -> IntentPattern:
    """Call intent for the patient's own caregiver, by first or full name"""
    names = []
    if caregiver_name and normalize(caregiver_name):
        full_name = normalize(caregiver_name)
        names = [full_name, full_name.split()[0]]
    names += ["my caregiver", "caregiver"]
    return IntentPattern(IntentTag.CALL_CAREGIVER, ("call",), requires=tuple(dict.fromkeys(names)))


# Order matters: cancelling an emergency mentions "emergency" too
DOMAIN = (
    IntentPattern(IntentTag.CANCEL_EMERGENCY, ("cancel",), requires=("call", "emergency", "sos")),
    IntentPattern(IntentTag.EMERGENCY, ("emergency", "sos", "call for help", "call an ambulance")),
    caregiver_call_pattern(),
    IntentPattern(IntentTag.TAKE_MEDICINE, ("take", "taken", "took"),
                  requires=("medicine", "medication", "medications", "meds", "pill", "pills", "tablets")),
    *MOODS,
    *NAVIGATION,
    IntentPattern(IntentTag.READ_SCREEN, (
        "read", "read the screen", "where am i", "what's on the screen", "what is on the screen", "tell me about",
    )),
    IntentPattern(IntentTag.OPTIONS, ("options", "help", "menu", "what can i say", "what can i do")),
)


def domain_patterns(caregiver_name: Optional[str]) -> Tuple[IntentPattern, ...]:
    """DOMAIN with the call pattern bound to the current caregiver"""
    call = caregiver_call_pattern(caregiver_name)
    return tuple(call if pattern.tag == IntentTag.CALL_CAREGIVER else pattern for pattern in DOMAIN)
