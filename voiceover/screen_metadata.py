"""
Default screen metadata: what voice-over reads on each MemoCare screen.

Patient tabs are keyed by tab id ("today", "memories", ...); onboarding steps
by "onboarding:<step>".
"""

from typing import Dict, Any, List, Optional

from .collaborators import ScreenMeta
from .state import NarrationItem, NarrationKind

ONBOARDING_PREFIX = "onboarding:"

SCREEN_TITLES = {
    "today": "Today Screen",
    "memories": "Memories Screen",
    "safety": "Safety Screen",
    "care": "Care Circle Screen",
    "wellbeing": "My Wellbeing Screen",
}


def _item(kind: NarrationKind, label: str, detail: Optional[str] = None, **extra) -> NarrationItem:
    return NarrationItem(kind=kind, label=label, detail=detail, **extra)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _onboarding(step: str) -> ScreenMeta:
    H, D, B = NarrationKind.HEADING, NarrationKind.DESCRIPTION, NarrationKind.BUTTON

    if step == "welcome":
        return ScreenMeta(
            overview="Welcome to MemoCare. This is your getting started screen.",
            purpose="Set up MemoCare for the first time.",
            title="Welcome Screen",
            items=[
                _item(H, "Welcome to MemoCare"),
                _item(D, "Supporting you every step of the way, with care and kindness."),
                _item(B, "Get Started", "Tap this to begin setting up MemoCare. "
                                        "It will ask you how you want to use the app."),
                _item(B, "I am a caregiver", "Tap this if you are setting up the app for someone you care for."),
            ],
        )
    if step == "voiceChoice":
        return ScreenMeta(
            overview="Choose how you want to interact with MemoCare.",
            purpose="Select between voice guidance or manual browsing.",
            title="Voice Choice Screen",
            items=[
                _item(H, "How would you like to use MemoCare?"),
                _item(D, "Choose your preferred way to interact with the app."),
                _item(B, "Use Voice Over", "I will guide you with voice. You can speak to navigate, take medicine, "
                                           "call your caregiver, and more. Recommended for easier use."),
                _item(B, "Browse Mode", "Use the app by tapping and swiping on your own. "
                                        "You can enable voice guidance later from settings."),
            ],
        )
    if step == "assess":
        return ScreenMeta(
            overview="Technology comfort assessment. This helps us customize the app for you.",
            purpose="We adjust the interface based on your comfort level with technology.",
            title="Comfort Screen",
            items=[
                _item(H, "How comfortable are you with technology?"),
                _item(D, "This helps us set up the best experience for you."),
                _item(B, "Very comfortable", "You use apps and phones regularly. The app will show all features "
                                             "with smaller text and more options."),
                _item(B, "Somewhat comfortable", "You prefer simple, larger buttons. The app will show bigger text "
                                                 "and fewer options on each screen."),
                _item(B, "I need help", "A caregiver will set things up for you. The app will show only the most "
                                        "essential features with very large buttons."),
            ],
        )
    if step == "personalize":
        return ScreenMeta(
            overview="Personalization. We want to know your name so we can greet you properly.",
            purpose="Tell us your name to personalize MemoCare.",
            title="Name Screen",
            items=[
                _item(H, "What should we call you?"),
                _item(D, "We will use this to personalize your experience."),
                _item(NarrationKind.INPUT, "Your name", "Please tell me your name and I will type it in for you. Speak clearly.",
                      input_slot_id="onboarding-name", input_type="name"),
                _item(B, "Continue", "Tap this after entering your name to proceed to the final step."),
            ],
        )
    if step == "complete":
        return ScreenMeta(
            overview="All set! MemoCare is ready to help you every day.",
            purpose="Finish setup and start using MemoCare.",
            title="Setup Complete Screen",
            items=[
                _item(H, "You are all set!"),
                _item(D, "MemoCare is ready to help you every day."),
                _item(B, "Start with Voice Over", "Tap this to begin using MemoCare with voice guidance. "
                                                  "I will read screens aloud and listen to your commands."),
                _item(B, "Start Browsing", "Tap this to begin using MemoCare on your own by tapping and swiping."),
            ],
        )
    return ScreenMeta(overview="", purpose="")


def _today(snapshot: Dict[str, Any]) -> List[NarrationItem]:
    medications = snapshot.get('medications', [])
    pending = [m for m in medications if not m.get('taken')]
    taken = len(medications) - len(pending)
    mood = snapshot.get('current_mood', {}).get('label', 'not logged')

    items = [
        _item(NarrationKind.HEADING, "Today"),
        _item(NarrationKind.SECTION, "Medications",
              f"You have {_plural(len(pending), 'medication')} still to take and {taken} already taken."),
    ]
    for m in pending:
        items.append(_item(NarrationKind.BUTTON, f"{m['name']} {m['dosage']}",
                           f'Due at {m["time"]}. Tap to mark as taken. '
                           f'Say "take my medicine" to mark it done by voice.'))
    items += [
        _item(NarrationKind.STAT, "Mood", f"Your current mood is {mood}."),
        _item(NarrationKind.STAT, "Steps", f"You have walked {snapshot.get('step_count', 0):,} steps today."),
        _item(NarrationKind.STAT, "Sleep", f"You slept {snapshot.get('sleep_hours', 0)} hours last night."),
    ]
    return items


class DefaultScreenMetadata:
    """ScreenMetadataProvider for the MemoCare patient app"""

    def get_meta(self, screen_id: str, app_snapshot: Dict[str, Any]) -> ScreenMeta:
        if screen_id.startswith(ONBOARDING_PREFIX):
            return _onboarding(screen_id[len(ONBOARDING_PREFIX):])

        title = SCREEN_TITLES.get(screen_id, "")
        S, B = NarrationKind.SECTION, NarrationKind.BUTTON

        if screen_id == "today":
            return ScreenMeta(
                overview="This is your Today screen. It shows your daily overview including medications, "
                         "activities, mood, and health stats.",
                purpose="Keep track of your daily health and tasks.",
                title=title,
                items=_today(app_snapshot),
            )
        if screen_id == "memories":
            return ScreenMeta(
                overview="This is your Memories screen. Browse your cherished photo memories and albums.",
                purpose="Look at photos that bring you joy and comfort.",
                title=title,
                items=[
                    _item(NarrationKind.HEADING, "Memories"),
                    _item(B, "Slideshow", "Tap to watch a slideshow of your favourite photos. "
                                          "Photos will change automatically."),
                    _item(S, "Photo Albums", "You have albums for Family and Holidays. "
                                             "Tap an album to see photos inside."),
                ],
            )
        caregiver = app_snapshot.get('caregiver_name') or ""
        caregiver_first = caregiver.split()[0] if caregiver else ""
        contact = f"your caregiver {caregiver}" if caregiver else "your caregiver"
        call_phrase = f"call {caregiver_first}" if caregiver else "call my caregiver"
        primary = f"{caregiver} is your primary caregiver." if caregiver else "Your primary caregiver is listed first."

        if screen_id == "safety":
            return ScreenMeta(
                overview="This is your Safety screen. It shows your location, fall detection, "
                         "and emergency contacts.",
                purpose="Stay safe and quickly reach help if needed.",
                title=title,
                items=[
                    _item(NarrationKind.HEADING, "Safety"),
                    _item(NarrationKind.STATUS, "Location", "Your current location is shown on the map. "
                                                            "You are in a safe zone at Home."),
                    _item(NarrationKind.STATUS, "Fall Detection", "Fall detection is active. "
                                                                  "No incidents in the last 30 days."),
                    _item(S, "Emergency Contacts", f"{primary} John Johnson and Doctor Smith are also listed."),
                    _item(B, "Emergency SOS", f"Tap this big red button to immediately call {contact} "
                                              "for help. Use this only in emergencies. "
                                              f'You can also say "{call_phrase}" or "emergency".'),
                ],
            )
        if screen_id == "care":
            return ScreenMeta(
                overview="This is your Care Circle screen. Stay connected with your care team and family.",
                purpose="Chat with family, view care tasks, and see appointments.",
                title=title,
                items=[
                    _item(NarrationKind.HEADING, "Care Circle"),
                    _item(B, f"Chat with {caregiver_first or 'your caregiver'}",
                          f"Tap to open a chat with {contact}. "
                          "You can type or speak a message."),
                    _item(S, "Care Tasks", "View tasks assigned by your care team."),
                    _item(S, "Upcoming Appointments", "See your scheduled appointments."),
                ],
            )
        if screen_id == "wellbeing":
            steps = app_snapshot.get('step_count', 0)
            sleep = app_snapshot.get('sleep_hours', 0)
            return ScreenMeta(
                overview="This is your Wellbeing screen. Track how you feel and view your health summary.",
                purpose="Monitor your overall health and adjust app settings.",
                title=title,
                items=[
                    _item(NarrationKind.HEADING, "My Wellbeing"),
                    _item(S, "How are you feeling?", 'Tap an emoji to log your mood. '
                                                     'You can also say "I feel happy" or "I feel tired".'),
                    _item(S, "Health Summary", f"Sleep: {sleep} hours. Steps: {steps:,}. "
                                               "Your medication adherence is tracked here."),
                    _item(B, "Interface Mode", "Change how the app looks. Full mode shows everything, Simplified "
                                               "has bigger buttons, Essential shows only the basics."),
                ],
            )
        return ScreenMeta(overview="", purpose="", title=title)
