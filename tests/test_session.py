"""
VoiceOver session scenarios
Drives the whole engine through the fake synthesizer and recognizer
"""

import asyncio
import pytest

from voiceover.app_state import InMemoryAppState
from voiceover.command_interpreter import FAREWELL, HOLD_ACK, STILL_WAITING
from voiceover.screen_metadata import DefaultScreenMetadata
from voiceover.session import VoiceOverSession, FAREWELL_TIMER
from voiceover.state import RelevanceVerdict

from tests.fixtures.fakes import (
    FakeSynthesizer, FakeRecognizer, settle, speak_through, make_config, make_session
)

TODAY_OVERVIEW = ("This is your Today screen. It shows your daily overview including medications, "
                  "activities, mood, and health stats.")


class SlowRelevance:
    def __init__(self, verdict, delay):
        self.verdict = verdict
        self.delay = delay

    async def check_relevance(self, transcript, screen_id, screen_purpose, flow_step):
        await asyncio.sleep(self.delay)
        return self.verdict


async def started(session=None, **kwargs):
    """Activate a session and let the welcome finish"""
    synth = FakeSynthesizer()
    recognizer = FakeRecognizer()
    session = session or make_session(synthesizer=synth, recognizer=recognizer, **kwargs)
    session.activate()
    await speak_through(synth)
    return session, synth, recognizer


class TestActivation:
    """Turning voice-over on and off"""

    @pytest.mark.asyncio
    async def test_activate_listens_and_greets(self):
        synth = FakeSynthesizer()
        recognizer = FakeRecognizer()
        session = make_session(synthesizer=synth, recognizer=recognizer)

        assert session.activate() is True

        flags = session.flags
        assert flags.active
        assert flags.listening
        assert recognizer.start_count == 1
        assert synth.requests[0].text.startswith(("Good morning, Margaret!", "Good afternoon, Margaret!",
                                                  "Good evening, Margaret!"))
        assert "You have 2 medications to take." in synth.last_text
        assert synth.last_text.endswith('Say "stop" at any time to switch to browse mode.')

        await session.aclose()

    @pytest.mark.asyncio
    async def test_welcome_does_not_read_the_screen(self):
        session, synth, recognizer = await started()

        assert len(synth.requests) == 1
        assert recognizer.start_count == 1
        await session.aclose()

    @pytest.mark.asyncio
    async def test_activate_twice_is_noop(self):
        session, synth, _ = await started()
        assert session.activate() is False
        assert session.statistics['activations'] == 1
        await session.aclose()

    @pytest.mark.asyncio
    async def test_deactivate_is_idempotent(self):
        session, synth, recognizer = await started()

        assert session.deactivate() is True
        assert session.deactivate() is False

        flags = session.flags
        assert not flags.active
        assert not flags.listening
        assert recognizer.abort_count == 1
        assert len(session.timers) == 0

    @pytest.mark.asyncio
    async def test_toggle(self):
        session = make_session()
        assert session.toggle() is True
        assert session.toggle() is False
        await session.aclose()

    @pytest.mark.asyncio
    async def test_inactive_session_ignores_transcripts(self):
        session = make_session()
        session.submit_transcript("go to memories")
        assert session.app_state.active_tab == "today"
        assert session.statistics['transcripts'] == 0

    @pytest.mark.asyncio
    async def test_missing_synthesizer_is_reported_once(self):
        app_state = InMemoryAppState()
        session = VoiceOverSession(make_config(), app_state, DefaultScreenMetadata(),
                                   synthesizer=None, recognizer=FakeRecognizer())

        session.activate()
        session.speak("Hello")

        assert len(session.notices) == 1
        assert session.flags.listening
        await session.aclose()


class TestScreenReading:
    """Narrating a screen item by item"""

    @pytest.mark.asyncio
    async def test_read_screen_narrates_every_item(self):
        session, synth, recognizer = await started()

        recognizer.say("read the screen")
        await speak_through(synth)

        assert synth.texts[1:] == [
            TODAY_OVERVIEW,
            "Today.",
            "Section: Medications. You have 2 medications still to take and 1 already taken.",
            'Button: Vitamin D 1000 IU. Due at 12:00 PM. Tap to mark as taken. '
            'Say "take my medicine" to mark it done by voice.',
            'Button: Memantine 5mg. Due at 6:00 PM. Tap to mark as taken. '
            'Say "take my medicine" to mark it done by voice.',
            "Mood: Your current mood is Happy.",
            "Steps: You have walked 2,340 steps today.",
            "Sleep: You slept 7.5 hours last night.",
        ]
        assert not session.flags.reading
        assert session.flags.listening
        await session.aclose()

    @pytest.mark.asyncio
    async def test_affirm_mid_read_stops_reading(self):
        session, synth, recognizer = await started()

        recognizer.say("read the screen")
        await settle()
        synth.finish()
        await settle()

        recognizer.say("yes")
        await speak_through(synth)

        assert synth.last_text == "Okay. What would you like to do?"
        assert not session.flags.reading
        assert "Mood: Your current mood is Happy." not in synth.texts
        await session.aclose()

    @pytest.mark.asyncio
    async def test_screen_change_rereads_new_screen(self):
        session, synth, recognizer = await started()

        recognizer.say("read the screen")
        await settle()
        synth.finish()
        await settle()

        session.app_state.navigate("memories")
        await speak_through(synth)

        assert session.flags.screen_id == "memories"
        assert "This is your Memories screen. Browse your cherished photo memories and albums." in synth.texts
        assert "Mood: Your current mood is Happy." not in synth.texts
        assert synth.last_text.startswith("Section: Photo Albums.")
        await session.aclose()

    @pytest.mark.asyncio
    async def test_speech_error_stops_narration(self):
        session, synth, recognizer = await started()

        recognizer.say("read the screen")
        await settle()
        synth.fail("audio-busy")
        await settle()

        assert not synth.busy
        assert not session.flags.speaking
        assert synth.last_text == TODAY_OVERVIEW
        await session.aclose()


class TestHoldAndCancel:
    """Pausing, resuming and closing the session by voice"""

    @pytest.mark.asyncio
    async def test_hold_during_reading(self):
        session, synth, recognizer = await started()

        recognizer.say("read the screen")
        await settle()
        synth.finish()
        await settle()

        recognizer.say("hold on")
        await settle()

        assert synth.last_text == HOLD_ACK
        flags = session.flags
        assert flags.on_hold
        assert not flags.listening
        assert flags.standby
        assert not flags.reading

        await speak_through(synth)
        assert synth.last_text == HOLD_ACK

        recognizer.say("what time is it")
        await settle()
        assert synth.last_text == STILL_WAITING

        await speak_through(synth)
        recognizer.say("continue")
        await speak_through(synth)

        assert not session.flags.on_hold
        assert session.flags.listening
        resumed = synth.texts[synth.texts.index("Okay, let's carry on."):]
        assert resumed[1] == TODAY_OVERVIEW
        assert resumed[-1] == "Sleep: You slept 7.5 hours last night."
        await session.aclose()

    @pytest.mark.asyncio
    async def test_idle_nudge_suppressed_on_hold(self):
        session, synth, recognizer = await started()

        recognizer.say("wait")
        await speak_through(synth)

        assert session.idle.check(now=session.flags.last_activity + 1000) is False
        await session.aclose()

    @pytest.mark.asyncio
    async def test_stop_while_on_hold_deactivates(self):
        session, synth, recognizer = await started()

        recognizer.say("hold on")
        await speak_through(synth)

        recognizer.say("stop")
        assert synth.last_text == FAREWELL
        assert session.flags.closing
        await settle()

        assert not session.flags.active
        assert not session.flags.listening
        assert recognizer.abort_count == 1

    @pytest.mark.asyncio
    async def test_stop_is_handled_once(self):
        session, synth, recognizer = await started(config=make_config(interpreter__farewell_grace=5.0))

        recognizer.say("stop")
        recognizer.say("stop")
        recognizer.say("go to memories")
        await settle()

        assert synth.texts.count(FAREWELL) == 1
        assert session.statistics['commands'] == {'cancel': 1}
        assert session.app_state.active_tab == "today"
        assert session.timers.pending(FAREWELL_TIMER)
        await session.aclose()

    @pytest.mark.asyncio
    async def test_stop_cancels_command_in_flight(self):
        checker = SlowRelevance(RelevanceVerdict(relevant=False, redirect_message="Let's stay here."), 0.02)
        session, synth, recognizer = await started(relevance_checker=checker)

        recognizer.say("tell me a joke please")
        await settle()
        recognizer.say("stop")
        await asyncio.sleep(0.05)
        await settle()

        assert "Let's stay here." not in synth.texts
        assert len(session.caretaker_log) == 0
        assert not session.flags.active

    @pytest.mark.asyncio
    async def test_toggle_off_and_on_during_command_in_flight(self):
        checker = SlowRelevance(RelevanceVerdict(relevant=False, redirect_message="Let's stay here."), 1.0)
        session, synth, recognizer = await started(relevance_checker=checker)

        recognizer.say("blue elephants dancing")
        await settle()
        worker = session._worker
        command = session._current_command
        assert command is not None and not command.done()

        assert session.toggle() is False
        assert session.toggle() is True
        await asyncio.wait({worker, command})

        assert worker.cancelled()
        assert command.cancelled()
        assert session._worker is not worker
        assert not session._worker.done()

        session.submit_transcript("go to memories")
        await settle()

        assert session.app_state.active_tab == "memories"
        assert "Let's stay here." not in synth.texts
        await session.aclose()

    @pytest.mark.asyncio
    async def test_late_recognizer_end_after_deactivate_does_not_restart(self):
        session, synth, recognizer = await started()
        handlers = recognizer.handlers

        session.deactivate()
        handlers.on_end()
        await settle()

        assert recognizer.start_count == 1


class TestCommands:
    """Transcripts routed through the command worker"""

    @pytest.mark.asyncio
    async def test_barge_in_during_welcome(self):
        synth = FakeSynthesizer()
        recognizer = FakeRecognizer()
        session = make_session(synthesizer=synth, recognizer=recognizer)
        session.activate()

        recognizer.say("go to memories")
        await settle()

        assert session.app_state.active_tab == "memories"
        assert session.flags.screen_id == "memories"

        await speak_through(synth)
        assert "Navigating to Memories. Browse your cherished photos and albums." in synth.texts
        await session.aclose()

    @pytest.mark.asyncio
    async def test_overflowing_queue_drops_newest(self):
        session, synth, recognizer = await started(config=make_config(interpreter__command_queue_size=1))

        session.submit_transcript("go to memories")
        session.submit_transcript("go to safety")
        session.submit_transcript("go to care")
        await settle()

        assert session.statistics['dropped_transcripts'] == 2
        assert session.app_state.active_tab == "memories"
        await session.aclose()

    @pytest.mark.asyncio
    async def test_commands_run_in_arrival_order(self):
        session, synth, recognizer = await started()

        recognizer.say("go to memories")
        recognizer.say("go to safety")
        await settle()

        assert session.app_state.active_tab == "safety"
        assert session.statistics['commands']['navigate'] == 2
        await session.aclose()

    @pytest.mark.asyncio
    async def test_off_topic_logged_for_caretaker(self):
        checker = SlowRelevance(RelevanceVerdict(relevant=False, redirect_message="Let's stay here."), 0.0)
        session, synth, recognizer = await started(relevance_checker=checker)

        recognizer.say("tell me a joke please")
        await settle()

        assert synth.last_text == "Let's stay here."
        assert session.caretaker_log.transcripts() == ["tell me a joke please"]
        flagged = session.get_status()['caretaker_log']
        assert [(entry['transcript'], entry['screen_id']) for entry in flagged] == [
            ("tell me a joke please", "today"),
        ]
        await session.aclose()

    @pytest.mark.asyncio
    async def test_relevance_timeout_gives_generic_reply(self):
        checker = SlowRelevance(RelevanceVerdict(relevant=False), 1.0)
        session, synth, recognizer = await started(relevance_checker=checker)

        recognizer.say("tell me a joke please")
        await asyncio.sleep(0.1)
        await settle()

        assert synth.last_text.startswith('I heard "tell me a joke please".')
        assert len(session.caretaker_log) == 0
        await session.aclose()


class TestInputFill:
    """Dictating into the onboarding name field"""

    async def reach_name_input(self):
        app_state = InMemoryAppState(active_tab="onboarding:personalize")
        session, synth, recognizer = await started(app_state=app_state)

        recognizer.say("read the screen")
        await speak_through(synth)
        return session, synth, recognizer

    @pytest.mark.asyncio
    async def test_reading_parks_on_input(self):
        session, synth, recognizer = await self.reach_name_input()

        assert synth.last_text == ("Input field: Your name. Please tell me your name and I will type it in "
                                   "for you. Speak clearly. Say skip to move on.")
        flags = session.flags
        assert flags.waiting_for_input
        assert flags.highlighted_input.slot_id == "onboarding-name"
        await session.aclose()

    @pytest.mark.asyncio
    async def test_dictated_value_is_filled_and_reading_resumes(self):
        session, synth, recognizer = await self.reach_name_input()

        recognizer.say("margaret")
        await speak_through(synth)

        assert session.app_state.filled_inputs == {"onboarding-name": "Margaret"}
        assert "I've entered Margaret for Your name." in synth.texts
        assert synth.last_text.startswith("Button: Continue.")
        assert not session.flags.waiting_for_input
        await session.aclose()

    @pytest.mark.asyncio
    async def test_skip_moves_on_without_filling(self):
        session, synth, recognizer = await self.reach_name_input()

        recognizer.say("skip")
        await speak_through(synth)

        assert session.app_state.filled_inputs == {}
        assert "Okay, skipping Your name." in synth.texts
        assert synth.last_text.startswith("Button: Continue.")
        await session.aclose()

    @pytest.mark.asyncio
    async def test_retry_keeps_field_highlighted(self):
        session, synth, recognizer = await self.reach_name_input()

        recognizer.say("try again")
        await speak_through(synth)

        assert synth.last_text == "Okay, please say it again. Your name?"
        assert session.flags.waiting_for_input
        await session.aclose()

    @pytest.mark.asyncio
    async def test_screen_change_abandons_input(self):
        session, synth, recognizer = await self.reach_name_input()

        session.app_state.navigate("today")
        await settle()

        assert not session.flags.waiting_for_input
        assert session.flags.highlighted_input is None
        await session.aclose()


class TestTapsAndIdle:
    """Help offered after rapid taps or long silence"""

    @pytest.mark.asyncio
    async def test_rapid_taps_offer_help(self):
        session, synth, _ = await started()

        for _ in range(5):
            session.notify_tap()
        await settle()

        assert synth.last_text.startswith("Hey, it looks like you're tapping quite a bit.")
        assert 'call Sarah' in synth.last_text
        await session.aclose()

    @pytest.mark.asyncio
    async def test_few_taps_are_ignored(self):
        session, synth, _ = await started()

        for _ in range(4):
            session.notify_tap()
        await settle()

        assert len(synth.requests) == 1
        await session.aclose()

    @pytest.mark.asyncio
    async def test_idle_nudge_after_silence(self):
        session, synth, _ = await started()

        assert session.idle.check(now=session.flags.last_activity + 100) is True
        assert synth.last_text.startswith("Hey, are you still there? You've been on the Today Screen")
        assert "You still have 2 medications to take." in synth.last_text
        await session.aclose()

    @pytest.mark.asyncio
    async def test_transcript_counts_as_activity(self):
        session, synth, recognizer = await started()

        session.submit_transcript("help", timestamp=5000.0)
        assert session.flags.last_activity == 5000.0
        await session.aclose()


class TestShutdown:

    @pytest.mark.asyncio
    async def test_aclose_stops_background_tasks(self):
        session, synth, _ = await started(config=make_config(idle__enabled=True, idle__interval=60.0))
        worker = session._worker
        idle_task = session.idle.task

        await session.aclose()

        assert worker.done()
        assert idle_task.done()
        assert not session.flags.active

    @pytest.mark.asyncio
    async def test_status_report(self):
        session, synth, _ = await started()

        status = session.get_status()
        assert status['active'] is True
        assert status['mode'] == "normal"
        assert status['screen_id'] == "today"
        assert status['listener']['running'] is True
        await session.aclose()
