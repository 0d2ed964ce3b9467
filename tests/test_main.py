"""
Tests for the console entry point and console engines
"""

import asyncio
import io
import pytest
from unittest.mock import Mock

from voiceover.app_state import InMemoryAppState
from voiceover.collaborators import SynthesisRequest, SpeechHandlers, RecognitionHandlers
from voiceover.console_engines import ConsoleSynthesizer, ConsoleRecognizer
from voiceover.main import ConsoleVoiceOver, parse_arguments, main

from tests.fixtures.fakes import FakeRecognizer, make_config, settle


def request(text):
    return SynthesisRequest(text=text, voice=None, lang="en-GB", rate=0.9, pitch=0.95, volume=0.9)


class TestConsoleSynthesizer:

    @pytest.mark.asyncio
    async def test_prints_and_completes(self):
        stream = io.StringIO()
        synth = ConsoleSynthesizer(words_per_second=1000, stream=stream)
        handlers = SpeechHandlers(on_start=Mock(), on_end=Mock(), on_error=Mock())

        synth.speak(request("Hello there Margaret"), handlers)
        await asyncio.sleep(0.05)

        assert "[default] Hello there Margaret" in stream.getvalue()
        handlers.on_start.assert_called_once()
        handlers.on_end.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_suppresses_end(self):
        synth = ConsoleSynthesizer(words_per_second=1, stream=io.StringIO())
        handlers = SpeechHandlers(on_start=Mock(), on_end=Mock(), on_error=Mock())

        synth.speak(request("A long sentence to say"), handlers)
        synth.cancel()
        await settle()

        handlers.on_end.assert_not_called()


class TestConsoleRecognizer:

    @pytest.mark.asyncio
    async def test_lines_become_transcripts_and_controls(self):
        controls = []
        recognizer = ConsoleRecognizer(stream=io.StringIO("Go to memories\n\n/tap\n"), on_control=controls.append)
        handlers = RecognitionHandlers(on_result=Mock(), on_end=Mock(), on_error=Mock())

        recognizer.start(handlers)
        await asyncio.sleep(0.1)

        handlers.on_result.assert_called_once_with("Go to memories", True)
        handlers.on_end.assert_called_once()
        assert controls == ["/tap", "/quit"]
        recognizer.close()

    @pytest.mark.asyncio
    async def test_aborted_recognizer_drops_lines(self):
        recognizer = ConsoleRecognizer(stream=io.StringIO("hello\n"))
        handlers = RecognitionHandlers(on_result=Mock(), on_end=Mock(), on_error=Mock())

        recognizer.start(handlers)
        recognizer.abort()
        await asyncio.sleep(0.1)

        handlers.on_result.assert_not_called()
        recognizer.close()


class TestConsoleVoiceOver:

    def test_parse_arguments(self):
        args = parse_arguments(["--screen", "onboarding:personalize", "--no-nlp", "--debug"])
        assert args.screen == "onboarding:personalize"
        assert args.no_nlp is True
        assert args.debug is True
        assert args.config == "config/voiceover.yaml"

    @pytest.mark.asyncio
    async def test_controls_drive_the_session(self, capsys):
        app_state = InMemoryAppState()
        console = ConsoleVoiceOver(make_config(), app_state, use_nlp=False)

        console.handle_control("/screen memories")
        assert app_state.active_tab == "memories"
        assert console.session.flags.screen_id == "memories"

        console.session.listener.recognizer = FakeRecognizer()
        console.handle_control("/toggle")
        assert console.session.flags.active

        console.handle_control("/status")
        assert '"active": true' in capsys.readouterr().out

        await console.session.aclose()
        console.recognizer.close()

    def test_nlp_client_built_only_with_url(self):
        config = make_config()
        config.nlp.base_url = "https://example.supabase.co/functions/v1/voice-nlp"

        assert ConsoleVoiceOver(config, InMemoryAppState()).nlp_client is not None
        assert ConsoleVoiceOver(make_config(), InMemoryAppState()).nlp_client is None
        assert ConsoleVoiceOver(config, InMemoryAppState(), use_nlp=False).nlp_client is None

    @pytest.mark.asyncio
    async def test_main_reports_configuration_errors(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        bad_config = tmp_path / "voiceover.yaml"
        bad_config.write_text("idle: {interval: 0}\n")

        assert await main(["--config", str(bad_config)]) == 1
        assert "Configuration error" in capsys.readouterr().err
