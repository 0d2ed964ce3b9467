#!/usr/bin/env python3
"""
MemoCare VoiceOver console entry point

Runs a voice-over session in the terminal:
- Utterances are printed instead of spoken
- Each line typed is a final transcript
- Lines starting with "/" control the simulated app:
  /tap, /screen <tab>, /toggle, /status, /quit
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .app_state import InMemoryAppState
from .config_manager import ConfigManager, ConfigurationError, VoiceOverConfig
from .console_engines import ConsoleSynthesizer, ConsoleRecognizer
from .nlp_client import VoiceNLPClient
from .screen_metadata import DefaultScreenMetadata
from .session import VoiceOverSession
from .structured_logging import VoiceOverLogger, set_voice_over_logger

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """Setup root logging. Console output comes from the VoiceOverLogger handler."""
    level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        root_logger.addHandler(file_handler)


class ConsoleVoiceOver:
    """Wires a session to console engines and the in-memory app"""

    def __init__(self, config: VoiceOverConfig, app_state: InMemoryAppState, use_nlp: bool = True):
        self.config = config
        self.app_state = app_state
        self.nlp_client: Optional[VoiceNLPClient] = None
        self._done: Optional[asyncio.Event] = None

        if use_nlp and config.nlp.enabled and config.nlp.base_url:
            self.nlp_client = VoiceNLPClient(config.nlp)
        elif use_nlp and config.nlp.enabled:
            logger.info("ℹ️ No voice-nlp URL configured, using local fallbacks")

        self.recognizer = ConsoleRecognizer(on_control=self.handle_control)
        self.session = VoiceOverSession(
            config,
            app_state,
            DefaultScreenMetadata(),
            synthesizer=ConsoleSynthesizer(),
            recognizer=self.recognizer,
            text_corrector=self.nlp_client,
            relevance_checker=self.nlp_client,
            fill_input=app_state.fill_input,
            on_notice=lambda message: print(f"ℹ️  {message}", flush=True),
        )
        app_state.on_navigate(self.session.notify_screen_changed)

    def handle_control(self, line: str):
        command, _, argument = line[1:].partition(" ")
        command = command.lower()
        if command == "tap":
            self.session.notify_tap()
        elif command == "screen" and argument:
            self.app_state.navigate(argument.strip())
        elif command == "toggle":
            self.session.toggle()
        elif command == "status":
            print(json.dumps(self.session.get_status(), indent=2, default=str), flush=True)
        elif command == "quit":
            if self._done is not None:
                self._done.set()
        else:
            print("Commands: /tap, /screen <tab>, /toggle, /status, /quit", flush=True)

    async def _watch_session(self):
        # A spoken "stop" deactivates the session; the console run ends with it
        while self.session.flags.active:
            await asyncio.sleep(0.2)
        self._done.set()

    async def run(self):
        self._done = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._done.set)
            except (NotImplementedError, RuntimeError):
                pass

        self.session.activate()
        watcher = loop.create_task(self._watch_session())
        try:
            await self._done.wait()
        finally:
            watcher.cancel()
            await self.session.aclose()
            self.recognizer.close()
            if self.nlp_client:
                await self.nlp_client.aclose()
            logger.info(f"👋 Session ended: {self.session.statistics['transcripts']} transcripts, "
                        f"{len(self.session.caretaker_log)} flagged for the caretaker")


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="MemoCare VoiceOver console session",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--config", default="config/voiceover.yaml", help="Path to configuration file")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--log-file", help="Path to log file")
    parser.add_argument("--screen", default="today", help="Screen to start on (e.g. today, onboarding:personalize)")
    parser.add_argument("--patient-name", default="Margaret", help="Name used in the greeting")
    parser.add_argument("--no-nlp", action="store_true", help="Disable the voice-nlp collaborator")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main function"""
    args = parse_arguments(argv)
    load_dotenv()

    config_manager = ConfigManager(config_path=args.config)
    try:
        config = config_manager.load_config()
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 1

    debug = args.debug or config.development.debug_mode
    setup_logging(debug=debug, log_file=args.log_file)
    level = logging.DEBUG if debug else getattr(logging, config.monitoring.log_level.upper(), logging.INFO)
    set_voice_over_logger(VoiceOverLogger("voiceover", level=level, log_dir=config.monitoring.log_dir))

    app_state = InMemoryAppState(patient_name=args.patient_name, active_tab=args.screen)
    console = ConsoleVoiceOver(config, app_state, use_nlp=not args.no_nlp)

    if config.development.enable_hot_reload:
        loop = asyncio.get_running_loop()
        # Reloads arrive on the watchdog thread
        config_manager.add_reload_callback(
            lambda new_config: loop.call_soon_threadsafe(console.session.update_config, new_config)
        )
        config_manager.enable_hot_reload()

    try:
        await console.run()
    finally:
        config_manager.disable_hot_reload()
    return 0


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
