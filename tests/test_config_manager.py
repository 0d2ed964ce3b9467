"""
Tests for the configuration management system

Covers YAML loading, environment profile overlays, environment variable
overrides, validation, saving and reload callbacks.
"""

import os
import shutil
import tempfile
import yaml
import pytest

from voiceover.config_manager import (
    ConfigManager, ConfigurationError, EnvironmentType, VoiceOverConfig, SpeechOutputConfig,
    IdleConfig, InterpreterConfig
)

ENV_VARS = (
    'VOICEOVER_ENV', 'VOICEOVER_NLP_URL', 'VOICEOVER_NLP_API_KEY', 'SUPABASE_URL',
    'SUPABASE_PUBLISHABLE_KEY', 'VOICEOVER_LANG', 'VOICEOVER_IDLE_THRESHOLD', 'DEBUG', 'LOG_LEVEL',
)


class TestConfigManager:
    """Test ConfigManager functionality"""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, 'voiceover.yaml')

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_config_file(self, config_data, path=None):
        with open(path or self.config_path, 'w') as f:
            yaml.safe_dump(config_data, f)

    def manager(self, environment=EnvironmentType.TESTING):
        return ConfigManager(config_path=self.config_path, environment=environment)

    def test_missing_file_uses_defaults(self):
        config = self.manager().load_config()

        assert config.speech_output.rate == 0.9
        assert config.speech_output.preferred_voices == ["Samantha", "Serena", "Daniel"]
        assert config.idle.threshold == 50.0
        assert config.interpreter.command_queue_size == 4
        assert config.nlp.base_url is None

    def test_load_config_success(self):
        self.write_config_file({
            'speech_output': {'rate': 0.8, 'lang': 'en-US'},
            'idle': {'threshold': 120},
            'name': 'Ward 4 VoiceOver',
        })

        config = self.manager().load_config()

        assert config.speech_output.rate == 0.8
        assert config.speech_output.lang == 'en-US'
        assert config.speech_output.pitch == 0.95
        assert config.idle.threshold == 120
        assert config.name == 'Ward 4 VoiceOver'
        assert config.environment == EnvironmentType.TESTING

    def test_load_config_invalid_yaml(self):
        with open(self.config_path, 'w') as f:
            f.write("speech_output: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            self.manager().load_config()

    def test_top_level_must_be_mapping(self):
        self.write_config_file(["not", "a", "mapping"])
        with pytest.raises(ConfigurationError, match="mapping"):
            self.manager().load_config()

    def test_unknown_key_in_section(self):
        self.write_config_file({'idle': {'thresold': 10}})
        with pytest.raises(ConfigurationError, match="Invalid 'idle' section"):
            self.manager().load_config()

    def test_environment_specific_overrides(self):
        self.write_config_file({'idle': {'threshold': 60, 'interval': 20}})
        self.write_config_file({'idle': {'threshold': 5}},
                               path=os.path.join(self.temp_dir, 'voiceover.testing.yaml'))

        config = self.manager().load_config()

        assert config.idle.threshold == 5
        assert config.idle.interval == 20

    def test_environment_variable_overrides(self, monkeypatch):
        monkeypatch.setenv('SUPABASE_URL', 'https://example.supabase.co/')
        monkeypatch.setenv('SUPABASE_PUBLISHABLE_KEY', 'anon-key')
        monkeypatch.setenv('VOICEOVER_LANG', 'en-AU')
        monkeypatch.setenv('VOICEOVER_IDLE_THRESHOLD', '75')
        monkeypatch.setenv('DEBUG', 'true')
        monkeypatch.setenv('LOG_LEVEL', 'debug')

        config = self.manager().load_config()

        assert config.nlp.base_url == 'https://example.supabase.co/functions/v1/voice-nlp'
        assert config.nlp.api_key == 'anon-key'
        assert config.speech_output.lang == 'en-AU'
        assert config.speech_input.lang == 'en-AU'
        assert config.idle.threshold == 75.0
        assert config.development.debug_mode is True
        assert config.monitoring.log_level == 'DEBUG'

    def test_explicit_nlp_url_wins(self, monkeypatch):
        monkeypatch.setenv('SUPABASE_URL', 'https://example.supabase.co')
        monkeypatch.setenv('VOICEOVER_NLP_URL', 'http://localhost:8000/voice-nlp')

        assert self.manager().load_config().nlp.base_url == 'http://localhost:8000/voice-nlp'

    def test_bad_idle_threshold_variable(self, monkeypatch):
        monkeypatch.setenv('VOICEOVER_IDLE_THRESHOLD', 'soon')
        with pytest.raises(ConfigurationError, match="VOICEOVER_IDLE_THRESHOLD"):
            self.manager().load_config()

    def test_environment_detection(self, monkeypatch):
        monkeypatch.setenv('VOICEOVER_ENV', 'production')
        assert ConfigManager(config_path=self.config_path).environment == EnvironmentType.PRODUCTION

        monkeypatch.setenv('VOICEOVER_ENV', 'staging')
        assert ConfigManager(config_path=self.config_path).environment == EnvironmentType.DEVELOPMENT

    @pytest.mark.parametrize("section,values,message", [
        ('speech_output', {'rate': 0}, "speech_output.rate"),
        ('speech_output', {'volume': 1.5}, "speech_output.volume"),
        ('speech_output', {'item_pause': -1}, "item_pause"),
        ('speech_input', {'max_error_retries': -1}, "max_error_retries"),
        ('idle', {'interval': 0}, "idle.interval"),
        ('interpreter', {'command_queue_size': 0}, "command_queue_size"),
        ('interpreter', {'nlp_timeout': 0}, "NLP timeouts"),
        ('nlp', {'timeout': 5.0}, "nlp.timeout must be shorter"),
        ('taps', {'threshold': 1}, "taps.threshold"),
        ('monitoring', {'log_level': 'LOUD'}, "Invalid log level"),
    ])
    def test_config_validation_failures(self, section, values, message):
        self.write_config_file({section: values})
        with pytest.raises(ConfigurationError, match=message):
            self.manager().load_config()

    def test_validation_reports_every_problem(self):
        self.write_config_file({'speech_output': {'rate': 0, 'pitch': 3}})
        with pytest.raises(ConfigurationError) as exc_info:
            self.manager().load_config()
        assert "rate" in str(exc_info.value)
        assert "pitch" in str(exc_info.value)

    def test_save_config_round_trip(self):
        manager = self.manager()
        config = VoiceOverConfig(speech_output=SpeechOutputConfig(rate=0.7), idle=IdleConfig(threshold=90))
        manager.save_config(config)

        loaded = self.manager().load_config()
        assert loaded.speech_output.rate == 0.7
        assert loaded.idle.threshold == 90

    def test_create_default_config(self):
        self.manager().create_default_config()

        with open(self.config_path) as f:
            data = yaml.safe_load(f)
        assert data['interpreter'] == vars(InterpreterConfig())
        assert data['name'] == "MemoCare VoiceOver"

    def test_get_config_caching(self):
        manager = self.manager()
        assert manager.get_config() is manager.get_config()

    def test_reload_callbacks(self):
        manager = self.manager()
        manager.load_config()
        received = []

        def failing_callback(config):
            raise RuntimeError("listener broke")

        manager.add_reload_callback(failing_callback)
        manager.add_reload_callback(received.append)
        self.write_config_file({'idle': {'threshold': 15}})

        config = manager.reload_config()

        assert received == [config]
        assert config.idle.threshold == 15

        manager.remove_reload_callback(received.append)
        manager.reload_config()
        assert len(received) == 1

    def test_is_config_modified(self):
        self.write_config_file({'idle': {'threshold': 15}})
        manager = self.manager()
        manager.load_config()
        assert manager.is_config_modified() is False

        stat = os.stat(self.config_path)
        os.utime(self.config_path, (stat.st_atime, stat.st_mtime + 10))
        assert manager.is_config_modified() is True

    def test_hot_reload_toggle(self):
        manager = self.manager()
        manager.enable_hot_reload()
        try:
            assert manager.hot_reload_enabled
        finally:
            manager.disable_hot_reload()
        assert not manager.hot_reload_enabled
