"""
MemoCare VoiceOver Engine - Configuration Management

Provides configuration management with:
- YAML-based configuration files
- Environment profile overlays (voiceover.<env>.yaml)
- Environment variable overrides
- Configuration validation
- Hot-reload capability for development

Usage:
    config_manager = ConfigManager()
    config = config_manager.load_config()

    threshold = config.idle.threshold
    config_manager.enable_hot_reload()
"""

import os
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List, Callable
from dataclasses import dataclass, field, asdict
from enum import Enum
import yaml
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

logger = logging.getLogger(__name__)


class EnvironmentType(Enum):
    """Environment types for configuration profiles"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


@dataclass
class SpeechOutputConfig:
    """Text-to-speech prosody and pacing"""
    lang: str = "en-GB"
    rate: float = 0.9       # slower than default for easier comprehension
    pitch: float = 0.95
    volume: float = 0.9
    preferred_voices: List[str] = field(default_factory=lambda: ["Samantha", "Serena", "Daniel"])

    # Pauses between continuation steps (seconds)
    item_pause: float = 0.8
    input_listen_delay: float = 0.3


@dataclass
class SpeechInputConfig:
    """Continuous recognition settings"""
    lang: str = "en-GB"
    restart_delay: float = 0.5
    error_backoff: float = 1.5
    max_error_retries: int = 1


@dataclass
class IdleConfig:
    """Idle nudge monitor"""
    enabled: bool = True
    interval: float = 30.0
    threshold: float = 50.0


@dataclass
class InterpreterConfig:
    """Command interpreter timings and limits"""
    farewell_grace: float = 2.0
    resume_read_delay: float = 0.5
    skip_resume_delay: float = 0.8
    screen_change_delay: float = 0.5
    command_queue_size: int = 4
    nlp_timeout: float = 4.0


@dataclass
class TapConfig:
    """Rapid-tap help detection"""
    window: float = 3.0
    threshold: int = 5


@dataclass
class NLPConfig:
    """Voice NLP helper service (text correction and relevance)"""
    enabled: bool = True
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 3.0
    failure_threshold: int = 3
    reset_timeout: float = 30.0


@dataclass
class MonitoringConfig:
    """Logging configuration"""
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    structured: bool = True


@dataclass
class DevelopmentConfig:
    """Development-specific configuration"""
    debug_mode: bool = False
    enable_hot_reload: bool = False


@dataclass
class VoiceOverConfig:
    """Complete VoiceOver engine configuration"""
    environment: EnvironmentType = EnvironmentType.DEVELOPMENT
    speech_output: SpeechOutputConfig = field(default_factory=SpeechOutputConfig)
    speech_input: SpeechInputConfig = field(default_factory=SpeechInputConfig)
    idle: IdleConfig = field(default_factory=IdleConfig)
    interpreter: InterpreterConfig = field(default_factory=InterpreterConfig)
    taps: TapConfig = field(default_factory=TapConfig)
    nlp: NLPConfig = field(default_factory=NLPConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    development: DevelopmentConfig = field(default_factory=DevelopmentConfig)

    # Metadata
    version: str = "1.0.0"
    name: str = "MemoCare VoiceOver"
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())


SECTION_TYPES = {
    'speech_output': SpeechOutputConfig,
    'speech_input': SpeechInputConfig,
    'idle': IdleConfig,
    'interpreter': InterpreterConfig,
    'taps': TapConfig,
    'nlp': NLPConfig,
    'monitoring': MonitoringConfig,
    'development': DevelopmentConfig,
}


class ConfigurationError(Exception):
    """Configuration-related errors"""
    pass


class ConfigFileWatcher(FileSystemEventHandler):
    """Watches configuration files for changes and triggers reloads"""

    def __init__(self, config_manager: 'ConfigManager'):
        self.config_manager = config_manager
        self.logger = logging.getLogger(__name__)

    def on_modified(self, event):
        if event.is_directory:
            return

        if event.src_path.endswith('.yaml') or event.src_path.endswith('.yml'):
            self.logger.info(f"Configuration file changed: {event.src_path}")
            try:
                self.config_manager.reload_config()
            except ConfigurationError as e:
                self.logger.error(f"Failed to reload configuration: {e}")


class ConfigManager:
    """
    Configuration management for the VoiceOver engine

    Missing files are not an error: every section has working defaults.
    """

    def __init__(self, config_path: Optional[str] = None, environment: Optional[EnvironmentType] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.environment = environment or self._detect_environment()
        self.logger = logging.getLogger(__name__)

        self._config: Optional[VoiceOverConfig] = None
        self._last_modified: Optional[float] = None

        # Hot reload
        self._file_observer: Optional[Observer] = None
        self._reload_callbacks: List[Callable[[VoiceOverConfig], None]] = []

    def _get_default_config_path(self) -> str:
        return os.path.join(os.getcwd(), 'config', 'voiceover.yaml')

    def _detect_environment(self) -> EnvironmentType:
        env_name = os.getenv('VOICEOVER_ENV', 'development').lower()
        try:
            return EnvironmentType(env_name)
        except ValueError:
            logger.warning(f"Unknown environment '{env_name}', defaulting to development")
            return EnvironmentType.DEVELOPMENT

    def _load_yaml_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if not os.path.exists(config_path):
            self.logger.debug(f"Configuration file not found: {config_path}")
            return {}

        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Top level of {config_path} must be a mapping")

        self._last_modified = os.stat(config_path).st_mtime
        return config_data

    def _apply_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the environment profile file, then environment variables"""
        env_config_path = self.config_path.replace('.yaml', f'.{self.environment.value}.yaml')
        if env_config_path != self.config_path and os.path.exists(env_config_path):
            config_data = self._deep_merge(config_data, self._load_yaml_config(env_config_path))

        env_overrides = self._get_environment_variable_overrides()
        if env_overrides:
            config_data = self._deep_merge(config_data, env_overrides)

        return config_data

    def _get_environment_variable_overrides(self) -> Dict[str, Any]:
        """Get configuration overrides from environment variables"""
        overrides: Dict[str, Any] = {}

        nlp_overrides = {}
        if nlp_url := (os.getenv('VOICEOVER_NLP_URL') or self._supabase_function_url()):
            nlp_overrides['base_url'] = nlp_url
        if nlp_key := (os.getenv('VOICEOVER_NLP_API_KEY') or os.getenv('SUPABASE_PUBLISHABLE_KEY')):
            nlp_overrides['api_key'] = nlp_key
        if nlp_overrides:
            overrides['nlp'] = nlp_overrides

        if lang := os.getenv('VOICEOVER_LANG'):
            overrides['speech_output'] = {'lang': lang}
            overrides['speech_input'] = {'lang': lang}

        if idle_threshold := os.getenv('VOICEOVER_IDLE_THRESHOLD'):
            try:
                overrides['idle'] = {'threshold': float(idle_threshold)}
            except ValueError:
                raise ConfigurationError(f"VOICEOVER_IDLE_THRESHOLD must be a number, got {idle_threshold!r}")

        if debug := os.getenv('DEBUG'):
            overrides['development'] = {'debug_mode': debug.lower() in ('true', '1', 'yes')}

        if log_level := os.getenv('LOG_LEVEL'):
            overrides['monitoring'] = {'log_level': log_level.upper()}

        return overrides

    @staticmethod
    def _supabase_function_url() -> Optional[str]:
        if supabase_url := os.getenv('SUPABASE_URL'):
            return f"{supabase_url.rstrip('/')}/functions/v1/voice-nlp"
        return None

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _create_config_from_dict(self, config_data: Dict[str, Any]) -> VoiceOverConfig:
        """Create VoiceOverConfig from dictionary data"""
        sections = {}
        for key, section_type in SECTION_TYPES.items():
            try:
                sections[key] = section_type(**(config_data.get(key) or {}))
            except TypeError as e:
                raise ConfigurationError(f"Invalid '{key}' section: {e}")

        config = VoiceOverConfig(environment=self.environment, **sections)
        if 'version' in config_data:
            config.version = str(config_data['version'])
        if 'name' in config_data:
            config.name = config_data['name']
        return config

    def _validate_config(self, config: VoiceOverConfig) -> None:
        """Validate configuration for correctness"""
        errors = []

        output = config.speech_output
        if not 0.1 <= output.rate <= 10:
            errors.append(f"speech_output.rate out of range: {output.rate}")
        if not 0 <= output.pitch <= 2:
            errors.append(f"speech_output.pitch out of range: {output.pitch}")
        if not 0 <= output.volume <= 1:
            errors.append(f"speech_output.volume out of range: {output.volume}")

        for name, value in [
            ("speech_output.item_pause", output.item_pause),
            ("speech_output.input_listen_delay", output.input_listen_delay),
            ("speech_input.restart_delay", config.speech_input.restart_delay),
            ("speech_input.error_backoff", config.speech_input.error_backoff),
            ("interpreter.farewell_grace", config.interpreter.farewell_grace),
            ("interpreter.resume_read_delay", config.interpreter.resume_read_delay),
            ("interpreter.skip_resume_delay", config.interpreter.skip_resume_delay),
            ("interpreter.screen_change_delay", config.interpreter.screen_change_delay),
        ]:
            if value < 0:
                errors.append(f"{name} must not be negative")

        if config.speech_input.max_error_retries < 0:
            errors.append("speech_input.max_error_retries must not be negative")

        if config.idle.interval <= 0:
            errors.append("idle.interval must be positive")
        if config.idle.threshold <= 0:
            errors.append("idle.threshold must be positive")

        if config.interpreter.command_queue_size <= 0:
            errors.append("interpreter.command_queue_size must be positive")
        if config.interpreter.nlp_timeout <= 0 or config.nlp.timeout <= 0:
            errors.append("NLP timeouts must be positive")
        elif config.nlp.timeout >= config.interpreter.nlp_timeout:
            errors.append("nlp.timeout must be shorter than interpreter.nlp_timeout")

        if config.taps.threshold < 2:
            errors.append("taps.threshold must be at least 2")

        if config.monitoring.log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Invalid log level: {config.monitoring.log_level}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def load_config(self) -> VoiceOverConfig:
        """Load and validate configuration"""
        self.logger.info(f"Loading configuration from {self.config_path}")

        config_data = self._load_yaml_config(self.config_path)
        config_data = self._apply_environment_overrides(config_data)
        config = self._create_config_from_dict(config_data)
        self._validate_config(config)

        self._config = config
        self.logger.info(f"Configuration loaded for {self.environment.value} environment")
        return config

    def get_config(self) -> VoiceOverConfig:
        """Get the current configuration, loading if necessary"""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> VoiceOverConfig:
        """Reload configuration from file and notify callbacks"""
        self.logger.info("Reloading configuration...")
        self._config = None
        config = self.load_config()

        for callback in self._reload_callbacks:
            try:
                callback(config)
            except Exception as e:
                self.logger.error(f"Error in reload callback: {e}")

        return config

    def save_config(self, config: VoiceOverConfig) -> None:
        """Save configuration to file"""
        os.makedirs(os.path.dirname(self.config_path) or '.', exist_ok=True)

        config_dict = {key: asdict(getattr(config, key)) for key in SECTION_TYPES}
        config_dict['version'] = config.version
        config_dict['name'] = config.name

        with open(self.config_path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        self.logger.info(f"Configuration saved to {self.config_path}")

    def enable_hot_reload(self) -> None:
        """Watch the config directory and reload on change"""
        if self._file_observer is not None:
            return

        watch_dir = os.path.dirname(os.path.abspath(self.config_path))
        Path(watch_dir).mkdir(parents=True, exist_ok=True)

        self._file_observer = Observer()
        self._file_observer.schedule(ConfigFileWatcher(self), watch_dir, recursive=False)
        self._file_observer.start()
        self.logger.info(f"Hot reload enabled for {watch_dir}")

    def disable_hot_reload(self) -> None:
        """Stop watching configuration files"""
        if self._file_observer is None:
            return

        self._file_observer.stop()
        self._file_observer.join(timeout=2.0)
        self._file_observer = None
        self.logger.info("Hot reload disabled")

    @property
    def hot_reload_enabled(self) -> bool:
        return self._file_observer is not None

    def add_reload_callback(self, callback: Callable[[VoiceOverConfig], None]) -> None:
        self._reload_callbacks.append(callback)

    def remove_reload_callback(self, callback: Callable[[VoiceOverConfig], None]) -> None:
        if callback in self._reload_callbacks:
            self._reload_callbacks.remove(callback)

    def is_config_modified(self) -> bool:
        """Check if configuration file has been modified since load"""
        if not os.path.exists(self.config_path):
            return False
        return os.stat(self.config_path).st_mtime != self._last_modified

    def create_default_config(self) -> None:
        """Create a default configuration file"""
        self.save_config(VoiceOverConfig(environment=self.environment))
        self.logger.info(f"Created default configuration at {self.config_path}")


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[str] = None) -> ConfigManager:
    """Get the global configuration manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path=config_path)
    return _config_manager


def get_config() -> VoiceOverConfig:
    """Get the current configuration"""
    return get_config_manager().get_config()


def reload_config() -> VoiceOverConfig:
    """Reload the configuration"""
    return get_config_manager().reload_config()


__all__ = [
    'ConfigManager',
    'VoiceOverConfig',
    'SpeechOutputConfig',
    'SpeechInputConfig',
    'IdleConfig',
    'InterpreterConfig',
    'TapConfig',
    'NLPConfig',
    'MonitoringConfig',
    'DevelopmentConfig',
    'EnvironmentType',
    'ConfigurationError',
    'get_config_manager',
    'get_config',
    'reload_config',
]
