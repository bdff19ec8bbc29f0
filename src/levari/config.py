"""
Configuration management for levari.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ImportError:  # Python < 3.11
    import tomli as tomllib

from .logging_config import get_logger, ConfigurationError

logger = get_logger('config')

DEFAULT_CONFIG: str = """# Levari configuration
# Colors can be: black, red, green, yellow, blue, magenta, cyan, white,
# gray, bold, reverse, default

[library]
# Used when levari is started without --datadir
# directory = "~/Music"
# Shuffle the shelf on every start
shuffle = true

[playback]
# Initial volume, 0.0 - 2.0
volume = 0.25
volume_step = 0.01
# Turntable speed at start: 33, 45 or 78
rpm = 33
# "auto" finds mpv on PATH
player = "auto"

[ui]
tick_rate = 0.25
message_timeout = 3.0

[ui.colors]
header = "yellow"
accent = "magenta"
focus = "magenta"

[logging]
level = "WARNING"
# file = "~/.cache/levari/levari.log"
"""

COLOR_MAP: Dict[str, str] = {
    "black": "\033[30m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "white": "\033[37m",
    "gray": "\033[90m",
    "bold": "\033[1m",
    "reverse": "\033[7m",
    "reset": "\033[0m",
    "default": "",
}

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class AppConfig:
    """Application configuration settings."""

    # Library
    music_directory: Optional[str] = None
    shuffle: bool = True

    # Playback
    volume: float = 0.25
    volume_step: float = 0.01
    rpm: int = 33
    player: str = "auto"

    # UI
    tick_rate: float = 0.25
    message_timeout: float = 3.0
    colors: Dict[str, str] = field(default_factory=lambda: {
        "header": "yellow",
        "accent": "magenta",
        "focus": "magenta",
    })

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[str] = None


# TOML (section, key) -> AppConfig attribute
_TOML_KEYS = {
    ("library", "directory"): "music_directory",
    ("library", "shuffle"): "shuffle",
    ("playback", "volume"): "volume",
    ("playback", "volume_step"): "volume_step",
    ("playback", "rpm"): "rpm",
    ("playback", "player"): "player",
    ("ui", "tick_rate"): "tick_rate",
    ("ui", "message_timeout"): "message_timeout",
    ("ui", "colors"): "colors",
    ("logging", "level"): "log_level",
    ("logging", "file"): "log_file",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_config_dir() -> Path:
    """Get the configuration directory under $XDG_CONFIG_HOME."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "levari"
    return Path.home() / ".config" / "levari"


class ConfigManager:
    """Loads and validates the TOML configuration file."""

    def __init__(self, config_path: Optional[Path] = None, create: bool = True):
        self.config_path = Path(config_path) if config_path else get_config_dir() / "levari.toml"
        self.config: AppConfig = AppConfig()
        self.created = False
        if create:
            self.created = self._init_config()
        self._load_config()

    def _init_config(self) -> bool:
        """Write the default config file if it doesn't exist yet."""
        if self.config_path.exists():
            return False
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(DEFAULT_CONFIG)
            logger.info(f"Created default config at {self.config_path}")
            return True
        except OSError as e:
            logger.warning(f"Failed to create default config: {e}")
            return False

    def _load_config(self) -> None:
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            return
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
        except (tomllib.TOMLDecodeError, OSError) as e:
            logger.error(f"Failed to load config: {e}")
            logger.info("Using default configuration")
            return
        self._apply_config_data(data)
        for issue in self.validate_config():
            logger.warning(f"Configuration issue: {issue}")
        self._fix_invalid_values()
        logger.info(f"Loaded configuration from {self.config_path}")

    def _apply_config_data(self, data: Dict[str, Any]) -> None:
        """Apply parsed TOML sections to the AppConfig object."""
        for (section, key), attr in _TOML_KEYS.items():
            values = data.get(section)
            if not isinstance(values, dict) or key not in values:
                continue
            value = values[key]
            if attr == "colors":
                if isinstance(value, dict):
                    self.config.colors.update({k: str(v) for k, v in value.items()})
                continue
            setattr(self.config, attr, value)

    def _field_issues(self) -> Dict[str, str]:
        """Map each invalid AppConfig attribute to a description of the problem."""
        issues: Dict[str, str] = {}
        cfg = self.config

        if not isinstance(cfg.music_directory, (str, type(None))):
            issues["music_directory"] = f"Music directory must be a path, got {cfg.music_directory!r}"
        if not isinstance(cfg.shuffle, bool):
            issues["shuffle"] = f"shuffle must be true or false, got {cfg.shuffle!r}"
        if not _is_number(cfg.volume) or not (0.0 <= cfg.volume <= 2.0):
            issues["volume"] = f"Volume must be 0.0-2.0, got {cfg.volume!r}"
        if not _is_number(cfg.volume_step) or not (0 < cfg.volume_step <= 0.5):
            issues["volume_step"] = f"Volume step must be within (0, 0.5], got {cfg.volume_step!r}"
        if isinstance(cfg.rpm, bool) or cfg.rpm not in (33, 45, 78):
            issues["rpm"] = f"RPM must be 33, 45 or 78, got {cfg.rpm!r}"
        if not isinstance(cfg.player, str) or not cfg.player:
            issues["player"] = f"Invalid audio player: {cfg.player!r}"
        if not _is_number(cfg.tick_rate) or not (0.01 <= cfg.tick_rate <= 5.0):
            issues["tick_rate"] = f"Tick rate must be 0.01-5.0 seconds, got {cfg.tick_rate!r}"
        if not _is_number(cfg.message_timeout) or cfg.message_timeout <= 0:
            issues["message_timeout"] = f"Message timeout must be positive, got {cfg.message_timeout!r}"
        bad_colors = [name for name, color in cfg.colors.items() if color not in COLOR_MAP]
        if bad_colors:
            issues["colors"] = f"Unknown colors for {', '.join(sorted(bad_colors))}"
        if not isinstance(cfg.log_level, str) or cfg.log_level.upper() not in VALID_LOG_LEVELS:
            issues["log_level"] = f"Invalid log level: {cfg.log_level!r}"
        if not isinstance(cfg.log_file, (str, type(None))):
            issues["log_file"] = f"Log file must be a path, got {cfg.log_file!r}"

        return issues

    def validate_config(self) -> List[str]:
        """Validate current configuration and return the list of issues."""
        return list(self._field_issues().values())

    def _fix_invalid_values(self) -> None:
        """Replace invalid values with their defaults."""
        defaults = AppConfig()
        for name in self._field_issues():
            if name == "colors":
                for key, color in list(self.config.colors.items()):
                    if color not in COLOR_MAP:
                        self.config.colors[key] = defaults.colors.get(key, "default")
                continue
            setattr(self.config, name, getattr(defaults, name))
            logger.debug(f"Config {name} reset to default")
        self.config.log_level = self.config.log_level.upper()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return getattr(self.config, key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value.

        Raises:
            ConfigurationError: If `key` is not a known setting
        """
        if not hasattr(self.config, key):
            raise ConfigurationError(f"Unknown setting: {key}")
        setattr(self.config, key, value)
        logger.debug(f"Config updated: {key} = {value}")

    def get_music_directory_path(self) -> Optional[Path]:
        """Get the actual path to the music directory, if configured."""
        if not self.config.music_directory:
            return None
        return Path(self.config.music_directory).expanduser()

    def color(self, name: str) -> str:
        """ANSI escape for a configured UI color."""
        return COLOR_MAP.get(self.config.colors.get(name, "default"), "")


def load_config(config_path: Optional[Path] = None, create: bool = True) -> ConfigManager:
    """Load configuration and return manager."""
    return ConfigManager(config_path, create=create)
