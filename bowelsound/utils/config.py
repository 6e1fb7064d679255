"""
Configuration management for the bowel sound analysis application.

Loads configuration from YAML files with ${ENV_VAR} interpolation;
values from a project ``.env`` file are visible to interpolation.
"""

import copy
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from bowelsound.utils.errors import ConfigurationError


DEFAULT_CONFIG_PATHS = (
    Path("config/config.yaml"),
    Path("config.yaml"),
)


class ConfigManager:
    """
    Holds a configuration dictionary loaded from YAML.

    Keys may be addressed with dot notation ("recording.sample_rate").
    """

    _env_pattern = re.compile(r'\$\{([^}]+)\}')

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        self._config: Dict[str, Any] = config_dict or {}

    @classmethod
    def from_file(cls, file_path: Path) -> "ConfigManager":
        """
        Create a ConfigManager from a YAML file.

        Sections missing from the file are filled in from the defaults.

        Raises:
            ConfigurationError: If the file is missing or is not valid YAML
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {file_path}",
                config_key=str(file_path)
            )

        try:
            with open(file_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse YAML configuration: {e}",
                config_key=str(file_path)
            ) from e

        if not isinstance(loaded, dict):
            raise ConfigurationError(
                "Configuration root must be a mapping",
                config_key=str(file_path)
            )

        manager = cls(merge_config(get_default_config(), loaded))
        manager._interpolate_env_vars()
        return manager

    def _interpolate_env_vars(self) -> None:
        self._config = self._interpolate(self._config)

    def _interpolate(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: self._interpolate(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._interpolate(item) for item in value]
        if isinstance(value, str):
            return self._interpolate_string(value)
        return value

    def _interpolate_string(self, s: str) -> Optional[str]:
        """Replace ${ENV_VAR} with its value; a string that is only an unset variable becomes None."""
        match = self._env_pattern.fullmatch(s)
        if match and match.group(1) not in os.environ:
            return None

        def replace(m: re.Match) -> str:
            return os.environ.get(m.group(1), m.group(0))

        return self._env_pattern.sub(replace, s)

    def get(self, key: str, default: Any = None, required: bool = False) -> Any:
        """
        Get a configuration value using dot notation.

        Raises:
            ConfigurationError: If ``required`` and the key is missing
        """
        value: Any = self._config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                if required:
                    raise ConfigurationError(
                        f"Required configuration key not found: {key}",
                        config_key=key
                    )
                return default
        return value

    def get_section(self, key: str) -> Dict[str, Any]:
        """Return a configuration section, or an empty dict."""
        value = self.get(key, default={})
        if not isinstance(value, dict):
            return {}
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Return a deep copy of the configuration."""
        return copy.deepcopy(self._config)

    def validate(self, schema: Dict[str, Dict[str, Any]]) -> None:
        """
        Validate configuration against a schema.

        Schema format:
            {
                "recording.sample_rate": {"type": int, "required": True},
                "playback.tick_interval": {"type": (int, float)},
            }

        Raises:
            ConfigurationError: If validation fails
        """
        for key, rules in schema.items():
            value = self.get(key)
            expected_type = rules.get("type")

            if value is None:
                if rules.get("required", False):
                    raise ConfigurationError(
                        f"Required configuration missing: {key}",
                        config_key=key
                    )
                continue

            if expected_type and not isinstance(value, expected_type):
                raise ConfigurationError(
                    f"Invalid type for {key}: got {type(value).__name__}",
                    config_key=key
                )


CONFIG_SCHEMA: Dict[str, Dict[str, Any]] = {
    "audio.feature_length": {"type": int, "required": True},
    "audio.supported_formats": {"type": list},
    "recording.sample_rate": {"type": int, "required": True},
    "recording.channels": {"type": int, "required": True},
    "recording.directory": {"type": str},
    "playback.tick_interval": {"type": (int, float), "required": True},
    "playback.block_size": {"type": int},
    "logging.level": {"type": str},
}


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` onto a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file or return defaults.

    Args:
        config_path: Optional path to a YAML file. If None, the default
                     locations are searched.

    Returns:
        Dict[str, Any]: Validated configuration dictionary
    """
    load_dotenv(find_dotenv(usecwd=True))

    if config_path is None:
        for path in DEFAULT_CONFIG_PATHS:
            if path.exists():
                config_path = str(path)
                break

    if config_path:
        manager = ConfigManager.from_file(Path(config_path))
    else:
        manager = ConfigManager(get_default_config())
        manager._interpolate_env_vars()

    manager.validate(CONFIG_SCHEMA)
    return manager.to_dict()


def get_default_config() -> Dict[str, Any]:
    """Return default configuration values."""
    return {
        "audio": {
            "supported_formats": [".wav", ".aiff", ".aif", ".mp3"],
            "feature_length": 15600,
        },
        "recording": {
            "directory": "recordings",
            "sample_rate": 44100,
            "channels": 1,
            "subtype": "PCM_16",
            "filename_pattern": "recording_%Y%m%d_%H%M%S.wav",
        },
        "playback": {
            "tick_interval": 0.1,
            "block_size": 1024,
        },
        "classifier": {
            "handle": "${BOWELSOUND_MODEL}",
            "labels": None,
        },
        "logging": {
            "level": "INFO",
            "format": "text",
        },
    }
