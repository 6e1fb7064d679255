"""
Utility modules for configuration, logging, and error handling.
"""

from bowelsound.utils.errors import (
    AllocationError,
    BowelSoundError,
    ConfigurationError,
    ConflictError,
    DecodeError,
    DeviceUnavailableError,
    InferenceError,
    InvalidStateError,
    ModelLoadError,
    PlaybackError,
    UnsupportedFormatError,
)
from bowelsound.utils.logging import get_logger, setup_logging, JSONFormatter
from bowelsound.utils.config import ConfigManager, load_config

__all__ = [
    "AllocationError",
    "BowelSoundError",
    "ConfigurationError",
    "ConflictError",
    "DecodeError",
    "DeviceUnavailableError",
    "InferenceError",
    "InvalidStateError",
    "ModelLoadError",
    "PlaybackError",
    "UnsupportedFormatError",
    "get_logger",
    "setup_logging",
    "JSONFormatter",
    "ConfigManager",
    "load_config",
]
