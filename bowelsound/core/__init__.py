"""
Core module: data models, audio engines, feature extraction and the
session state machine.

Uses lazy imports for modules with heavy dependencies (librosa, soundfile).
"""

from bowelsound.core.models import (
    FEATURE_LENGTH,
    FeatureVector,
    PlaybackState,
    PositionTick,
    PredictionResult,
    RecordingState,
    SessionState,
    WaveformSource,
    validate_probability,
)
from bowelsound.core.device import AudioDevice
from bowelsound.core.timing import format_time, reset_label, time_label

__all__ = [
    # Models (always available)
    "FEATURE_LENGTH",
    "FeatureVector",
    "PlaybackState",
    "PositionTick",
    "PredictionResult",
    "RecordingState",
    "SessionState",
    "WaveformSource",
    "validate_probability",
    "AudioDevice",
    "format_time",
    "reset_label",
    "time_label",
    # Heavy modules (lazy loaded)
    "resolve_source",
    "FeatureExtractor",
    "create_feature_extractor",
    "PlaybackEngine",
    "create_playback_engine",
    "RecordingEngine",
    "create_recording_engine",
    "SessionController",
    "create_session",
]

_LAZY = {
    "resolve_source": "bowelsound.core.source",
    "FeatureExtractor": "bowelsound.core.features",
    "create_feature_extractor": "bowelsound.core.features",
    "PlaybackEngine": "bowelsound.core.playback",
    "create_playback_engine": "bowelsound.core.playback",
    "RecordingEngine": "bowelsound.core.recording",
    "create_recording_engine": "bowelsound.core.recording",
    "SessionController": "bowelsound.core.session",
    "create_session": "bowelsound.core.session",
}


def __getattr__(name: str):
    """Lazy load modules with heavy dependencies."""
    if name in _LAZY:
        import importlib
        return getattr(importlib.import_module(_LAZY[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
