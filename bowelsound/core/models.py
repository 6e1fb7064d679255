"""
Core data models for the bowel sound analysis application.

Immutable value types that flow between the capture/playback engines,
the feature extractor and the classifier, plus the state enumerations
the engines and session controller expose.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import numpy as np

# Input window of the classifier: 15,600 mono samples
FEATURE_LENGTH: int = 15600


class PlaybackState(str, Enum):
    """Lifecycle of the player over a loaded source."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    SCRUBBING_PAUSED = "scrubbing_paused"
    FINISHED = "finished"


class RecordingState(str, Enum):
    """Lifecycle of a microphone capture."""

    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


class SessionState(str, Enum):
    """Which engine, if any, currently holds the audio device."""

    IDLE = "idle"
    RECORDING = "recording"
    PLAYING = "playing"


@dataclass(frozen=True)
class WaveformSource:
    """
    A resolved, decodable reference to an audio asset.

    Created when a recording finishes or an import is confirmed.
    """

    file_path: Path
    sample_rate: int
    channels: int
    frames: int
    format: str  # 'WAV', 'AIFF', 'MP3'
    subtype: Optional[str] = None  # e.g. 'PCM_16'; None when decoded via librosa
    file_hash: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"Channel count must be positive, got {self.channels}")
        if self.frames < 0:
            raise ValueError(f"Frame count must be non-negative, got {self.frames}")

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.frames / self.sample_rate

    @property
    def name(self) -> str:
        return self.file_path.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file_path': str(self.file_path),
            'sample_rate': self.sample_rate,
            'channels': self.channels,
            'frames': self.frames,
            'duration': self.duration,
            'format': self.format,
            'subtype': self.subtype,
            'file_hash': self.file_hash,
        }


@dataclass(frozen=True)
class FeatureVector:
    """
    Fixed-length single-channel sample window fed to the classifier.

    ``valid_frames`` counts the leading samples taken from the source;
    everything after them is zero padding.
    """

    samples: np.ndarray  # Shape: (FEATURE_LENGTH,), float32
    valid_frames: int
    sample_rate: int
    source_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.samples.shape != (FEATURE_LENGTH,):
            raise ValueError(
                f"Feature vector must have shape ({FEATURE_LENGTH},), "
                f"got {self.samples.shape}"
            )
        if self.samples.dtype != np.float32:
            raise ValueError(f"Feature vector must be float32, got {self.samples.dtype}")
        if not 0 <= self.valid_frames <= FEATURE_LENGTH:
            raise ValueError(f"valid_frames out of range: {self.valid_frames}")
        self.samples.setflags(write=False)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def padding(self) -> int:
        """Number of trailing zero samples."""
        return FEATURE_LENGTH - self.valid_frames

    @property
    def covered_seconds(self) -> float:
        """Seconds of source audio represented by the real samples."""
        return self.valid_frames / self.sample_rate


@dataclass(frozen=True)
class PredictionResult:
    """
    Label to probability mapping returned by a classifier.

    Probabilities are independent confidences in [0, 1]; they are not
    assumed to sum to 1.
    """

    probabilities: Dict[str, float]
    classifier: str = "unknown"
    processing_time: float = 0.0  # seconds
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        for label, probability in self.probabilities.items():
            validate_probability(probability, label)

    @property
    def best(self) -> Optional[Tuple[str, float]]:
        """Highest scoring (label, probability), or None when empty."""
        ranked = self.top(1)
        return ranked[0] if ranked else None

    def top(self, n: int = 5) -> List[Tuple[str, float]]:
        """Return the ``n`` highest scoring labels, best first."""
        return sorted(
            self.probabilities.items(), key=lambda item: item[1], reverse=True
        )[:n]

    def format_lines(self) -> str:
        """Render one ``label: 12.34%`` line per label, best first."""
        return "\n".join(
            f"{label}: {probability * 100:.2f}%"
            for label, probability in self.top(len(self.probabilities))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'probabilities': dict(self.probabilities),
            'classifier': self.classifier,
            'processing_time': self.processing_time,
            'timestamp': self.timestamp.isoformat(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


class PositionTick(NamedTuple):
    """One playback position sample: (current_seconds, duration)."""

    current: float
    duration: float

    @property
    def label(self) -> str:
        from bowelsound.core.timing import time_label
        return time_label(self.current, self.duration)


# Validation helpers

def validate_probability(probability: float, label: str = "") -> None:
    """Validate a probability is a finite value in [0.0, 1.0]."""
    if not (0.0 <= probability <= 1.0):
        raise ValueError(
            f"Probability for {label!r} must be in [0.0, 1.0], got {probability}"
        )
