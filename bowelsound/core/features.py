"""
Feature extractor for the bowel sound analysis application.

Frames an arbitrary-length, arbitrary-format source into the fixed
15,600-sample mono window the classifier expects. Samples are taken at
the source's native rate from channel 0; no resampling, mixing,
normalization or windowing is applied.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import librosa
import numpy as np
import soundfile as sf

from bowelsound.core.models import FEATURE_LENGTH, FeatureVector, WaveformSource
from bowelsound.utils.errors import AllocationError, DecodeError

logger = logging.getLogger(__name__)


class FeatureExtractor:
    """
    Stateless extraction of classifier input from a WaveformSource.

    Safe to call concurrently on different sources: every call decodes
    into its own buffer.
    """

    def __init__(self, length: int = FEATURE_LENGTH):
        if length != FEATURE_LENGTH:
            raise ValueError(
                f"Feature length is fixed at {FEATURE_LENGTH} samples, got {length}"
            )
        self.length = length

    def extract(self, source: WaveformSource) -> FeatureVector:
        """
        Decode ``source`` and frame it to exactly 15,600 samples.

        Sources shorter than the window are zero-padded at the end; longer
        ones are truncated to their first 15,600 samples.

        Raises:
            DecodeError: Source cannot be opened or read
            AllocationError: Output buffer cannot be constructed
        """
        channel = self._read_first_channel(source.file_path, self.length)
        valid = min(len(channel), self.length)

        try:
            samples = np.zeros(self.length, dtype=np.float32)
        except MemoryError as e:
            raise AllocationError(
                f"Cannot allocate feature buffer of {self.length} samples",
                length=self.length
            ) from e

        samples[:valid] = channel[:valid]

        logger.debug(
            f"Extracted {valid} samples from {source.name} "
            f"({self.length - valid} padding)"
        )

        return FeatureVector(
            samples=samples,
            valid_frames=valid,
            sample_rate=source.sample_rate,
            source_path=source.file_path,
        )

    def _read_first_channel(self, file_path: Path, frames: int) -> np.ndarray:
        """Read up to ``frames`` samples of channel 0 at the native rate."""
        try:
            data, _ = sf.read(
                str(file_path), frames=frames, dtype='float32', always_2d=True
            )
            return data[:, 0]
        except (sf.LibsndfileError, RuntimeError) as e:
            logger.debug(f"soundfile cannot read {file_path.name} ({e}), trying librosa")

        # librosa/audioread path for containers libsndfile cannot open
        duration = self._window_seconds_hint(file_path, frames)
        try:
            data, _ = librosa.load(
                str(file_path), sr=None, mono=False, duration=duration, dtype=np.float32
            )
        except Exception as e:
            raise DecodeError(
                f"Failed to decode audio from {file_path}: {e}",
                file_path=str(file_path)
            ) from e

        if data.ndim == 1:
            return data
        return data[0]

    @staticmethod
    def _window_seconds_hint(file_path: Path, frames: int) -> Optional[float]:
        """Seconds covering ``frames`` samples, so the fallback need not decode everything."""
        try:
            sample_rate = librosa.get_samplerate(str(file_path))
        except Exception as e:
            logger.debug(f"Cannot probe sample rate of {file_path.name}: {e}")
            return None
        # One extra second absorbs decoder frame alignment
        return frames / sample_rate + 1.0


def create_feature_extractor(config: Optional[Dict[str, Any]] = None) -> FeatureExtractor:
    """
    Factory function to create a FeatureExtractor from the ``audio`` config section.
    """
    if config is None:
        config = {}

    return FeatureExtractor(length=config.get('feature_length', FEATURE_LENGTH))
