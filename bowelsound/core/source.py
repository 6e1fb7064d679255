"""
Waveform source resolution.

Turns a path to a recorded or imported file into an immutable
WaveformSource with the metadata the player and extractor rely on.
"""

import hashlib
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

import librosa
import soundfile as sf

from bowelsound.core.models import WaveformSource
from bowelsound.utils.errors import DecodeError, UnsupportedFormatError


SUPPORTED_FORMATS: Dict[str, str] = {
    '.wav': 'soundfile',
    '.aif': 'soundfile',
    '.aiff': 'soundfile',
    '.mp3': 'soundfile',  # libsndfile >= 1.1; librosa/audioread otherwise
}

logger = logging.getLogger(__name__)


def resolve_source(
    file_path: Path,
    supported_formats: Optional[Iterable[str]] = None,
    compute_hash: bool = True,
) -> WaveformSource:
    """
    Resolve a file into a WaveformSource.

    Args:
        file_path: Path to the audio file
        supported_formats: Accepted suffixes (defaults to SUPPORTED_FORMATS)
        compute_hash: Record a SHA-256 of the file content

    Returns:
        WaveformSource: Resolved source

    Raises:
        DecodeError: File is missing or cannot be decoded
        UnsupportedFormatError: Suffix is not an accepted container
    """
    file_path = Path(file_path)
    suffixes = {s.lower() for s in (supported_formats or SUPPORTED_FORMATS)}

    if not file_path.is_file():
        raise DecodeError(f"Audio file not found: {file_path}", file_path=str(file_path))

    suffix = file_path.suffix.lower()
    if suffix not in suffixes:
        raise UnsupportedFormatError(
            f"Format {suffix or '(none)'} not supported. "
            f"Supported formats: {', '.join(sorted(suffixes))}",
            format=suffix
        )

    try:
        info = sf.info(str(file_path))
        sample_rate, channels, frames = info.samplerate, info.channels, info.frames
        subtype: Optional[str] = info.subtype
    except (sf.LibsndfileError, RuntimeError) as e:
        logger.debug(f"soundfile cannot read {file_path.name} ({e}), trying librosa")
        sample_rate, channels, frames = _probe_with_librosa(file_path)
        subtype = None

    file_hash = compute_file_hash(file_path) if compute_hash else None

    logger.info(
        f"Resolved {file_path.name}: {sample_rate} Hz, {channels} ch, "
        f"{frames} frames ({frames / sample_rate:.3f}s)"
    )

    return WaveformSource(
        file_path=file_path,
        sample_rate=sample_rate,
        channels=channels,
        frames=frames,
        format=_format_name(suffix),
        subtype=subtype,
        file_hash=file_hash,
    )


def _probe_with_librosa(file_path: Path):
    """Decode the whole file at its native rate to learn its layout."""
    try:
        audio_data, sample_rate = librosa.load(str(file_path), sr=None, mono=False)
    except Exception as e:
        raise DecodeError(
            f"Failed to decode audio from {file_path}: {e}",
            file_path=str(file_path)
        ) from e

    if audio_data.ndim == 1:
        return int(sample_rate), 1, audio_data.shape[0]
    return int(sample_rate), audio_data.shape[0], audio_data.shape[1]


def _format_name(suffix: str) -> str:
    name = suffix.lstrip('.').upper()
    return 'AIFF' if name == 'AIF' else name


def compute_file_hash(file_path: Path) -> str:
    """Compute SHA-256 hash of file content."""
    sha256 = hashlib.sha256()

    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(8192), b''):
            sha256.update(chunk)

    return sha256.hexdigest()
