"""Shared fixtures: fake audio streams, test audio files, a stub classifier."""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pytest
import soundfile as sf

from bowelsound.classifiers.base import BaseClassifier
from bowelsound.core.device import AudioDevice
from bowelsound.core.features import FeatureExtractor
from bowelsound.core.playback import PlaybackEngine
from bowelsound.core.recording import RecordingEngine
from bowelsound.core.session import SessionController
from bowelsound.core.source import resolve_source


# ---------------------------------------------------------------------------
# Fake sounddevice streams
# ---------------------------------------------------------------------------


class FakeOutputStream:
    """Output stream whose callback is driven by pump() instead of PortAudio."""

    def __init__(self, samplerate, channels, dtype, blocksize, callback, **kwargs):
        self.samplerate = samplerate
        self.channels = channels
        self.dtype = dtype
        self.blocksize = blocksize
        self.callback = callback
        self.active = False
        self.closed = False
        self.rendered: List[np.ndarray] = []

    def start(self):
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True

    def pump(self, blocks: int = 1) -> None:
        for _ in range(blocks):
            if not self.active:
                return
            outdata = np.full((self.blocksize, self.channels), np.nan, dtype=np.float32)
            self.callback(outdata, self.blocksize, None, None)
            self.rendered.append(outdata)


class FakeInputStream:
    """Input stream that delivers constant-valued blocks on pump()."""

    def __init__(self, samplerate, channels, dtype, callback, blocksize=441, **kwargs):
        self.samplerate = samplerate
        self.channels = channels
        self.dtype = dtype
        self.blocksize = blocksize
        self.callback = callback
        self.active = False
        self.closed = False

    def start(self):
        self.active = True

    def stop(self):
        self.active = False

    def close(self):
        self.closed = True

    def pump(self, blocks: int = 1, value: float = 0.25) -> None:
        for _ in range(blocks):
            if not self.active:
                return
            indata = np.full((self.blocksize, self.channels), value, dtype=np.float32)
            self.callback(indata, self.blocksize, None, None)


class StreamFactory:
    """Creates fake streams and remembers them."""

    def __init__(self, stream_cls):
        self.stream_cls = stream_cls
        self.streams: list = []

    def __call__(self, **kwargs):
        stream = self.stream_cls(**kwargs)
        self.streams.append(stream)
        return stream

    @property
    def last(self):
        return self.streams[-1] if self.streams else None

    def pump(self, blocks: int = 1) -> None:
        if self.last is not None:
            self.last.pump(blocks)


def failing_factory(**kwargs):
    raise RuntimeError("Error opening stream: Device unavailable [PaErrorCode -9985]")


class StubClassifier(BaseClassifier):
    """Classifier returning fixed probabilities and recording its inputs."""

    def __init__(self, probabilities: Optional[Dict[str, float]] = None):
        super().__init__("stub")
        self.probabilities = probabilities or {"normal": 0.8, "hyperactive": 0.15, "hypoactive": 0.05}
        self.inputs: List[np.ndarray] = []

    def _predict_impl(self, samples):
        self.inputs.append(samples)
        return dict(self.probabilities)


class SteppingClock:
    """datetime.now stand-in advancing one second per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 2, 3, 4, 5)):
        self.current = start

    def __call__(self) -> datetime:
        now = self.current
        self.current += timedelta(seconds=1)
        return now


# ---------------------------------------------------------------------------
# Audio file helpers
# ---------------------------------------------------------------------------


def ramp(n: int, channels: int = 1) -> np.ndarray:
    """Distinct, exactly representable float32 samples in (-1, 1)."""
    base = ((np.arange(n, dtype=np.float32) % 200) - 100) / 128.0
    if channels == 1:
        return base
    return np.stack([base * (1.0 if c == 0 else -0.5) for c in range(channels)], axis=1)


def write_audio(path: Path, data: np.ndarray, sample_rate: int = 44100, subtype: str = 'FLOAT') -> Path:
    fmt = "AIFF" if Path(path).suffix.lower() in (".aif", ".aifc") else None
    sf.write(str(path), data, sample_rate, subtype=subtype, format=fmt)
    return path


@pytest.fixture
def make_wav(tmp_path):
    """Write a WAV of ``n`` ramp samples and return its path."""
    def _make(n: int, name: str = "clip.wav", sample_rate: int = 44100, channels: int = 1) -> Path:
        data = ramp(n, channels) if n else np.zeros((0, channels), dtype=np.float32)
        return write_audio(tmp_path / name, data, sample_rate)
    return _make


@pytest.fixture
def make_source(make_wav):
    """Write a WAV and resolve it into a WaveformSource."""
    def _make(n: int, name: str = "clip.wav", sample_rate: int = 44100, channels: int = 1):
        return resolve_source(make_wav(n, name, sample_rate, channels))
    return _make


# ---------------------------------------------------------------------------
# Engines and session
# ---------------------------------------------------------------------------


@pytest.fixture
def device():
    return AudioDevice()


@pytest.fixture
def output_factory():
    return StreamFactory(FakeOutputStream)


@pytest.fixture
def input_factory():
    return StreamFactory(FakeInputStream)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def player(device, output_factory, sleeps):
    """PlaybackEngine on fake streams; each tick sleep renders one block."""
    def fake_sleep(seconds):
        sleeps.append(seconds)
        output_factory.pump()

    return PlaybackEngine(
        device=device,
        stream_factory=output_factory,
        tick_interval=0.1,
        block_size=441,
        sleep=fake_sleep,
    )


@pytest.fixture
def recorder(device, input_factory, tmp_path):
    return RecordingEngine(
        directory=tmp_path / "recordings",
        device=device,
        stream_factory=input_factory,
        device_query=lambda: ["Fake Microphone"],
        clock=SteppingClock(),
    )


@pytest.fixture
def classifier():
    return StubClassifier()


@pytest.fixture
def session(recorder, player, classifier):
    return SessionController(
        recorder=recorder,
        player=player,
        extractor=FeatureExtractor(),
        classifier=classifier,
    )


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
