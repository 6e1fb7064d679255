"""
Session controller for the bowel sound analysis application.

Coordinates the recorder and the player so that at most one of them is
active, keeps the active WaveformSource, and runs the
extract-then-classify analysis on it.

Session states:
    Idle       neither engine holds the audio device
    Recording  the recorder is capturing
    Playing    the player is rendering audio

The session state is derived from the engines on every read, so it
cannot drift from what the hardware is doing.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from bowelsound.classifiers.base import Classifier
from bowelsound.core.device import AudioDevice
from bowelsound.core.features import FeatureExtractor, create_feature_extractor
from bowelsound.core.models import (
    PlaybackState,
    PositionTick,
    PredictionResult,
    RecordingState,
    SessionState,
    WaveformSource,
)
from bowelsound.core.playback import PlaybackEngine, create_playback_engine
from bowelsound.core.recording import RecordingEngine, create_recording_engine
from bowelsound.core.source import resolve_source
from bowelsound.utils.errors import (
    ConfigurationError,
    ConflictError,
    InvalidStateError,
)


class SessionController:
    """
    Single owner of the session state.

    Commands are synchronous; a command that fails raises and leaves the
    session as it was.
    """

    def __init__(
        self,
        recorder: RecordingEngine,
        player: PlaybackEngine,
        extractor: Optional[FeatureExtractor] = None,
        classifier: Optional[Classifier] = None,
        supported_formats: Optional[List[str]] = None,
    ):
        """
        Initialize the controller.

        Args:
            recorder: Recording engine
            player: Playback engine sharing the recorder's AudioDevice
            extractor: Feature extractor (default one if None)
            classifier: Classifier used by ``analyze()``
            supported_formats: Suffixes accepted by ``open_file()``
        """
        if recorder.device is not player.device:
            raise ValueError("Recorder and player must share one AudioDevice")

        self.recorder = recorder
        self.player = player
        self.extractor = extractor or FeatureExtractor()
        self.classifier = classifier
        self.supported_formats = supported_formats
        self.logger = logging.getLogger("session")
        self._active_source: Optional[WaveformSource] = None
        self._last_state = SessionState.IDLE

    @property
    def device(self) -> AudioDevice:
        return self.player.device

    @property
    def state(self) -> SessionState:
        return self._sync()

    def _sync(self) -> SessionState:
        """Derive the session state from the engines, logging transitions."""
        if self.recorder.state is RecordingState.RECORDING:
            state = SessionState.RECORDING
        elif self.player.state is PlaybackState.PLAYING:
            state = SessionState.PLAYING
        else:
            state = SessionState.IDLE

        if state is not self._last_state:
            self.logger.info(f"Session {self._last_state.value} -> {state.value}")
            self._last_state = state
        return state

    @property
    def active_source(self) -> Optional[WaveformSource]:
        """Source that playback and analysis operate on."""
        return self._active_source

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_recording(self) -> Path:
        """
        Idle -> Recording.

        Returns:
            Path: File being recorded

        Raises:
            ConflictError: Already recording, or playback is running
            DeviceUnavailableError: No microphone, or permission denied
        """
        state = self.state
        if state is SessionState.RECORDING:
            raise ConflictError(
                "Recording already in progress",
                requested_by="recording",
                held_by="recording",
            )
        if state is SessionState.PLAYING:
            raise ConflictError(
                "Cannot record while playing",
                requested_by="recording",
                held_by="playback",
            )

        path = self.recorder.start()
        self._sync()
        return path

    def stop_recording(self) -> WaveformSource:
        """
        Recording -> Idle.

        The finished recording becomes the active source and is loaded
        into the player, ready but not playing.

        Raises:
            InvalidStateError: Not recording
            PlaybackError: The recording cannot be loaded for review
        """
        source = self.recorder.stop()
        self._sync()
        self.player.load(source)
        self._active_source = source
        self.logger.info(f"Recording ready for review: {source.name}")
        return source

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def open(self, source: WaveformSource, autoplay: bool = True) -> None:
        """
        Make ``source`` the active source and load it; Idle -> Playing
        when ``autoplay``.

        Raises:
            ConflictError: Recording is in progress
            PlaybackError: Source cannot be loaded
        """
        self._ensure_not_recording("open a file")
        self.player.load(source)
        self._active_source = source
        self.logger.info(f"Active source: {source.name}")
        if autoplay:
            self.player.play()
        self._sync()

    def open_file(self, file_path: Path, autoplay: bool = True) -> WaveformSource:
        """
        Resolve an imported file and open it.

        Raises:
            ConflictError: Recording is in progress
            DecodeError: File cannot be resolved
            PlaybackError: Source cannot be loaded
        """
        self._ensure_not_recording("open a file")
        source = resolve_source(file_path, supported_formats=self.supported_formats)
        self.open(source, autoplay=autoplay)
        return source

    def play(self) -> None:
        """
        Idle -> Playing for the loaded source.

        Raises:
            ConflictError: Recording is in progress
            InvalidStateError: Nothing is loaded
        """
        self._ensure_not_recording("play")
        self.player.play()
        self._sync()

    def pause(self) -> None:
        """Playing -> Idle, keeping the position."""
        self.player.pause()
        self._sync()

    def stop_playback(self) -> None:
        """Playing -> Idle, rewinding to the start."""
        self.player.stop()
        self._sync()

    def seek(self, to_seconds: float) -> float:
        """Clamp and move the playback position. See PlaybackEngine.seek."""
        return self.player.seek(to_seconds)

    def seek_begin(self) -> None:
        """Scrub touch-down: playback pauses, position freezes."""
        self._ensure_not_recording("scrub")
        self.player.seek_begin()
        self._sync()

    def seek_update(self, to_seconds: float) -> float:
        """Scrub move: preview a position without audio."""
        return self.player.seek_update(to_seconds)

    def seek_end(self, to_seconds: Optional[float] = None) -> float:
        """
        Scrub touch-up: commit the position and resume playback.

        Raises:
            ConflictError: Recording is in progress
        """
        self._ensure_not_recording("resume playback")
        position = self.player.seek_end(to_seconds)
        self._sync()
        return position

    def position_ticks(self, interval: Optional[float] = None) -> Iterator[PositionTick]:
        """Lazy (current, duration) ticks while playing. See PlaybackEngine.position_ticks."""
        for tick in self.player.position_ticks(interval):
            yield tick
        self._sync()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self) -> PredictionResult:
        """
        Extract features from the active source and classify them.

        Does not change the session state.

        Raises:
            InvalidStateError: No active source
            ConfigurationError: No classifier configured
            DecodeError / AllocationError: Feature extraction failed
            InferenceError: Classification failed
        """
        source = self._active_source
        if source is None:
            raise InvalidStateError("No file selected for analysis")
        if self.classifier is None:
            raise ConfigurationError(
                "No classifier configured", config_key="classifier.handle"
            )

        start_time = time.time()
        self.logger.info(f"Analyzing {source.name}")
        features = self.extractor.extract(source)
        result = self.classifier.predict(features)
        self.logger.info(f"Analysis complete in {time.time() - start_time:.3f}s")
        return result

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop any capture or playback and release the device."""
        if self.recorder.is_active():
            self.recorder.stop()
        self.player.close()
        self._sync()

    def _ensure_not_recording(self, action: str) -> None:
        if self.state is SessionState.RECORDING:
            raise ConflictError(
                f"Cannot {action} while recording",
                requested_by="playback",
                held_by="recording",
            )


def create_session(
    config: Optional[Dict[str, Any]] = None,
    classifier: Optional[Classifier] = None,
    output_stream_factory: Optional[Callable[..., Any]] = None,
    input_stream_factory: Optional[Callable[..., Any]] = None,
    device_query: Optional[Callable[[], List[str]]] = None,
) -> SessionController:
    """
    Factory function to build a session from a full configuration dict.

    Args:
        config: Configuration (see ``utils.config.get_default_config``)
        classifier: Classifier; built from the ``classifier`` section if None
        output_stream_factory: Override for the player's output stream
        input_stream_factory: Override for the recorder's input stream
        device_query: Override for capture device listing

    Returns:
        SessionController: Ready session with engines sharing one device
    """
    if config is None:
        config = {}

    device = AudioDevice()
    player = create_playback_engine(
        config.get('playback', {}),
        device=device,
        stream_factory=output_stream_factory,
    )
    recorder = create_recording_engine(
        config.get('recording', {}),
        device=device,
        stream_factory=input_stream_factory,
        device_query=device_query,
    )

    if classifier is None:
        from bowelsound.classifiers.hub import create_classifier
        classifier = create_classifier(config.get('classifier', {}))

    audio_config = config.get('audio', {})
    return SessionController(
        recorder=recorder,
        player=player,
        extractor=create_feature_extractor(audio_config),
        classifier=classifier,
        supported_formats=audio_config.get('supported_formats'),
    )
