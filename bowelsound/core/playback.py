"""
Playback engine for the bowel sound analysis application.

Owns one decoded source, plays it through a sounddevice output stream,
and exposes play / pause / seek plus the scrub gesture
(seek_begin, seek_update, seek_end). The playback position is the frame
cursor advanced by the stream callback; it is read through the pull-based
``position_ticks()`` sequence rather than pushed by a timer.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, Optional

import librosa
import numpy as np
import soundfile as sf

from bowelsound.core.device import AudioDevice
from bowelsound.core.models import PlaybackState, PositionTick, WaveformSource
from bowelsound.utils.errors import InvalidStateError, PlaybackError

TICK_INTERVAL: float = 0.1  # seconds
BLOCK_SIZE: int = 1024  # frames per callback

StreamFactory = Callable[..., Any]


def open_output_stream(**kwargs: Any) -> Any:
    """Open a sounddevice output stream (PortAudio is loaded on first use)."""
    import sounddevice as sd
    return sd.OutputStream(**kwargs)


class PlaybackEngine:
    """
    Plays a loaded WaveformSource.

    Engine operations are not reentrant: call them from one thread.
    The stream callback runs on the audio thread and shares only the
    frame cursor, guarded by ``_lock``.
    """

    OWNER = "playback"

    def __init__(
        self,
        device: Optional[AudioDevice] = None,
        stream_factory: Optional[StreamFactory] = None,
        tick_interval: float = TICK_INTERVAL,
        block_size: int = BLOCK_SIZE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the player.

        Args:
            device: Shared audio device lease (a private one if None)
            stream_factory: Callable returning an output stream; takes
                            sounddevice.OutputStream keyword arguments
            tick_interval: Default cadence of position ticks, in seconds
            block_size: Frames rendered per stream callback
            sleep: Sleep function used between ticks
        """
        if tick_interval <= 0:
            raise ValueError(f"Tick interval must be positive, got {tick_interval}")

        self.device = device or AudioDevice()
        self.tick_interval = tick_interval
        self.block_size = block_size
        self._stream_factory = stream_factory or open_output_stream
        self._sleep = sleep
        self._lock = threading.RLock()
        self.logger = logging.getLogger("playback")

        self._state = PlaybackState.IDLE
        self._source: Optional[WaveformSource] = None
        self._data: Optional[np.ndarray] = None  # Shape: (frames, channels)
        self._cursor = 0
        self._stream: Any = None
        self._retired: list = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            self._refresh()
            state = self._state
        self._close_retired()
        return state

    @property
    def source(self) -> Optional[WaveformSource]:
        return self._source

    @property
    def duration(self) -> float:
        """Duration of the loaded source in seconds (0.0 when nothing is loaded)."""
        return self._source.duration if self._source else 0.0

    @property
    def position(self) -> float:
        """Current position in seconds, within [0, duration]."""
        with self._lock:
            if self._source is None:
                return 0.0
            return min(self._cursor / self._source.sample_rate, self.duration)

    def is_active(self) -> bool:
        """Whether audio is being rendered."""
        return self.state is PlaybackState.PLAYING

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def load(self, source: WaveformSource) -> None:
        """
        Decode ``source`` and make it the current track, rewound to 0.

        A failed load leaves the previously loaded track untouched.

        Raises:
            PlaybackError: Source format is unsupported or corrupted
        """
        data = self._decode(source)

        with self._lock:
            self._retire_stream()
            self._source = source
            self._data = data
            self._cursor = 0
            self._state = PlaybackState.IDLE
        self._close_retired()

        self.logger.info(
            f"Loaded {source.name} ({source.duration:.3f}s, "
            f"{source.sample_rate} Hz, {source.channels} ch)"
        )

    def play(self) -> None:
        """
        Start or resume playback from the current position.

        No-op while already playing. A zero-length source, or a cursor
        already at the end, goes straight to Finished. Once Finished,
        playback restarts only after ``seek`` or a fresh ``load``.

        Raises:
            InvalidStateError: Nothing is loaded
            ConflictError: The audio device is held by the recorder
            PlaybackError: The output stream cannot be opened
        """
        try:
            with self._lock:
                started = self._start_locked()
        finally:
            self._close_retired()

        if started:
            self.logger.info(f"Playing {self._source.name} from {self.position:.3f}s")

    def pause(self) -> None:
        """Freeze the position. Idempotent; no-op unless playing."""
        with self._lock:
            self._refresh()
            paused = self._state is PlaybackState.PLAYING
            if paused:
                self._retire_stream()
                self._state = PlaybackState.PAUSED
        self._close_retired()

        if paused:
            self.logger.info(f"Paused at {self.position:.3f}s")

    def stop(self) -> None:
        """Stop playback and rewind to 0, keeping the track loaded."""
        with self._lock:
            if self._source is None:
                return
            self._retire_stream()
            self._cursor = 0
            self._state = PlaybackState.IDLE
        self._close_retired()
        self.logger.info("Playback stopped")

    def seek(self, to_seconds: float) -> float:
        """
        Move the position to ``to_seconds`` clamped to [0, duration].

        Playing continues from the new position; a Finished track becomes
        Paused so that ``play()`` restarts it.

        Returns:
            float: The clamped position

        Raises:
            InvalidStateError: Nothing is loaded
        """
        try:
            with self._lock:
                self._refresh()
                source = self._require_source("seek")
                position = self._move_cursor(to_seconds, source)
                if self._state is PlaybackState.FINISHED:
                    self._state = PlaybackState.PAUSED
        finally:
            self._close_retired()
        self.logger.info(f"Seek to {position:.3f}s")
        return position

    def seek_begin(self) -> None:
        """
        Start a scrub gesture: audio pauses and the position is frozen.

        Raises:
            InvalidStateError: Nothing is loaded
        """
        try:
            with self._lock:
                self._refresh()
                self._require_source("scrub")
                self._retire_stream()
                self._state = PlaybackState.SCRUBBING_PAUSED
        finally:
            self._close_retired()
        self.logger.debug(f"Scrub began at {self.position:.3f}s")

    def seek_update(self, to_seconds: float) -> float:
        """
        Preview a scrub position without resuming audio.

        Returns:
            float: The clamped position

        Raises:
            InvalidStateError: No scrub gesture is in progress
        """
        with self._lock:
            source = self._require_source("scrub")
            if self._state is not PlaybackState.SCRUBBING_PAUSED:
                raise InvalidStateError(
                    "Scrub preview requires seek_begin() first",
                    state=self._state.value
                )
            position = self._move_cursor(to_seconds, source)
        self.logger.debug(f"Scrub preview at {position:.3f}s")
        return position

    def seek_end(self, to_seconds: Optional[float] = None) -> float:
        """
        Commit the scrub position and resume playback from it.

        Args:
            to_seconds: Final position; the last previewed one if None

        Returns:
            float: The committed position

        Raises:
            InvalidStateError: No scrub gesture is in progress
            ConflictError: The audio device is held by the recorder
        """
        with self._lock:
            source = self._require_source("scrub")
            if self._state is not PlaybackState.SCRUBBING_PAUSED:
                raise InvalidStateError(
                    "Scrub commit requires seek_begin() first",
                    state=self._state.value
                )
            previous_cursor = self._cursor
            if to_seconds is not None:
                self._move_cursor(to_seconds, source)
            position = self.position
            self._state = PlaybackState.PAUSED

            try:
                self._start_locked()
            except Exception:
                self._cursor = previous_cursor
                self._state = PlaybackState.SCRUBBING_PAUSED
                raise

        self.logger.info(f"Scrub committed at {position:.3f}s")
        return position

    def close(self) -> None:
        """Stop playback and drop the loaded track."""
        with self._lock:
            self._retire_stream()
            self._source = None
            self._data = None
            self._cursor = 0
            self._state = PlaybackState.IDLE
        self._close_retired()

    # ------------------------------------------------------------------
    # Position ticks
    # ------------------------------------------------------------------

    def position_ticks(self, interval: Optional[float] = None) -> Iterator[PositionTick]:
        """
        Lazily yield (current, duration) while playing.

        The sequence is unbounded while playback runs, ends when playback
        pauses or stops, and ends with a final tick at the duration when
        the track finishes. Call again after ``play()`` for a fresh sequence.

        Args:
            interval: Seconds between ticks (defaults to ``tick_interval``)
        """
        interval = self.tick_interval if interval is None else interval

        while True:
            with self._lock:
                finished_now = self._refresh()
                state = self._state
                tick = PositionTick(self.position, self.duration)
            self._close_retired()

            if state is PlaybackState.PLAYING:
                self.logger.debug(f"Tick {tick.current:.3f}s / {tick.duration:.3f}s")
                yield tick
                self._sleep(interval)
            else:
                if finished_now:
                    yield tick
                return

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        """Render the next block from the cursor; silence past the end or once retired."""
        if status:
            self.logger.debug(f"Output stream status: {status}")
        with self._lock:
            if self._data is None or self._state is not PlaybackState.PLAYING:
                outdata.fill(0)
                return
            chunk = self._data[self._cursor:self._cursor + frames]
            rendered = len(chunk)
            outdata[:rendered] = chunk
            outdata[rendered:] = 0
            self._cursor += rendered

    def _start_locked(self) -> bool:
        """Open the stream from the cursor. Caller holds ``_lock``. Returns True if audio started."""
        self._refresh()
        source = self._require_source("play")

        if self._state is PlaybackState.PLAYING:
            return False
        if self._state is PlaybackState.FINISHED:
            self.logger.debug("Play ignored: track finished, seek to restart")
            return False
        if self._cursor >= source.frames:
            self._state = PlaybackState.FINISHED
            self.logger.info(f"Finished {source.name} (nothing left to play)")
            return False

        self.device.acquire(self.OWNER)
        try:
            stream = self._stream_factory(
                samplerate=source.sample_rate,
                channels=source.channels,
                dtype='float32',
                blocksize=self.block_size,
                callback=self._callback,
            )
            stream.start()
        except Exception as e:
            self.device.release(self.OWNER)
            raise PlaybackError(
                f"Cannot open output stream: {e}",
                file_path=str(source.file_path)
            ) from e

        self._stream = stream
        self._state = PlaybackState.PLAYING
        return True

    def _refresh(self) -> bool:
        """Move Playing to Finished once the cursor reached the end. Returns True on that transition."""
        if (
            self._state is PlaybackState.PLAYING
            and self._source is not None
            and self._cursor >= self._source.frames
        ):
            self._retire_stream()
            self._state = PlaybackState.FINISHED
            self.logger.info(f"Finished {self._source.name}")
            return True
        return False

    def _retire_stream(self) -> None:
        """Detach the stream under ``_lock``; ``_close_retired`` stops it once the lock is free."""
        if self._stream is not None:
            self._retired.append(self._stream)
            self._stream = None

    def _close_retired(self) -> None:
        # stream.stop() waits for a running callback, which needs _lock
        with self._lock:
            retired, self._retired = self._retired, []
        for stream in retired:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                self.logger.warning(f"Error closing output stream: {e}")
        with self._lock:
            if self._stream is None:
                self.device.release(self.OWNER)

    def _move_cursor(self, to_seconds: float, source: WaveformSource) -> float:
        clamped = min(max(float(to_seconds), 0.0), source.duration)
        self._cursor = min(int(round(clamped * source.sample_rate)), source.frames)
        return clamped

    def _require_source(self, action: str) -> WaveformSource:
        if self._source is None:
            raise InvalidStateError(
                f"Cannot {action}: no audio loaded",
                state=self._state.value
            )
        return self._source

    def _decode(self, source: WaveformSource) -> np.ndarray:
        """Decode the whole source as float32 (frames, channels), sized to ``source.frames``."""
        try:
            data, _ = sf.read(str(source.file_path), dtype='float32', always_2d=True)
        except (sf.LibsndfileError, RuntimeError) as e:
            self.logger.debug(f"soundfile cannot read {source.name} ({e}), trying librosa")
            try:
                decoded, _ = librosa.load(
                    str(source.file_path), sr=None, mono=False, dtype=np.float32
                )
            except Exception as load_error:
                raise PlaybackError(
                    f"Unsupported or corrupted audio: {load_error}",
                    file_path=str(source.file_path)
                ) from load_error
            data = decoded.reshape(1, -1).T if decoded.ndim == 1 else decoded.T

        if data.shape[1] != source.channels:
            raise PlaybackError(
                f"Decoded {data.shape[1]} channels, expected {source.channels}",
                file_path=str(source.file_path)
            )

        if len(data) < source.frames:
            pad = np.zeros((source.frames - len(data), source.channels), dtype=np.float32)
            data = np.concatenate([data, pad])
        return np.ascontiguousarray(data[:source.frames])


def create_playback_engine(
    config: Optional[Dict[str, Any]] = None,
    device: Optional[AudioDevice] = None,
    stream_factory: Optional[StreamFactory] = None,
) -> PlaybackEngine:
    """
    Factory function to create a PlaybackEngine from the ``playback`` config section.
    """
    if config is None:
        config = {}

    return PlaybackEngine(
        device=device,
        stream_factory=stream_factory,
        tick_interval=config.get('tick_interval', TICK_INTERVAL),
        block_size=config.get('block_size', BLOCK_SIZE),
    )
