"""
Recording engine for the bowel sound analysis application.

Captures the microphone through a sounddevice input stream and writes a
mono 44.1 kHz linear PCM WAV file. The stream callback only queues
blocks; a writer thread appends them to the file.
"""

import logging
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import soundfile as sf

from bowelsound.core.device import AudioDevice
from bowelsound.core.models import RecordingState, WaveformSource
from bowelsound.core.source import resolve_source
from bowelsound.utils.errors import (
    ConflictError,
    DecodeError,
    DeviceUnavailableError,
    InvalidStateError,
)

SAMPLE_RATE: int = 44100
CHANNELS: int = 1
SUBTYPE: str = 'PCM_16'
FILENAME_PATTERN: str = 'recording_%Y%m%d_%H%M%S.wav'

StreamFactory = Callable[..., Any]


def open_input_stream(**kwargs: Any) -> Any:
    """Open a sounddevice input stream (PortAudio is loaded on first use)."""
    import sounddevice as sd
    return sd.InputStream(**kwargs)


def query_input_devices() -> List[str]:
    """Names of the available capture devices."""
    import sounddevice as sd
    return [
        device['name'] for device in sd.query_devices()
        if device['max_input_channels'] > 0
    ]


class RecordingEngine:
    """
    Owns the microphone capture lifecycle.

    Idle -> Recording -> Stopped; ``start()`` from Stopped begins a new
    recording in a new file.
    """

    OWNER = "recording"

    def __init__(
        self,
        directory: Path,
        device: Optional[AudioDevice] = None,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
        subtype: str = SUBTYPE,
        filename_pattern: str = FILENAME_PATTERN,
        stream_factory: Optional[StreamFactory] = None,
        device_query: Optional[Callable[[], List[str]]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the recorder.

        Args:
            directory: Where recordings are written
            device: Shared audio device lease (a private one if None)
            sample_rate: Capture rate in Hz
            channels: Capture channel count
            subtype: libsndfile PCM subtype of the written file
            filename_pattern: strftime pattern for new recording names
            stream_factory: Callable returning an input stream; takes
                            sounddevice.InputStream keyword arguments
            device_query: Callable listing capture device names
            clock: Source of the timestamp used in file names
        """
        self.directory = Path(directory)
        self.device = device or AudioDevice()
        self.sample_rate = sample_rate
        self.channels = channels
        self.subtype = subtype
        self.filename_pattern = filename_pattern
        self._stream_factory = stream_factory or open_input_stream
        self._device_query = device_query or query_input_devices
        self._clock = clock
        self.logger = logging.getLogger("recording")

        self._state = RecordingState.IDLE
        self._lock = threading.Lock()
        self._frames_captured = 0
        self._path: Optional[Path] = None
        self._stream: Any = None
        self._writer: Optional[sf.SoundFile] = None
        self._writer_thread: Optional[threading.Thread] = None
        self._blocks: "queue.Queue[Optional[np.ndarray]]" = queue.Queue()
        self._source: Optional[WaveformSource] = None

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def source(self) -> Optional[WaveformSource]:
        """The last finalized recording, once stopped."""
        return self._source

    @property
    def in_progress(self) -> Optional[WaveformSource]:
        """Snapshot of the recording being written, while recording."""
        if self._state is not RecordingState.RECORDING or self._path is None:
            return None
        with self._lock:
            frames = self._frames_captured
        return WaveformSource(
            file_path=self._path,
            sample_rate=self.sample_rate,
            channels=self.channels,
            frames=frames,
            format='WAV',
            subtype=self.subtype,
        )

    def is_active(self) -> bool:
        return self._state is RecordingState.RECORDING

    def available_inputs(self) -> List[str]:
        """
        List capture device names.

        Raises:
            DeviceUnavailableError: The audio system cannot be queried
        """
        try:
            return list(self._device_query())
        except Exception as e:
            raise DeviceUnavailableError(f"Cannot query audio input devices: {e}") from e

    def start(self) -> Path:
        """
        Begin capturing into a new file.

        Returns:
            Path: File being written

        Raises:
            ConflictError: Already recording, or the player holds the device
            DeviceUnavailableError: No capture device, access denied, or the
                recording file cannot be created
        """
        if self._state is RecordingState.RECORDING:
            raise ConflictError(
                "Recording already in progress",
                requested_by=self.OWNER,
                held_by=self.OWNER,
            )

        self.device.acquire(self.OWNER)
        try:
            inputs = self.available_inputs()
            if not inputs:
                raise DeviceUnavailableError("No audio input device available")
            self.logger.info(f"Input devices: {', '.join(inputs)}")
            path = self._open_writer()
            self._frames_captured = 0
            self._blocks = queue.Queue()
            try:
                stream = self._stream_factory(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype='float32',
                    callback=self._callback,
                )
                stream.start()
            except Exception as e:
                self._discard_writer(path)
                raise DeviceUnavailableError(
                    f"Cannot open input stream: {e}", device=inputs[0]
                ) from e
        except Exception:
            self.device.release(self.OWNER)
            raise

        self._stream = stream
        self._path = path
        self._state = RecordingState.RECORDING
        self._writer_thread = threading.Thread(
            target=self._write_blocks, name="recording-writer", daemon=True
        )
        self._writer_thread.start()

        self.logger.info(f"Recording started: {path}")
        return path

    def stop(self) -> WaveformSource:
        """
        Finalize the file and return its WaveformSource.

        Raises:
            InvalidStateError: Not recording (state is left unchanged)
            DecodeError: The finalized file cannot be read back
        """
        if self._state is not RecordingState.RECORDING:
            raise InvalidStateError("No active recording to stop", state=self._state.value)

        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            self.logger.warning(f"Error closing input stream: {e}")

        self._blocks.put(None)
        if self._writer_thread is not None:
            self._writer_thread.join()
            self._writer_thread = None
        if self._writer is not None:
            self._writer.close()
            self._writer = None

        self.device.release(self.OWNER)
        self._state = RecordingState.STOPPED
        path = self._path
        self._path = None

        self.logger.info(f"Recording stopped: {self._frames_captured} frames")
        try:
            self._source = resolve_source(path)
        except DecodeError:
            self.logger.error(f"Recording could not be finalized: {path}")
            raise
        self.logger.info(f"Recording saved to: {path}")
        return self._source

    def _callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        if status:
            self.logger.debug(f"Input stream status: {status}")
        self._blocks.put(indata.copy())
        with self._lock:
            self._frames_captured += frames

    def _write_blocks(self) -> None:
        while True:
            block = self._blocks.get()
            if block is None:
                return
            self._writer.write(block)

    def _open_writer(self) -> Path:
        """
        Create the WAV file for a new recording.

        Names carry the start time to the second; a name already on disk
        gets a ``_1``, ``_2``... suffix so earlier recordings are never
        overwritten.

        Raises:
            DeviceUnavailableError: The file cannot be created
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.directory / self._clock().strftime(self.filename_pattern)
            stem, counter = path.stem, 0
            while path.exists():
                counter += 1
                path = path.with_name(f"{stem}_{counter}{path.suffix}")
            self._writer = sf.SoundFile(
                str(path),
                mode='w',
                samplerate=self.sample_rate,
                channels=self.channels,
                subtype=self.subtype,
                format='WAV',
            )
        except (OSError, RuntimeError) as e:
            raise DeviceUnavailableError(
                f"Cannot create recording file in {self.directory}: {e}"
            ) from e
        return path

    def _discard_writer(self, path: Path) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        path.unlink(missing_ok=True)


def create_recording_engine(
    config: Optional[Dict[str, Any]] = None,
    device: Optional[AudioDevice] = None,
    stream_factory: Optional[StreamFactory] = None,
    device_query: Optional[Callable[[], List[str]]] = None,
) -> RecordingEngine:
    """
    Factory function to create a RecordingEngine from the ``recording`` config section.
    """
    if config is None:
        config = {}

    return RecordingEngine(
        directory=Path(config.get('directory', 'recordings')),
        device=device,
        sample_rate=config.get('sample_rate', SAMPLE_RATE),
        channels=config.get('channels', CHANNELS),
        subtype=config.get('subtype', SUBTYPE),
        filename_pattern=config.get('filename_pattern', FILENAME_PATTERN),
        stream_factory=stream_factory,
        device_query=device_query,
    )
