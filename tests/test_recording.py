"""Tests for RecordingEngine: capture lifecycle, file output and device errors."""

from datetime import datetime

import numpy as np
import pytest
import soundfile as sf

from bowelsound.core.models import RecordingState
from bowelsound.core.recording import RecordingEngine, create_recording_engine
from bowelsound.utils.errors import (
    ConflictError,
    DeviceUnavailableError,
    InvalidStateError,
)

from tests.conftest import SteppingClock, StreamFactory, FakeInputStream, failing_factory


class TestLifecycle:
    def test_start_and_stop(self, recorder, input_factory, device, tmp_path):
        path = recorder.start()
        assert recorder.state is RecordingState.RECORDING
        assert device.owner == RecordingEngine.OWNER
        assert path == tmp_path / "recordings" / "recording_20260102_030405.wav"

        input_factory.pump(10)
        source = recorder.stop()

        assert recorder.state is RecordingState.STOPPED
        assert device.is_free()
        assert input_factory.last.closed
        assert source.file_path == path
        assert source.frames == 4410
        assert source.sample_rate == 44100
        assert source.channels == 1
        assert source.format == "WAV"
        assert source.subtype == "PCM_16"
        assert recorder.source is source

    def test_written_samples(self, recorder, input_factory):
        recorder.start()
        input_factory.last.pump(3, value=0.25)
        source = recorder.stop()
        data, sample_rate = sf.read(str(source.file_path), dtype='float32')
        assert sample_rate == 44100
        assert len(data) == 3 * 441
        np.testing.assert_allclose(data, 0.25, atol=1e-4)

    def test_stream_format(self, recorder, input_factory):
        recorder.start()
        stream = input_factory.last
        assert stream.samplerate == 44100
        assert stream.channels == 1
        assert stream.dtype == 'float32'
        recorder.stop()

    def test_empty_recording(self, recorder):
        recorder.start()
        source = recorder.stop()
        assert source.frames == 0
        assert source.duration == 0.0

    def test_each_recording_gets_a_new_file(self, recorder, input_factory):
        first = recorder.start()
        input_factory.pump(2)
        recorder.stop()

        second = recorder.start()
        input_factory.pump(5)
        source = recorder.stop()

        assert first != second
        assert first.exists()
        assert source.frames == 5 * 441

    def test_same_second_does_not_overwrite(self, device, input_factory, tmp_path):
        # default clock: both recordings start within the same second
        recorder = RecordingEngine(
            directory=tmp_path,
            device=device,
            stream_factory=input_factory,
            device_query=lambda: ["Fake Microphone"],
        )
        first = recorder.start()
        input_factory.pump(10)
        recorder.stop()
        second = recorder.start()
        input_factory.pump(1)
        recorder.stop()

        assert first != second
        assert sf.info(str(first)).frames == 4410
        assert sf.info(str(second)).frames == 441

    def test_existing_name_gets_suffix(self, device, input_factory, tmp_path):
        stamp = datetime(2026, 1, 2, 3, 4, 5)
        (tmp_path / "recording_20260102_030405.wav").write_bytes(b"keep")
        (tmp_path / "recording_20260102_030405_1.wav").write_bytes(b"keep")

        recorder = RecordingEngine(
            directory=tmp_path,
            device=device,
            stream_factory=input_factory,
            device_query=lambda: ["Fake Microphone"],
            clock=lambda: stamp,
        )
        path = recorder.start()
        recorder.stop()

        assert path.name == "recording_20260102_030405_2.wav"
        assert (tmp_path / "recording_20260102_030405.wav").read_bytes() == b"keep"

    def test_in_progress_snapshot(self, recorder, input_factory):
        assert recorder.in_progress is None
        recorder.start()
        input_factory.pump(4)
        snapshot = recorder.in_progress
        assert snapshot.frames == 4 * 441
        assert snapshot.duration == pytest.approx(0.04)
        recorder.stop()
        assert recorder.in_progress is None

    def test_stop_when_idle(self, recorder):
        with pytest.raises(InvalidStateError):
            recorder.stop()
        assert recorder.state is RecordingState.IDLE

    def test_stop_twice(self, recorder):
        recorder.start()
        recorder.stop()
        with pytest.raises(InvalidStateError):
            recorder.stop()
        assert recorder.state is RecordingState.STOPPED

    def test_start_while_recording(self, recorder, input_factory):
        recorder.start()
        with pytest.raises(ConflictError):
            recorder.start()
        assert len(input_factory.streams) == 1
        assert recorder.state is RecordingState.RECORDING
        recorder.stop()


class TestDeviceErrors:
    def test_no_input_devices(self, device, input_factory, tmp_path):
        recorder = RecordingEngine(
            directory=tmp_path,
            device=device,
            stream_factory=input_factory,
            device_query=lambda: [],
        )
        with pytest.raises(DeviceUnavailableError):
            recorder.start()
        assert recorder.state is RecordingState.IDLE
        assert device.is_free()
        assert input_factory.streams == []

    def test_device_query_failure(self, device, tmp_path):
        def broken_query():
            raise OSError("PortAudio not initialized")

        recorder = RecordingEngine(directory=tmp_path, device=device, device_query=broken_query)
        with pytest.raises(DeviceUnavailableError, match="PortAudio"):
            recorder.available_inputs()

    def test_stream_failure_leaves_no_file(self, device, tmp_path):
        directory = tmp_path / "recordings"
        recorder = RecordingEngine(
            directory=directory,
            device=device,
            stream_factory=failing_factory,
            device_query=lambda: ["Fake Microphone"],
            clock=SteppingClock(),
        )
        with pytest.raises(DeviceUnavailableError) as exc_info:
            recorder.start()
        assert exc_info.value.device == "Fake Microphone"
        assert recorder.state is RecordingState.IDLE
        assert device.is_free()
        assert list(directory.iterdir()) == []

    def test_unwritable_directory(self, device, input_factory, tmp_path):
        blocker = tmp_path / "recordings"
        blocker.write_text("not a directory")
        recorder = RecordingEngine(
            directory=blocker,
            device=device,
            stream_factory=input_factory,
            device_query=lambda: ["Fake Microphone"],
        )
        with pytest.raises(DeviceUnavailableError, match="Cannot create recording file"):
            recorder.start()
        assert recorder.state is RecordingState.IDLE
        assert device.is_free()
        assert input_factory.streams == []

    def test_player_holds_device(self, recorder, device, input_factory):
        device.acquire("playback")
        with pytest.raises(ConflictError):
            recorder.start()
        assert input_factory.streams == []
        assert device.owner == "playback"

    def test_available_inputs(self, recorder):
        assert recorder.available_inputs() == ["Fake Microphone"]


class TestFactory:
    def test_reads_recording_section(self, tmp_path):
        factory = StreamFactory(FakeInputStream)
        recorder = create_recording_engine(
            {
                "directory": str(tmp_path / "out"),
                "sample_rate": 16000,
                "filename_pattern": "take_%H%M%S.wav",
            },
            stream_factory=factory,
            device_query=lambda: ["mic"],
        )
        assert recorder.sample_rate == 16000
        assert recorder.channels == 1
        assert recorder.subtype == "PCM_16"

        path = recorder.start()
        assert path.parent == tmp_path / "out"
        assert path.name.startswith("take_")
        assert factory.last.samplerate == 16000
        recorder.stop()
