"""Tests for resolving files into WaveformSources."""

import numpy as np
import pytest

from bowelsound.core.source import compute_file_hash, resolve_source
from bowelsound.utils.errors import DecodeError, UnsupportedFormatError

from tests.conftest import ramp, write_audio


class TestResolveSource:
    def test_wav_metadata(self, make_wav):
        path = make_wav(132300)
        source = resolve_source(path)
        assert source.file_path == path
        assert source.sample_rate == 44100
        assert source.channels == 1
        assert source.frames == 132300
        assert source.duration == pytest.approx(3.0)
        assert source.format == "WAV"
        assert source.subtype == "FLOAT"

    def test_stereo_channel_count(self, make_wav):
        source = resolve_source(make_wav(1000, channels=2))
        assert source.channels == 2

    def test_aiff_is_supported(self, tmp_path):
        path = write_audio(tmp_path / "clip.aif", ramp(500), 22050, subtype="PCM_16")
        source = resolve_source(path)
        assert source.format == "AIFF"
        assert source.sample_rate == 22050
        assert source.frames == 500

    def test_records_content_hash(self, make_wav):
        path = make_wav(100)
        assert resolve_source(path).file_hash == compute_file_hash(path)

    def test_hash_can_be_skipped(self, make_wav):
        assert resolve_source(make_wav(100), compute_hash=False).file_hash is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(DecodeError, match="not found"):
            resolve_source(tmp_path / "missing.wav")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not audio")
        with pytest.raises(UnsupportedFormatError) as exc_info:
            resolve_source(path)
        assert exc_info.value.format == ".txt"

    def test_custom_supported_formats(self, make_wav):
        with pytest.raises(UnsupportedFormatError):
            resolve_source(make_wav(100), supported_formats=[".mp3"])

    def test_corrupted_file(self, tmp_path):
        path = tmp_path / "broken.wav"
        path.write_bytes(b"RIFF\x00\x00\x00\x00garbage" * 4)
        with pytest.raises(DecodeError):
            resolve_source(path)
