"""Tests for core value types."""

from pathlib import Path

import numpy as np
import pytest

from bowelsound.core.models import (
    FEATURE_LENGTH,
    FeatureVector,
    PositionTick,
    PredictionResult,
    WaveformSource,
    validate_probability,
)


def _source(frames=44100, sample_rate=44100, channels=1):
    return WaveformSource(
        file_path=Path("/tmp/clip.wav"),
        sample_rate=sample_rate,
        channels=channels,
        frames=frames,
        format="WAV",
    )


class TestWaveformSource:
    def test_duration_from_frames(self):
        assert _source(frames=132300).duration == pytest.approx(3.0)

    def test_zero_frames_has_zero_duration(self):
        assert _source(frames=0).duration == 0.0

    def test_is_immutable(self):
        source = _source()
        with pytest.raises(AttributeError):
            source.frames = 10

    @pytest.mark.parametrize("kwargs", [
        {"sample_rate": 0},
        {"channels": 0},
        {"frames": -1},
    ])
    def test_rejects_invalid_metadata(self, kwargs):
        with pytest.raises(ValueError):
            _source(**kwargs)

    def test_to_dict(self):
        data = _source(frames=22050).to_dict()
        assert data["duration"] == pytest.approx(0.5)
        assert data["format"] == "WAV"


class TestFeatureVector:
    def test_requires_exact_length(self):
        with pytest.raises(ValueError, match="shape"):
            FeatureVector(np.zeros(100, dtype=np.float32), valid_frames=100, sample_rate=44100)

    def test_requires_float32(self):
        with pytest.raises(ValueError, match="float32"):
            FeatureVector(np.zeros(FEATURE_LENGTH), valid_frames=0, sample_rate=44100)

    def test_samples_are_read_only(self):
        vector = FeatureVector(np.zeros(FEATURE_LENGTH, dtype=np.float32), 10, 44100)
        with pytest.raises(ValueError):
            vector.samples[0] = 1.0

    def test_padding_and_coverage(self):
        vector = FeatureVector(np.zeros(FEATURE_LENGTH, dtype=np.float32), 4410, 44100)
        assert len(vector) == FEATURE_LENGTH
        assert vector.padding == 11190
        assert vector.covered_seconds == pytest.approx(0.1)


class TestPredictionResult:
    def test_top_orders_by_probability(self):
        result = PredictionResult({"a": 0.1, "b": 0.7, "c": 0.3})
        assert result.top(2) == [("b", 0.7), ("c", 0.3)]
        assert result.best == ("b", 0.7)

    def test_best_of_empty_is_none(self):
        assert PredictionResult({}).best is None

    def test_probabilities_need_not_sum_to_one(self):
        result = PredictionResult({"a": 0.9, "b": 0.9})
        assert sum(result.probabilities.values()) > 1.0

    @pytest.mark.parametrize("value", [-0.01, 1.01, float("nan")])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(ValueError):
            PredictionResult({"a": value})

    def test_format_lines(self):
        result = PredictionResult({"normal": 0.1234, "hyperactive": 0.5})
        assert result.format_lines() == "hyperactive: 50.00%\nnormal: 12.34%"

    def test_to_json_round_trips_probabilities(self):
        import json
        result = PredictionResult({"normal": 0.25}, classifier="stub")
        data = json.loads(result.to_json())
        assert data["probabilities"] == {"normal": 0.25}
        assert data["classifier"] == "stub"


class TestPositionTick:
    def test_unpacks_as_pair(self):
        current, duration = PositionTick(1.5, 3.0)
        assert (current, duration) == (1.5, 3.0)

    def test_label(self):
        assert PositionTick(1.5, 3.0).label == "01:50 / 03:00"


class TestValidateProbability:
    def test_bounds_are_inclusive(self):
        validate_probability(0.0)
        validate_probability(1.0)


class TestCorePackage:
    def test_lazy_exports(self):
        import bowelsound.core as core
        from bowelsound.core.session import SessionController

        assert core.SessionController is SessionController
        assert callable(core.resolve_source)

    def test_unknown_attribute(self):
        import bowelsound.core as core

        with pytest.raises(AttributeError):
            core.NotAThing
