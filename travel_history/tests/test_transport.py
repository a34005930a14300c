"""
Tests for transport mode detection.
"""

from datetime import timedelta

import pytest

from travel_history.config import TransportThresholds
from travel_history.models import TransportType
from travel_history.sample_data import generate_legs
from travel_history.transport import (
    TransportModeDetector,
    classify_speeds,
    detect_segment_mode,
    speed_profile,
    window_speeds_kmh,
)


def _legs(t0, speeds, altitudes=None, interval=timedelta(minutes=1)):
    return generate_legs(37.0, -122.0, t0, heading=0.0, speeds_kmh=speeds,
                         interval=interval, altitudes=altitudes)


def _feed(samples, window_size=5):
    detector = TransportModeDetector(window_size=window_size)
    return [detector.detect_transport_mode(s) for s in samples]


class TestClassifySpeeds:
    """Tests for the threshold rules."""

    @pytest.mark.parametrize("speed,variance,expected", [
        (4.0, 1.0, TransportType.WALK),
        (15.0, 10.0, TransportType.BIKE),
        (60.0, 400.0, TransportType.CAR),
        (60.0, 50.0, TransportType.TRAIN),
        (250.0, 0.0, TransportType.PLANE),
        (130.0, 400.0, TransportType.UNKNOWN),
    ])
    def test_rules(self, speed, variance, expected):
        assert classify_speeds(speed, variance) == expected

    def test_altitude_swing_means_plane(self):
        assert classify_speeds(30.0, 400.0, altitude_swing_m=1500.0) == TransportType.PLANE

    def test_custom_thresholds(self):
        thresholds = TransportThresholds(walk_max_speed=10.0)
        assert classify_speeds(8.0, 0.0, thresholds=thresholds) == TransportType.WALK
        assert classify_speeds(8.0, 0.0) == TransportType.BIKE


class TestSpeedProfile:
    """Tests for window speed statistics."""

    def test_speeds_match_generated_legs(self, t0):
        samples = _legs(t0, [40.0, 80.0])
        speeds = window_speeds_kmh(samples)
        assert speeds == pytest.approx([40.0, 80.0], rel=5e-3)

    def test_non_advancing_time_skipped(self, t0):
        samples = _legs(t0, [40.0, 80.0])
        duplicate = samples[1]
        speeds = window_speeds_kmh([samples[0], samples[1], duplicate, samples[2]])
        assert len(speeds) == 2

    def test_no_valid_pair(self, t0):
        samples = _legs(t0, [40.0])
        assert speed_profile([samples[0], samples[0]]) is None


class TestTransportModeDetector:
    """Tests for the sliding-window detector."""

    def test_none_until_window_full(self, t0):
        results = _feed(_legs(t0, [4.0] * 6))
        assert results[:4] == [None, None, None, None]
        assert results[4] == TransportType.WALK

    def test_walk(self, t0):
        assert _feed(_legs(t0, [4.0] * 4))[-1] == TransportType.WALK

    def test_bike(self, t0):
        assert _feed(_legs(t0, [15.0] * 4))[-1] == TransportType.BIKE

    def test_car_stop_and_go(self, t0):
        """Average ~60 km/h with high variance is a car."""
        assert _feed(_legs(t0, [40.0, 80.0, 40.0, 80.0]))[-1] == TransportType.CAR

    def test_train_steady_speed(self, t0):
        assert _feed(_legs(t0, [150.0] * 4))[-1] == TransportType.TRAIN

    def test_steady_road_speed_reads_as_train(self, t0):
        """A constant 60 km/h sits in the train band with near-zero variance."""
        assert _feed(_legs(t0, [60.0] * 4))[-1] == TransportType.TRAIN

    def test_plane_by_speed(self, t0):
        assert _feed(_legs(t0, [800.0] * 4))[-1] == TransportType.PLANE

    def test_plane_by_altitude(self, t0):
        samples = _legs(t0, [30.0, 90.0, 30.0, 90.0], altitudes=[0.0, 400.0, 800.0, 1200.0, 1600.0])
        assert _feed(samples)[-1] == TransportType.PLANE

    def test_window_slides(self, t0):
        """Once walking samples leave the window, the newer mode is reported."""
        samples = _legs(t0, [4.0] * 4 + [15.0] * 4)
        results = _feed(samples)
        assert results[4] == TransportType.WALK
        assert results[-1] == TransportType.BIKE

    def test_reset(self, t0):
        samples = _legs(t0, [4.0] * 4)
        detector = TransportModeDetector()
        for s in samples:
            detector.detect_transport_mode(s)
        detector.reset()
        assert detector.window == []
        assert detector.detect_transport_mode(samples[0]) is None

    def test_window_size_validated(self):
        with pytest.raises(ValueError):
            TransportModeDetector(window_size=1)


class TestDetectSegmentMode:
    """Tests for whole-movement classification."""

    def test_majority_vote(self, t0):
        samples = _legs(t0, [4.0] * 10 + [15.0] * 5)
        assert detect_segment_mode(samples) == TransportType.WALK

    def test_short_movement_falls_back_to_average_speed(self, t0):
        """Three fixes at 50 km/h (~14 m/s) never fill the window."""
        samples = _legs(t0, [50.0, 50.0])
        assert detect_segment_mode(samples) == TransportType.CAR

    def test_too_few_samples(self, t0):
        assert detect_segment_mode(_legs(t0, [])) == TransportType.UNKNOWN
