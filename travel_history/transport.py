"""
Transport mode detection from speed and altitude patterns.

Classification (km/h), most specific category first:
- PLANE: average speed >= 200 or altitude swing >= 1000 m
- TRAIN: average speed in [40, 200] with speed variance < 100 (steady rail travel)
- CAR: average speed in (25, 120]
- BIKE: average speed in (7, 25]
- WALK: average speed <= 7
- UNKNOWN otherwise

TRAIN is checked before CAR because the speed ranges overlap; low variance
separates trains from stop-and-go traffic.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence

import numpy as np

from .config import TransportThresholds
from .coordinates import haversine_distance, path_length
from .models import LocationSample, TransportType, ensure_utc

logger = logging.getLogger(__name__)


@dataclass
class SpeedProfile:
    """Speed statistics of a window of samples."""
    speeds_kmh: np.ndarray
    average_speed: float
    max_speed: float
    speed_variance: float
    altitude_swing: float


def window_speeds_kmh(samples: Sequence[LocationSample]) -> np.ndarray:
    """
    Speeds (km/h) between consecutive samples.

    Pairs whose time does not advance are skipped.
    """
    if len(samples) < 2:
        return np.array([])

    lats = np.array([s.latitude for s in samples], dtype=float)
    lons = np.array([s.longitude for s in samples], dtype=float)
    times = np.array([ensure_utc(s.timestamp).timestamp() for s in samples], dtype=float)

    distances = haversine_distance(lats[:-1], lons[:-1], lats[1:], lons[1:])
    dt = np.diff(times)
    valid = dt > 0
    return (distances[valid] / dt[valid]) * 3.6


def altitude_swing(samples: Sequence[LocationSample]) -> float:
    """Max minus min altitude over samples that report one (0 if fewer than two)."""
    altitudes = [s.altitude for s in samples if s.altitude is not None]
    if len(altitudes) < 2:
        return 0.0
    return float(max(altitudes) - min(altitudes))


def speed_profile(samples: Sequence[LocationSample]) -> Optional[SpeedProfile]:
    """Compute the speed profile of a window, or None without any valid speed."""
    speeds = window_speeds_kmh(samples)
    if len(speeds) == 0:
        return None
    return SpeedProfile(
        speeds_kmh=speeds,
        average_speed=float(np.mean(speeds)),
        max_speed=float(np.max(speeds)),
        speed_variance=float(np.var(speeds)),
        altitude_swing=altitude_swing(samples),
    )


def classify_speeds(
    average_speed: float,
    speed_variance: float,
    altitude_swing_m: float = 0.0,
    thresholds: Optional[TransportThresholds] = None,
) -> TransportType:
    """
    Map speed statistics to a transport type.

    Args:
        average_speed: Mean speed in km/h
        speed_variance: Population variance of speeds in (km/h)^2
        altitude_swing_m: Max - min altitude in meters
        thresholds: Classification limits (defaults if None)

    Returns:
        TransportType
    """
    t = thresholds or TransportThresholds()

    if average_speed >= t.plane_min_speed or altitude_swing_m >= t.plane_altitude_swing:
        return TransportType.PLANE
    if t.train_min_speed <= average_speed <= t.train_max_speed and speed_variance < t.train_max_variance:
        return TransportType.TRAIN
    if t.bike_max_speed < average_speed <= t.car_max_speed:
        return TransportType.CAR
    if t.walk_max_speed < average_speed <= t.bike_max_speed:
        return TransportType.BIKE
    if average_speed <= t.walk_max_speed:
        return TransportType.WALK
    return TransportType.UNKNOWN


class TransportModeDetector:
    """
    Sliding-window transport classifier fed one sample at a time.

    Owned by a single tracking session: call ``reset()`` whenever tracking
    starts or stops, and never share an instance between sessions.
    """

    def __init__(
        self,
        window_size: int = 5,
        thresholds: Optional[TransportThresholds] = None,
    ):
        """
        Initialize the detector.

        Args:
            window_size: Number of most recent samples considered
            thresholds: Classification limits
        """
        if window_size < 2:
            raise ValueError(f"window_size must be at least 2, got {window_size}")
        self.window_size = window_size
        self.thresholds = thresholds or TransportThresholds()
        self._window: Deque[LocationSample] = deque(maxlen=window_size)

    @property
    def window(self) -> List[LocationSample]:
        return list(self._window)

    def detect_transport_mode(self, sample: LocationSample) -> Optional[TransportType]:
        """
        Add a sample and classify the current window.

        Returns:
            TransportType, or None while the window is not yet full (or holds
            no pair of samples with advancing time)
        """
        self._window.append(sample)
        if len(self._window) < self.window_size:
            return None

        profile = speed_profile(self._window)
        if profile is None:
            return None

        mode = classify_speeds(
            profile.average_speed,
            profile.speed_variance,
            profile.altitude_swing,
            self.thresholds,
        )
        logger.debug("Transport mode %s (avg %.1f km/h, max %.1f km/h, var %.1f)",
                     mode.value, profile.average_speed, profile.max_speed, profile.speed_variance)
        return mode

    def reset(self) -> None:
        self._window.clear()


def detect_segment_mode(
    samples: Sequence[LocationSample],
    window_size: int = 5,
    thresholds: Optional[TransportThresholds] = None,
) -> TransportType:
    """
    Classify a whole movement by feeding its samples through a fresh detector.

    The most frequent per-window mode wins; ties go to the mode seen last.
    With fewer samples than the window, the average speed decides via
    ``TransportType.infer_from_speed``.

    Args:
        samples: Movement samples in time order
        window_size: Detector window
        thresholds: Classification limits

    Returns:
        TransportType (UNKNOWN for fewer than two samples)
    """
    if len(samples) < 2:
        return TransportType.UNKNOWN

    detector = TransportModeDetector(window_size=window_size, thresholds=thresholds)
    modes = [m for m in (detector.detect_transport_mode(s) for s in samples) if m is not None]

    if not modes:
        duration = (ensure_utc(samples[-1].timestamp) - ensure_utc(samples[0].timestamp)).total_seconds()
        if duration <= 0:
            return TransportType.UNKNOWN
        distance = path_length([s.latitude for s in samples], [s.longitude for s in samples])
        return TransportType.infer_from_speed(distance / duration)

    counts = Counter(modes)
    best_count = max(counts.values())
    for mode in reversed(modes):
        if counts[mode] == best_count:
            return mode
    return TransportType.UNKNOWN
