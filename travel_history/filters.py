"""
Location sample cleaning ahead of route construction.

Drops inaccurate fixes, near-duplicates, impossible jumps and long runs of
static points. Only simple spatial thresholding is attempted; this is not a
GPS noise model.
"""

import logging
from typing import List, Sequence

from .coordinates import haversine_distance
from .models import LocationSample, LocationSource, ensure_utc
from .visits import sort_samples

logger = logging.getLogger(__name__)

STATIC_RADIUS_M = 20.0
STATIC_LOOKAHEAD = 10
DUPLICATE_DISTANCE_M = 10.0


def _distance(a: LocationSample, b: LocationSample) -> float:
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def _seconds_between(a: LocationSample, b: LocationSample) -> float:
    return (ensure_utc(b.timestamp) - ensure_utc(a.timestamp)).total_seconds()


class LocationSampleFilter:
    """Filters and validates location samples for route building."""

    def __init__(
        self,
        max_accuracy_m: float = 100.0,
        min_time_between_samples_s: float = 5.0,
        max_speed_mps: float = 150.0,
    ):
        """
        Args:
            max_accuracy_m: Fixes with a worse horizontal accuracy are dropped
            min_time_between_samples_s: Closer fixes count as duplicates unless they moved
            max_speed_mps: Jumps implying a faster speed are treated as GPS errors (~540 km/h)
        """
        self.max_accuracy_m = max_accuracy_m
        self.min_time_between_samples_s = min_time_between_samples_s
        self.max_speed_mps = max_speed_mps

    def filter_and_validate(self, samples: Sequence[LocationSample]) -> List[LocationSample]:
        """Sort and apply every filtering pass."""
        if not samples:
            return []

        filtered = sort_samples(samples)
        filtered = self.filter_by_accuracy(filtered)
        filtered = self.filter_duplicates(filtered)
        filtered = self.filter_by_speed(filtered)
        filtered = self.filter_static_points(filtered)

        removed = len(samples) - len(filtered)
        logger.info("Filtered out %d samples (%.0f%%), %d remaining",
                    removed, removed / len(samples) * 100, len(filtered))
        return filtered

    def filter_by_accuracy(self, samples: Sequence[LocationSample]) -> List[LocationSample]:
        filtered = [s for s in samples if s.accuracy <= self.max_accuracy_m]
        if len(filtered) < len(samples):
            logger.debug("Removed %d samples with accuracy > %.0fm",
                         len(samples) - len(filtered), self.max_accuracy_m)
        return filtered

    def filter_duplicates(self, samples: Sequence[LocationSample]) -> List[LocationSample]:
        """Keep a sample when enough time passed or it moved noticeably."""
        if not samples:
            return []

        filtered = [samples[0]]
        for current in samples[1:]:
            previous = filtered[-1]
            if (_seconds_between(previous, current) >= self.min_time_between_samples_s
                    or _distance(previous, current) > DUPLICATE_DISTANCE_M):
                filtered.append(current)

        if len(filtered) < len(samples):
            logger.debug("Removed %d duplicate samples", len(samples) - len(filtered))
        return filtered

    def filter_by_speed(self, samples: Sequence[LocationSample]) -> List[LocationSample]:
        """Drop samples reachable from the previous kept one only at an unrealistic speed."""
        if len(samples) < 2:
            return list(samples)

        filtered = [samples[0]]
        for current in samples[1:]:
            previous = filtered[-1]
            elapsed = _seconds_between(previous, current)
            if elapsed <= 0:
                continue
            speed = _distance(previous, current) / elapsed
            if speed <= self.max_speed_mps:
                filtered.append(current)
            else:
                logger.debug("Dropped sample %s with unrealistic speed %.0f m/s", current.id, speed)

        return filtered

    def filter_static_points(self, samples: Sequence[LocationSample]) -> List[LocationSample]:
        """Thin out runs of points within a small radius of a run's first point."""
        if len(samples) < 3:
            return list(samples)

        filtered = []
        i = 0
        while i < len(samples):
            current = samples[i]
            filtered.append(current)

            j = i + 1
            static_count = 0
            while j < len(samples) and j < i + STATIC_LOOKAHEAD and _distance(current, samples[j]) < STATIC_RADIUS_M:
                static_count += 1
                j += 1

            i = j if static_count > 2 else i + 1

        if len(filtered) < len(samples):
            logger.debug("Removed %d static points", len(samples) - len(filtered))
        return filtered

    def prefer_gps_samples(self, samples: Sequence[LocationSample]) -> List[LocationSample]:
        """
        Keep one sample per 10 s / 0.01 degree bucket, preferring GPS fixes.

        Output is in time order.
        """
        buckets = {}
        for sample in samples:
            key = (
                int(ensure_utc(sample.timestamp).timestamp()) // 10,
                int(sample.latitude * 100),
                int(sample.longitude * 100),
            )
            kept = buckets.get(key)
            if kept is None or (kept.source != LocationSource.GPS and sample.source == LocationSource.GPS):
                buckets[key] = sample

        preferred = sorted(buckets.values(), key=lambda s: ensure_utc(s.timestamp))
        if len(preferred) < len(samples):
            logger.debug("Preferred GPS samples, removed %d duplicates", len(samples) - len(preferred))
        return preferred
