"""
Route segment construction between consecutive place visits.

For the samples strictly between two visits:
- total distance is summed over the full-resolution samples
- the path is reduced with Douglas-Peucker for storage/rendering
- a transport mode is inferred for the whole movement
"""

import bisect
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .config import TransportThresholds
from .coordinates import path_length, stable_id
from .filters import LocationSampleFilter
from .models import Coordinate, LocationSample, PlaceVisit, RouteSegment, ensure_utc, epoch_ms
from .simplify import PathSimplifier
from .transport import detect_segment_mode, window_speeds_kmh
from .visits import sort_samples

logger = logging.getLogger(__name__)


@dataclass
class RouteStatistics:
    """Travel statistics of one movement."""
    distance_meters: float
    duration_seconds: float
    average_speed_mps: Optional[float]
    max_speed_mps: Optional[float]
    point_count: int
    simplified_point_count: int
    simplification_ratio: float  # simplified / original points


def route_statistics(samples: Sequence[LocationSample], simplified: Sequence[Coordinate]) -> RouteStatistics:
    """
    Compute statistics for a movement.

    Args:
        samples: Full-resolution samples in time order
        simplified: The simplified path of the same samples

    Returns:
        RouteStatistics (speeds are None when no time elapsed)
    """
    distance = path_length([s.latitude for s in samples], [s.longitude for s in samples])
    if len(samples) >= 2:
        duration = (ensure_utc(samples[-1].timestamp) - ensure_utc(samples[0].timestamp)).total_seconds()
    else:
        duration = 0.0

    speeds = window_speeds_kmh(samples) / 3.6
    return RouteStatistics(
        distance_meters=distance,
        duration_seconds=duration,
        average_speed_mps=distance / duration if duration > 0 else None,
        max_speed_mps=float(np.max(speeds)) if len(speeds) > 0 else None,
        point_count=len(samples),
        simplified_point_count=len(simplified),
        simplification_ratio=len(simplified) / len(samples) if samples else 0.0,
    )


class RouteSegmentBuilder:
    """Builds route segments from the movement between place visits."""

    def __init__(
        self,
        simplifier: Optional[PathSimplifier] = None,
        transport_window_size: int = 5,
        transport_thresholds: Optional[TransportThresholds] = None,
        sample_filter: Optional[LocationSampleFilter] = None,
    ):
        """
        Initialize the builder.

        Args:
            simplifier: Path simplifier (50 m tolerance if None)
            transport_window_size: Window of the transport mode detector
            transport_thresholds: Transport classification limits
            sample_filter: Optional cleaning pass applied to movement samples
        """
        self.simplifier = simplifier or PathSimplifier()
        self.transport_window_size = transport_window_size
        self.transport_thresholds = transport_thresholds
        self.sample_filter = sample_filter

    def build_segment(
        self,
        samples: Sequence[LocationSample],
        from_visit: Optional[PlaceVisit] = None,
        to_visit: Optional[PlaceVisit] = None,
        user_id: Optional[str] = None,
    ) -> Optional[RouteSegment]:
        """
        Build one segment from movement samples.

        Args:
            samples: Samples of the movement (sorted defensively)
            from_visit: Visit the movement leaves, if known
            to_visit: Visit the movement arrives at, if known
            user_id: Owner (defaults to the samples' user)

        Returns:
            RouteSegment, or None for fewer than two samples
        """
        ordered = sort_samples(samples)
        if self.sample_filter is not None:
            ordered = self.sample_filter.filter_and_validate(ordered)
        if len(ordered) < 2:
            return None

        simplified = self.simplifier.simplify_samples(ordered)
        stats = route_statistics(ordered, simplified)
        transport = detect_segment_mode(ordered, self.transport_window_size, self.transport_thresholds)

        start_time = ensure_utc(ordered[0].timestamp)
        end_time = ensure_utc(ordered[-1].timestamp)
        from_id = from_visit.id if from_visit is not None else None
        to_id = to_visit.id if to_visit is not None else None
        owner = user_id if user_id is not None else ordered[0].user_id

        logger.debug("Route segment %s -> %s: %.0fm, %s", from_id, to_id, stats.distance_meters, transport.value)
        return RouteSegment(
            id=stable_id('route', owner, epoch_ms(start_time), from_id, to_id),
            start_time=start_time,
            end_time=end_time,
            simplified_path=tuple(simplified),
            distance_meters=stats.distance_meters,
            transport_type=transport,
            user_id=owner,
            from_place_visit_id=from_id,
            to_place_visit_id=to_id,
            location_sample_ids=tuple(s.id for s in ordered),
            average_speed_mps=stats.average_speed_mps,
        )

    def build_segments(
        self,
        samples: Sequence[LocationSample],
        visits: Sequence[PlaceVisit],
        user_id: Optional[str] = None,
    ) -> List[RouteSegment]:
        """
        Build a segment for every pair of consecutive visits.

        Only samples strictly after the earlier visit ends and strictly before
        the later one starts are used. Gaps with fewer than two such samples
        produce no segment.
        """
        if not samples or len(visits) < 2:
            logger.debug("Nothing to connect: %d samples, %d visits", len(samples), len(visits))
            return []

        ordered = sort_samples(samples)
        times = [ensure_utc(s.timestamp) for s in ordered]
        sorted_visits = sorted(visits, key=lambda v: ensure_utc(v.start_time))

        segments = []
        for from_visit, to_visit in zip(sorted_visits, sorted_visits[1:]):
            lo = bisect.bisect_right(times, ensure_utc(from_visit.end_time))
            hi = bisect.bisect_left(times, ensure_utc(to_visit.start_time))
            segment = self.build_segment(ordered[lo:hi], from_visit, to_visit, user_id)
            if segment is not None:
                segments.append(segment)

        logger.info("Built %d route segments between %d visits", len(segments), len(sorted_visits))
        return segments
