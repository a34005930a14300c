"""
Batch pipeline: samples -> place visits -> route segments -> home -> trips.

Every run recomputes everything from the samples it is given. Stateful
detectors are built fresh per run; only the geocoding cache outlives a run.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from .config import PipelineConfig
from .filters import LocationSampleFilter
from .geocoding import CachingReverseGeocoder, GeocodingCache, ReverseGeocoder
from .home import HomeLocationDetector
from .models import Coordinate, LocationSample, PlaceVisit, RouteSegment, Trip, TripDay
from .routes import RouteSegmentBuilder
from .simplify import PathSimplifier
from .trips import TripBoundaryDetector, TripDayAggregator, TripDetector
from .visits import PlaceVisitDetector

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Everything derived for one user in one run."""
    user_id: str
    visits: List[PlaceVisit] = field(default_factory=list)
    routes: List[RouteSegment] = field(default_factory=list)
    trips: List[Trip] = field(default_factory=list)
    trip_days: Dict[str, List[TripDay]] = field(default_factory=dict)
    home: Optional[Coordinate] = None


class LocationProcessor:
    """
    Runs the travel history pipeline for one user at a time.

    Example:
        processor = LocationProcessor(PipelineConfig())
        result = processor.process(samples, user_id='alice')
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the processor.

        Args:
            config: Pipeline parameters (defaults if None)
            geocoder: Optional reverse geocoder; wrapped in a cache unless it already is one
            clock: Source of "now" for the cache and ongoing trip detection
        """
        self.config = config or PipelineConfig()
        self.clock = clock

        if geocoder is not None and not isinstance(geocoder, CachingReverseGeocoder):
            geocoder = CachingReverseGeocoder(
                geocoder,
                cache=GeocodingCache(clock=clock),
                radius_m=self.config.geocoding_cache_radius_m,
                ttl=self.config.geocoding_cache_ttl,
                timeout=self.config.geocoding_timeout,
            )
        self.geocoder = geocoder

    def process(self, samples: Sequence[LocationSample], user_id: str) -> ProcessingResult:
        """
        Derive visits, routes, home and trips for a single user.

        Samples tagged with a different user are ignored.

        Args:
            samples: The user's location samples (any order)
            user_id: Owner of every produced entity

        Returns:
            ProcessingResult
        """
        cfg = self.config
        owned = [s for s in samples if not s.user_id or s.user_id == user_id]
        if len(owned) < len(samples):
            logger.warning("Ignoring %d samples belonging to other users", len(samples) - len(owned))

        logger.info("Processing %d samples for user %s", len(owned), user_id)

        visit_detector = PlaceVisitDetector(
            geocoder=self.geocoder,
            spatial_threshold_m=cfg.spatial_threshold_m,
            min_duration=cfg.min_visit_duration,
        )
        visits = visit_detector.detect(owned, user_id)

        route_builder = RouteSegmentBuilder(
            simplifier=PathSimplifier(cfg.simplification_epsilon_m),
            transport_window_size=cfg.transport_window_size,
            transport_thresholds=cfg.transport_thresholds,
            sample_filter=LocationSampleFilter() if cfg.filter_route_samples else None,
        )
        routes = route_builder.build_segments(owned, visits, user_id)

        home_detector = HomeLocationDetector(
            home_radius_m=cfg.home_radius_m,
            min_visits=cfg.home_min_visits,
            duration_weight=cfg.home_duration_weight,
            frequency_weight=cfg.home_frequency_weight,
        )
        home = home_detector.detect_home(visits)

        trip_detector = TripDetector(
            TripBoundaryDetector(
                trip_distance_threshold_m=cfg.trip_distance_threshold_m,
                max_gap=cfg.trip_max_gap,
                min_trip_duration=cfg.min_trip_duration,
            ),
            ongoing_window=cfg.ongoing_window,
            clock=self.clock,
        )
        trips = trip_detector.detect_trips(visits, user_id, home)

        aggregator = TripDayAggregator(cfg.trip_day_timezone)
        trip_days = {trip.id: aggregator.aggregate(trip, visits, routes) for trip in trips}

        logger.info("User %s: %d visits, %d routes, %d trips", user_id, len(visits), len(routes), len(trips))
        return ProcessingResult(
            user_id=user_id,
            visits=visits,
            routes=routes,
            trips=trips,
            trip_days=trip_days,
            home=home,
        )

    def process_users(self, samples: Sequence[LocationSample]) -> Dict[str, ProcessingResult]:
        """
        Process a mixed sample set user by user.

        A failure for one user is logged and does not stop the others.

        Returns:
            Results keyed by user id, in order of first appearance
        """
        by_user: Dict[str, List[LocationSample]] = OrderedDict()
        for sample in samples:
            by_user.setdefault(sample.user_id, []).append(sample)

        results = OrderedDict()
        for user_id, user_samples in by_user.items():
            try:
                results[user_id] = self.process(user_samples, user_id)
            except Exception:
                logger.exception("Processing failed for user %s", user_id)
        return results

    def close(self) -> None:
        if isinstance(self.geocoder, CachingReverseGeocoder):
            self.geocoder.close()
