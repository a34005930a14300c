"""
Trip segmentation of place visit histories.

A visit is "away" when its centre lies farther than the trip distance
threshold from home (every visit is away when home is unknown). Consecutive
away visits form one run while the gap between them stays within
``max_gap``; a visit near home, or a larger gap, closes the run. Runs may
span any number of calendar days.

TripDetector turns runs into Trip entities. Only the chronologically last
run can be ongoing, and only while it ended within ``ongoing_window`` of now
and was not closed by a return home. Sparse fixes (e.g. flight mode) can make
a real ongoing trip look closed; the window is a heuristic.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from .coordinates import haversine_distance, path_length, stable_id
from .models import (
    Coordinate,
    LocationSample,
    PlaceVisit,
    RouteSegment,
    TimelineItem,
    TimelineItemKind,
    Trip,
    TripDay,
    ensure_utc,
    epoch_ms,
)

logger = logging.getLogger(__name__)


@dataclass
class TripSegment:
    """A run of away visits."""
    start_time: datetime
    end_time: datetime
    visits: List[PlaceVisit]
    primary_country: Optional[str]
    closed_by_return: bool = False

    @property
    def visit_ids(self) -> Tuple[str, ...]:
        return tuple(v.id for v in self.visits)


def most_common_value(values: Sequence[Optional[str]]) -> Optional[str]:
    """Most frequent non-empty value; ties go to the one seen first."""
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


class TripBoundaryDetector:
    """Finds runs of away-from-home visits."""

    def __init__(
        self,
        trip_distance_threshold_m: float = 100_000.0,
        max_gap: timedelta = timedelta(hours=36),
        min_trip_duration: timedelta = timedelta(hours=4),
    ):
        """
        Initialize the detector.

        Args:
            trip_distance_threshold_m: Minimum distance from home for a visit to be away
            max_gap: Largest allowed time between consecutive visits of one trip
            min_trip_duration: Shorter runs are discarded
        """
        self.trip_distance_threshold_m = trip_distance_threshold_m
        self.max_gap = max_gap
        self.min_trip_duration = min_trip_duration

    def is_away(self, visit: PlaceVisit, home: Optional[Coordinate]) -> bool:
        if home is None:
            return True
        d = haversine_distance(home.latitude, home.longitude, visit.center_latitude, visit.center_longitude)
        return d > self.trip_distance_threshold_m

    def detect(self, visits: Sequence[PlaceVisit], home: Optional[Coordinate]) -> List[TripSegment]:
        """
        Detect trip runs.

        Args:
            visits: Place visits (any order)
            home: Home coordinate, or None if unknown

        Returns:
            Trip segments in chronological order
        """
        if not visits:
            logger.debug("No visits to analyze for trip detection")
            return []
        if home is None:
            logger.warning("No home location available, treating all visits as trip candidates")

        ordered = sorted(visits, key=lambda v: ensure_utc(v.start_time))
        segments: List[TripSegment] = []
        run: List[PlaceVisit] = []

        for visit in ordered:
            if self.is_away(visit, home):
                if run and ensure_utc(visit.start_time) - ensure_utc(run[-1].end_time) > self.max_gap:
                    self._close(run, segments, closed_by_return=False)
                    run = []
                run.append(visit)
            elif run:
                self._close(run, segments, closed_by_return=True)
                run = []

        if run:
            self._close(run, segments, closed_by_return=False)

        logger.info("Detected %d trip segments from %d visits", len(segments), len(ordered))
        return segments

    def _close(self, run: List[PlaceVisit], segments: List[TripSegment], closed_by_return: bool) -> None:
        start_time = ensure_utc(run[0].start_time)
        end_time = max(ensure_utc(v.end_time) for v in run)
        if end_time - start_time < self.min_trip_duration:
            logger.debug("Discarding short trip run (%s < %s)", end_time - start_time, self.min_trip_duration)
            return
        segments.append(TripSegment(
            start_time=start_time,
            end_time=end_time,
            visits=list(run),
            primary_country=most_common_value([v.country_code for v in run]),
            closed_by_return=closed_by_return,
        ))


def _trip_name(visits: Sequence[PlaceVisit], primary_country: Optional[str]) -> Optional[str]:
    city = most_common_value([v.city for v in visits])
    if city and primary_country:
        return f"{city}, {primary_country}"
    return city or primary_country


class TripDetector:
    """Builds Trip entities for one user."""

    def __init__(
        self,
        boundary_detector: Optional[TripBoundaryDetector] = None,
        ongoing_window: timedelta = timedelta(hours=24),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.boundary_detector = boundary_detector or TripBoundaryDetector()
        self.ongoing_window = ongoing_window
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def detect_trips(
        self,
        visits: Sequence[PlaceVisit],
        user_id: str,
        home: Optional[Coordinate] = None,
    ) -> List[Trip]:
        """
        Detect the user's trips.

        Args:
            visits: The user's place visits
            user_id: Owner of the trips
            home: Home coordinate, or None if unknown

        Returns:
            Trips in chronological order
        """
        segments = self.boundary_detector.detect(visits, home)
        now = ensure_utc(self._clock())

        trips = []
        for index, segment in enumerate(segments):
            is_last = index == len(segments) - 1
            ongoing = (
                is_last
                and not segment.closed_by_return
                and now - segment.end_time <= self.ongoing_window
            )
            trips.append(Trip(
                id=stable_id('trip', user_id, epoch_ms(segment.start_time), index),
                user_id=user_id,
                start_time=segment.start_time,
                end_time=None if ongoing else segment.end_time,
                primary_country=segment.primary_country,
                is_ongoing=ongoing,
                visit_ids=segment.visit_ids,
                name=_trip_name(segment.visits, segment.primary_country),
            ))

        logger.info("Detected %d trips for user %s", len(trips), user_id)
        return trips


class TripDayAggregator:
    """Splits a trip into per-day timelines of visits and routes."""

    def __init__(self, tz: str = 'UTC'):
        self.tz = ZoneInfo(tz)

    def aggregate(
        self,
        trip: Trip,
        visits: Sequence[PlaceVisit],
        routes: Sequence[RouteSegment],
    ) -> List[TripDay]:
        """
        Build one TripDay per calendar day covered by the trip.

        Visits and routes belong to the day on which they start.
        """
        trip_end = ensure_utc(trip.end_time) if trip.end_time is not None else None

        def in_trip(start: datetime) -> bool:
            start = ensure_utc(start)
            return start >= trip.start_time and (trip_end is None or start <= trip_end)

        trip_visits = sorted((v for v in visits if in_trip(v.start_time)), key=lambda v: v.start_time)
        trip_routes = sorted((r for r in routes if in_trip(r.start_time)), key=lambda r: r.start_time)
        if not trip_visits and not trip_routes:
            logger.warning("No visits or routes found for trip %s", trip.id)
            return []

        last_start = max([v.start_time for v in trip_visits] + [r.start_time for r in trip_routes])
        first_day = ensure_utc(trip.start_time).astimezone(self.tz).date()
        last_day = ensure_utc(trip_end or last_start).astimezone(self.tz).date()

        days = []
        day = first_day
        while day <= last_day:
            days.append(self._build_day(trip.id, day, trip_visits, trip_routes))
            day += timedelta(days=1)
        return days

    def _build_day(
        self,
        trip_id: str,
        day: date,
        visits: Sequence[PlaceVisit],
        routes: Sequence[RouteSegment],
    ) -> TripDay:
        day_start = datetime.combine(day, time.min).replace(tzinfo=self.tz)
        day_end = datetime.combine(day + timedelta(days=1), time.min).replace(tzinfo=self.tz)

        entries = [
            TimelineItem(
                id=f"timeline_visit_{v.id}",
                kind=TimelineItemKind.VISIT,
                timestamp=v.start_time,
                place_visit=v,
            )
            for v in visits if day_start <= ensure_utc(v.start_time) < day_end
        ]
        entries += [
            TimelineItem(
                id=f"timeline_route_{r.id}",
                kind=TimelineItemKind.ROUTE,
                timestamp=r.start_time,
                route_segment=r,
            )
            for r in routes if day_start <= ensure_utc(r.start_time) < day_end
        ]
        entries.sort(key=lambda item: ensure_utc(item.timestamp))

        items = [TimelineItem(id=f"timeline_day_start_{day.isoformat()}",
                              kind=TimelineItemKind.DAY_START, timestamp=day_start)]
        items += entries
        items.append(TimelineItem(id=f"timeline_day_end_{day.isoformat()}",
                                  kind=TimelineItemKind.DAY_END, timestamp=day_end))

        return TripDay(id=f"trip_day_{trip_id}_{day.isoformat()}", trip_id=trip_id, date=day, items=items)


@dataclass
class TripStatistics:
    """Aggregate numbers for one trip."""
    total_distance_meters: float
    visited_place_count: int
    countries_visited: List[str] = field(default_factory=list)
    cities_visited: List[str] = field(default_factory=list)
    route_segment_count: int = 0
    average_speed_kmh: float = 0.0
    distance_by_transport: Dict[str, float] = field(default_factory=dict)


class TripStatisticsCalculator:
    """Computes statistics of a trip from its visits, routes and samples."""

    def calculate(
        self,
        visits: Sequence[PlaceVisit],
        routes: Sequence[RouteSegment],
        samples: Sequence[LocationSample] = (),
    ) -> TripStatistics:
        """
        Args:
            visits: Visits of the trip
            routes: Route segments of the trip
            samples: Raw samples; when given, distance is measured on them

        Returns:
            TripStatistics
        """
        if samples:
            ordered = sorted(samples, key=lambda s: ensure_utc(s.timestamp))
            total_distance = path_length([s.latitude for s in ordered], [s.longitude for s in ordered])
        else:
            total_distance = sum(r.distance_meters for r in routes)

        moving_seconds = sum(r.duration.total_seconds() for r in routes)
        average_speed = (total_distance / 1000.0) / (moving_seconds / 3600.0) if moving_seconds > 0 else 0.0

        by_transport: Dict[str, float] = {}
        for r in routes:
            by_transport[r.transport_type.value] = by_transport.get(r.transport_type.value, 0.0) + r.distance_meters

        return TripStatistics(
            total_distance_meters=total_distance,
            visited_place_count=len(visits),
            countries_visited=sorted({v.country_code for v in visits if v.country_code}),
            cities_visited=sorted({v.city for v in visits if v.city}),
            route_segment_count=len(routes),
            average_speed_kmh=average_speed,
            distance_by_transport=by_transport,
        )
