"""
Tests for trip detection, trip days and trip statistics.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from travel_history.home import HomeLocationDetector
from travel_history.models import Coordinate, RouteSegment, TimelineItemKind, TransportType
from travel_history.sample_data import (
    DEFAULT_START,
    LOS_ANGELES,
    SAN_FRANCISCO,
    generate_travel_history,
    offset_position,
)
from travel_history.trips import (
    TripBoundaryDetector,
    TripDayAggregator,
    TripDetector,
    TripStatisticsCalculator,
    most_common_value,
)
from travel_history.visits import PlaceVisitDetector

from conftest import FakeClock, make_visit


HOME = Coordinate(*SAN_FRANCISCO)
TRIP_START = DEFAULT_START + timedelta(days=3, hours=10)
TRIP_END = DEFAULT_START + timedelta(days=6, hours=8)


def _history_visits(**kwargs):
    return PlaceVisitDetector().detect(generate_travel_history(**kwargs), 'user')


class TestTripBoundaryDetector:
    """Tests for splitting visit histories into away runs."""

    def test_away_threshold(self, t0):
        detector = TripBoundaryDetector()
        near = make_visit('near', *offset_position(*SAN_FRANCISCO, 99_000.0, 0.0), t0, 1)
        far = make_visit('far', *offset_position(*SAN_FRANCISCO, 101_000.0, 0.0), t0, 1)
        assert not detector.is_away(near, HOME)
        assert detector.is_away(far, HOME)
        assert detector.is_away(near, None)

    def test_return_home_closes_run(self, t0):
        visits = [
            make_visit('a1', *LOS_ANGELES, t0, 6),
            make_visit('h', *SAN_FRANCISCO, t0 + timedelta(hours=8), 10),
            make_visit('a2', *LOS_ANGELES, t0 + timedelta(hours=20), 6),
        ]
        segments = TripBoundaryDetector().detect(visits, HOME)
        assert [s.visit_ids for s in segments] == [('a1',), ('a2',)]
        assert segments[0].closed_by_return
        assert not segments[1].closed_by_return

    def test_gap_splits_run(self, t0):
        visits = [
            make_visit('a1', *LOS_ANGELES, t0, 6),
            make_visit('a2', *LOS_ANGELES, t0 + timedelta(hours=6 + 37), 6),
        ]
        segments = TripBoundaryDetector().detect(visits, HOME)
        assert len(segments) == 2

    def test_gap_within_limit_keeps_run(self, t0):
        visits = [
            make_visit('a1', *LOS_ANGELES, t0, 6),
            make_visit('a2', *LOS_ANGELES, t0 + timedelta(hours=6 + 35), 6),
        ]
        segments = TripBoundaryDetector().detect(visits, HOME)
        assert len(segments) == 1
        assert segments[0].start_time == t0
        assert segments[0].end_time == t0 + timedelta(hours=47)

    def test_short_run_discarded(self, t0):
        visits = [make_visit('a', *LOS_ANGELES, t0, 2)]
        assert TripBoundaryDetector().detect(visits, HOME) == []

    def test_no_home_treats_all_visits_as_away(self, t0):
        visits = [
            make_visit('h', *SAN_FRANCISCO, t0, 6),
            make_visit('a', *LOS_ANGELES, t0 + timedelta(hours=8), 6),
        ]
        segments = TripBoundaryDetector().detect(visits, None)
        assert len(segments) == 1
        assert segments[0].visit_ids == ('h', 'a')

    def test_unsorted_visits(self, t0):
        visits = [
            make_visit('a2', *LOS_ANGELES, t0 + timedelta(hours=10), 6),
            make_visit('a1', *LOS_ANGELES, t0, 6),
        ]
        segments = TripBoundaryDetector().detect(visits, HOME)
        assert segments[0].visit_ids == ('a1', 'a2')

    def test_empty(self):
        assert TripBoundaryDetector().detect([], HOME) == []


class TestTripDetector:
    """Tests for Trip entities."""

    def test_three_day_trip_is_one_trip(self):
        visits = _history_visits()
        home = HomeLocationDetector().detect_home(visits)
        clock = FakeClock(datetime(2024, 4, 1, tzinfo=timezone.utc))
        trips = TripDetector(clock=clock).detect_trips(visits, 'user', home)

        assert len(trips) == 1
        trip = trips[0]
        assert trip.start_time == TRIP_START
        assert trip.end_time == TRIP_END
        assert not trip.is_ongoing
        assert len(trip.visit_ids) == 6

    def test_returned_trip_is_closed_even_when_recent(self):
        visits = _history_visits()
        home = HomeLocationDetector().detect_home(visits)
        clock = FakeClock(TRIP_END + timedelta(hours=1))
        trip = TripDetector(clock=clock).detect_trips(visits, 'user', home)[0]
        assert not trip.is_ongoing

    def test_recent_unfinished_trip_is_ongoing(self):
        visits = _history_visits(return_home=False)
        home = HomeLocationDetector().detect_home(visits)
        clock = FakeClock(TRIP_END + timedelta(hours=1))
        trip = TripDetector(clock=clock).detect_trips(visits, 'user', home)[0]
        assert trip.is_ongoing
        assert trip.end_time is None
        assert trip.duration is None

    def test_stale_unfinished_trip_is_closed(self):
        visits = _history_visits(return_home=False)
        home = HomeLocationDetector().detect_home(visits)
        clock = FakeClock(TRIP_END + timedelta(hours=25))
        trip = TripDetector(clock=clock).detect_trips(visits, 'user', home)[0]
        assert not trip.is_ongoing
        assert trip.end_time == TRIP_END

    def test_only_last_trip_can_be_ongoing(self, t0):
        visits = [
            make_visit('a1', *LOS_ANGELES, t0, 6),
            make_visit('a2', *LOS_ANGELES, t0 + timedelta(days=3), 6),
        ]
        clock = FakeClock(t0 + timedelta(days=3, hours=7))
        trips = TripDetector(clock=clock).detect_trips(visits, 'user', HOME)
        assert [t.is_ongoing for t in trips] == [False, True]

    def test_primary_country_and_name(self, t0):
        visits = [
            make_visit('a1', 48.8566, 2.3522, t0, 6, country_code='FR', city='Paris'),
            make_visit('a2', 48.86, 2.35, t0 + timedelta(hours=8), 6, country_code='FR', city='Paris'),
            make_visit('a3', 45.46, 9.19, t0 + timedelta(hours=20), 6, country_code='IT', city='Milan'),
        ]
        clock = FakeClock(t0 + timedelta(days=30))
        trip = TripDetector(clock=clock).detect_trips(visits, 'user', HOME)[0]
        assert trip.primary_country == 'FR'
        assert trip.name == 'Paris, FR'

    def test_ids_deterministic(self):
        visits = _history_visits()
        home = HomeLocationDetector().detect_home(visits)
        clock = FakeClock(datetime(2024, 4, 1, tzinfo=timezone.utc))
        first = TripDetector(clock=clock).detect_trips(visits, 'user', home)
        second = TripDetector(clock=clock).detect_trips(visits, 'user', home)
        assert [t.id for t in first] == [t.id for t in second]
        assert first[0].user_id == 'user'

    def test_most_common_value(self):
        assert most_common_value(['FR', None, 'IT', 'FR']) == 'FR'
        assert most_common_value(['IT', 'FR']) == 'IT'
        assert most_common_value([None, '']) is None


class TestTripDayAggregator:
    """Tests for per-day timelines."""

    def _trip_and_visits(self):
        visits = _history_visits()
        home = HomeLocationDetector().detect_home(visits)
        clock = FakeClock(datetime(2024, 4, 1, tzinfo=timezone.utc))
        return TripDetector(clock=clock).detect_trips(visits, 'user', home)[0], visits

    def test_one_day_per_calendar_day(self):
        trip, visits = self._trip_and_visits()
        days = TripDayAggregator().aggregate(trip, visits, [])
        assert [d.date for d in days] == [date(2024, 3, 7), date(2024, 3, 8), date(2024, 3, 9), date(2024, 3, 10)]
        assert all(d.trip_id == trip.id for d in days)

    def test_timeline_structure(self):
        trip, visits = self._trip_and_visits()
        day = TripDayAggregator().aggregate(trip, visits, [])[0]
        assert day.items[0].kind == TimelineItemKind.DAY_START
        assert day.items[-1].kind == TimelineItemKind.DAY_END
        assert len(day.visits) == 2
        times = [item.timestamp for item in day.items]
        assert times == sorted(times)

    def test_visits_only_from_trip(self):
        trip, visits = self._trip_and_visits()
        days = TripDayAggregator().aggregate(trip, visits, [])
        day_visit_ids = {v.id for d in days for v in d.visits}
        assert day_visit_ids == set(trip.visit_ids)

    def test_routes_included(self):
        trip, visits = self._trip_and_visits()
        route = RouteSegment(id='r1', start_time=TRIP_START + timedelta(hours=6, minutes=30),
                             end_time=TRIP_START + timedelta(hours=7), simplified_path=(),
                             distance_meters=3000.0)
        day = TripDayAggregator().aggregate(trip, visits, [route])[0]
        assert [r.id for r in day.routes] == ['r1']

    def test_local_timezone(self):
        """In Los Angeles local time the first sightseeing stop is still on March 7."""
        trip, visits = self._trip_and_visits()
        days = TripDayAggregator('America/Los_Angeles').aggregate(trip, visits, [])
        assert days[0].date == date(2024, 3, 7)


class TestTripStatisticsCalculator:
    """Tests for trip statistics."""

    def test_statistics(self, t0):
        visits = [
            make_visit('a1', 48.8566, 2.3522, t0, 6, country_code='FR', city='Paris'),
            make_visit('a2', 45.46, 9.19, t0 + timedelta(hours=8), 6, country_code='IT', city='Milan'),
        ]
        routes = [
            RouteSegment(id='r1', start_time=t0 + timedelta(hours=6), end_time=t0 + timedelta(hours=8),
                         simplified_path=(), distance_meters=200_000.0, transport_type=TransportType.TRAIN),
        ]
        stats = TripStatisticsCalculator().calculate(visits, routes)
        assert stats.total_distance_meters == pytest.approx(200_000.0)
        assert stats.visited_place_count == 2
        assert stats.countries_visited == ['FR', 'IT']
        assert stats.cities_visited == ['Milan', 'Paris']
        assert stats.average_speed_kmh == pytest.approx(100.0)
        assert stats.distance_by_transport == {'train': 200_000.0}

    def test_empty(self):
        stats = TripStatisticsCalculator().calculate([], [])
        assert stats.total_distance_meters == 0.0
        assert stats.average_speed_kmh == 0.0
