"""
Tests for place visit detection.
"""

import random
from datetime import timedelta

import pytest

from travel_history.coordinates import haversine_distance
from travel_history.geocoding import StaticReverseGeocoder
from travel_history.models import GeocodedLocation, LocationSample
from travel_history.sample_data import (
    SAN_FRANCISCO,
    generate_commute_day,
    generate_overnight_stay,
    generate_stay,
    offset_position,
)
from travel_history.visits import PlaceVisitDetector, cluster_samples, sort_samples


def _line_walk(t0, step_m, count, interval=timedelta(minutes=1)):
    """Samples stepping due north by ``step_m`` each interval."""
    lat, lon = SAN_FRANCISCO
    samples = []
    for i in range(count):
        p_lat, p_lon = offset_position(lat, lon, step_m * i, 0.0)
        samples.append(LocationSample(id=f"s{i}", timestamp=t0 + i * interval,
                                      latitude=p_lat, longitude=p_lon, user_id='user'))
    return samples


class TestClusterSamples:
    """Tests for greedy last-point clustering."""

    def test_threshold_against_last_sample(self):
        """Every consecutive pair in a cluster is closer than the threshold."""
        samples = generate_commute_day()
        for cluster in cluster_samples(samples, 100.0):
            for a, b in zip(cluster, cluster[1:]):
                assert haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude) < 100.0

    def test_every_sample_in_exactly_one_cluster(self):
        samples = generate_commute_day()
        clusters = cluster_samples(samples, 100.0)
        assert sum(len(c) for c in clusters) == len(samples)

    def test_threshold_is_exclusive(self, t0):
        """A sample exactly at the threshold starts a new cluster."""
        samples = _line_walk(t0, 100.0, 2)
        step = haversine_distance(samples[0].latitude, samples[0].longitude,
                                  samples[1].latitude, samples[1].longitude)
        assert len(cluster_samples(samples, step)) == 2
        assert len(cluster_samples(samples, step + 1.0)) == 1

    def test_slow_drift_stays_one_cluster(self, t0):
        """Small steps accumulate far beyond the threshold from the first sample."""
        samples = _line_walk(t0, 50.0, 20)
        clusters = cluster_samples(samples, 100.0)
        assert len(clusters) == 1
        first, last = samples[0], samples[-1]
        assert haversine_distance(first.latitude, first.longitude, last.latitude, last.longitude) > 900.0


class TestPlaceVisitDetector:
    """Tests for the visit detector."""

    def test_commute_day_two_visits(self):
        visits = PlaceVisitDetector().detect(generate_commute_day(), user_id='user')
        assert len(visits) == 2
        a, b = visits
        assert a.duration == timedelta(minutes=20)
        assert b.duration >= timedelta(minutes=30)
        assert a.end_time < b.start_time

    def test_centroid_is_mean(self, t0):
        samples = generate_stay(*SAN_FRANCISCO, t0, timedelta(minutes=30))
        visit = PlaceVisitDetector().detect(samples)[0]
        assert visit.center_latitude == pytest.approx(sum(s.latitude for s in samples) / len(samples))
        assert visit.center_longitude == pytest.approx(sum(s.longitude for s in samples) / len(samples))
        assert visit.location_sample_ids == tuple(s.id for s in samples)

    def test_short_stay_dropped(self, t0):
        samples = generate_stay(*SAN_FRANCISCO, t0, timedelta(minutes=9))
        assert PlaceVisitDetector().detect(samples) == []

    def test_minimum_duration_inclusive(self, t0):
        samples = generate_stay(*SAN_FRANCISCO, t0, timedelta(minutes=10))
        assert len(PlaceVisitDetector().detect(samples)) == 1

    def test_unsorted_input(self):
        samples = generate_commute_day()
        shuffled = list(samples)
        random.Random(7).shuffle(shuffled)
        detector = PlaceVisitDetector()
        assert detector.detect(shuffled, 'user') == detector.detect(samples, 'user')

    def test_overnight_stay_single_visit(self):
        visits = PlaceVisitDetector().detect(generate_overnight_stay())
        assert len(visits) == 1
        assert visits[0].start_time.date() != visits[0].end_time.date()
        assert visits[0].duration == timedelta(hours=9)

    def test_ten_hour_gap_at_same_place_merges(self, t0):
        """Evening and morning fixes at home with nothing in between form one visit."""
        evening = generate_stay(*SAN_FRANCISCO, t0 + timedelta(hours=14), timedelta(minutes=30))
        morning = generate_stay(*SAN_FRANCISCO, t0 + timedelta(hours=24, minutes=30), timedelta(minutes=30))
        visits = PlaceVisitDetector().detect(evening + morning)
        assert len(visits) == 1
        assert visits[0].start_time == t0 + timedelta(hours=14)
        assert visits[0].end_time == t0 + timedelta(hours=25)

    def test_empty_input(self):
        assert PlaceVisitDetector().detect([]) == []

    def test_invalid_coordinates_skipped(self, t0):
        samples = generate_stay(*SAN_FRANCISCO, t0, timedelta(minutes=30))
        bad = LocationSample(id='bad', timestamp=t0 + timedelta(minutes=5),
                             latitude=float('nan'), longitude=0.0)
        visits = PlaceVisitDetector().detect(samples + [bad])
        assert len(visits) == 1
        assert 'bad' not in visits[0].location_sample_ids

    def test_ids_are_deterministic(self):
        samples = generate_commute_day()
        first = PlaceVisitDetector().detect(samples, 'user')
        second = PlaceVisitDetector().detect(samples, 'user')
        assert [v.id for v in first] == [v.id for v in second]
        assert len({v.id for v in first}) == len(first)

    def test_user_id_stamped(self):
        visits = PlaceVisitDetector().detect(generate_commute_day(user_id='alice'))
        assert {v.user_id for v in visits} == {'alice'}

    def test_geocoding_enriches_visit(self, t0):
        place = GeocodedLocation(*SAN_FRANCISCO, formatted_address='Market St, San Francisco',
                                 city='San Francisco', country_code='US', poi_name='Ferry Building')
        geocoder = StaticReverseGeocoder([place])
        samples = generate_stay(*SAN_FRANCISCO, t0, timedelta(minutes=30))
        visit = PlaceVisitDetector(geocoder=geocoder).detect(samples)[0]
        assert visit.city == 'San Francisco'
        assert visit.country_code == 'US'
        assert visit.poi_name == 'Ferry Building'

    def test_geocoding_miss_keeps_visit(self, t0):
        geocoder = StaticReverseGeocoder([])
        samples = generate_stay(*SAN_FRANCISCO, t0, timedelta(minutes=30))
        visits = PlaceVisitDetector(geocoder=geocoder).detect(samples)
        assert len(visits) == 1
        assert visits[0].city is None

    def test_invalid_threshold_rejected(self):
        with pytest.raises(ValueError):
            PlaceVisitDetector(spatial_threshold_m=0.0)


class TestSortSamples:
    """Tests for sample ordering."""

    def test_stable_for_equal_timestamps(self, t0):
        a = LocationSample(id='a', timestamp=t0, latitude=1.0, longitude=1.0)
        b = LocationSample(id='b', timestamp=t0, latitude=1.0, longitude=1.0)
        assert [s.id for s in sort_samples([a, b])] == ['a', 'b']
        assert [s.id for s in sort_samples([b, a])] == ['b', 'a']
