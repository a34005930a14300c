"""
Place visit detection.

Single-pass greedy spatial clustering over time-ordered samples: each sample
joins the open cluster when it lies within the spatial threshold of the
sample added *last* (not of a running centroid), otherwise it starts a new
cluster. Clusters spanning less than the minimum duration are dropped; the
rest become PlaceVisits centred on the arithmetic mean of their members.

Known limitation: comparing against the last point lets a slow drift of many
small steps grow a cluster well past the threshold from its centre. Downstream
consumers rely on this shape, so it is kept as is.
"""

import logging
from datetime import timedelta
from typing import List, Optional, Sequence

import numpy as np

from .coordinates import haversine_distance, is_valid_coordinate, stable_id
from .geocoding import ReverseGeocoder
from .models import LocationSample, PlaceVisit, ensure_utc, epoch_ms

logger = logging.getLogger(__name__)


def sort_samples(samples: Sequence[LocationSample]) -> List[LocationSample]:
    """
    Time-order samples, dropping those with unusable coordinates.

    Ties keep their input order.
    """
    valid = []
    for sample in samples:
        if is_valid_coordinate(sample.latitude, sample.longitude):
            valid.append(sample)
        else:
            logger.warning("Skipping sample %s with invalid coordinate (%s, %s)",
                           sample.id, sample.latitude, sample.longitude)
    return sorted(valid, key=lambda s: ensure_utc(s.timestamp))


def cluster_samples(
    samples: Sequence[LocationSample],
    spatial_threshold_m: float = 100.0,
) -> List[List[LocationSample]]:
    """
    Greedy clustering of time-ordered samples.

    Args:
        samples: Samples sorted by timestamp
        spatial_threshold_m: Max distance (exclusive) to the last clustered sample

    Returns:
        Clusters in time order; every sample belongs to exactly one cluster
    """
    clusters: List[List[LocationSample]] = []
    current: List[LocationSample] = []

    for sample in samples:
        if not current:
            current.append(sample)
            continue

        last = current[-1]
        d = haversine_distance(last.latitude, last.longitude, sample.latitude, sample.longitude)
        if d < spatial_threshold_m:
            current.append(sample)
        else:
            clusters.append(current)
            current = [sample]

    if current:
        clusters.append(current)

    return clusters


class PlaceVisitDetector:
    """
    Turns one user's samples into geocoded place visits.

    Instances hold no state between calls; build a new one per run anyway if
    the geocoder is run-scoped.
    """

    def __init__(
        self,
        geocoder: Optional[ReverseGeocoder] = None,
        spatial_threshold_m: float = 100.0,
        min_duration: timedelta = timedelta(minutes=10),
    ):
        """
        Initialize the detector.

        Args:
            geocoder: Optional reverse geocoder used to enrich visits
            spatial_threshold_m: Clustering distance threshold (meters)
            min_duration: Minimum time span of a cluster to count as a visit
        """
        if spatial_threshold_m <= 0:
            raise ValueError(f"spatial_threshold_m must be positive, got {spatial_threshold_m}")
        self.geocoder = geocoder
        self.spatial_threshold_m = spatial_threshold_m
        self.min_duration = min_duration

    def detect(self, samples: Sequence[LocationSample], user_id: Optional[str] = None) -> List[PlaceVisit]:
        """
        Detect place visits.

        Args:
            samples: Location samples of a single user (any order)
            user_id: Owner stamped on the visits (defaults to the samples' user)

        Returns:
            Visits in chronological order
        """
        if not samples:
            logger.debug("No samples to process for place visit detection")
            return []

        ordered = sort_samples(samples)
        clusters = cluster_samples(ordered, self.spatial_threshold_m)
        logger.debug("Found %d clusters from %d samples", len(clusters), len(ordered))

        visits = []
        for cluster in clusters:
            visit = self._create_visit(cluster, user_id)
            if visit is not None:
                visits.append(visit)

        logger.info("Detected %d place visits from %d samples (min duration %s)",
                    len(visits), len(ordered), self.min_duration)
        return visits

    def _create_visit(self, cluster: Sequence[LocationSample], user_id: Optional[str]) -> Optional[PlaceVisit]:
        start_time = ensure_utc(cluster[0].timestamp)
        end_time = ensure_utc(cluster[-1].timestamp)
        if end_time - start_time < self.min_duration:
            return None

        center_lat = float(np.mean([s.latitude for s in cluster]))
        center_lon = float(np.mean([s.longitude for s in cluster]))

        geocoded = None
        if self.geocoder is not None:
            geocoded = self.geocoder.reverse_geocode(center_lat, center_lon)
            if geocoded is None:
                logger.warning("Failed to geocode place visit at (%.6f, %.6f)", center_lat, center_lon)

        owner = user_id if user_id is not None else cluster[0].user_id
        return PlaceVisit(
            id=stable_id('visit', owner, epoch_ms(start_time), center_lat, center_lon),
            start_time=start_time,
            end_time=end_time,
            center_latitude=center_lat,
            center_longitude=center_lon,
            location_sample_ids=tuple(s.id for s in cluster),
            user_id=owner,
            approximate_address=geocoded.formatted_address if geocoded else None,
            poi_name=geocoded.poi_name if geocoded else None,
            city=geocoded.city if geocoded else None,
            country_code=geocoded.country_code if geocoded else None,
        )
