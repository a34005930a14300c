"""
Home location detection from place visit history.

Visits are grouped into places with DBSCAN over the haversine metric
(``min_samples=1``, so any chain of visits within ``home_radius_m`` of one
another forms one place). Each place is scored as a weighted sum of its share
of total dwell time and its share of all visits:

    score = duration_weight * (place_hours / all_hours)
          + frequency_weight * (place_visits / all_visits)

Places with fewer than ``min_visits`` visits are not eligible. The best score
wins; ties go to the place visited most recently.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.cluster import DBSCAN

from .coordinates import EARTH_RADIUS_M
from .models import Coordinate, PlaceVisit, ensure_utc

logger = logging.getLogger(__name__)


@dataclass
class HomeCandidate:
    """A place scored as a potential home."""
    location: Coordinate
    visit_count: int
    total_hours: float
    nights_spent: int
    last_visit_time: datetime
    place_visit_ids: Tuple[str, ...]
    score: float = 0.0


def cluster_visits(visits: Sequence[PlaceVisit], radius_m: float) -> np.ndarray:
    """
    Label visits by place.

    Args:
        visits: Visits to group
        radius_m: Distance linking two visits to the same place

    Returns:
        Array of integer place labels aligned with ``visits``
    """
    if not visits:
        return np.array([], dtype=int)

    coords = np.radians([[v.center_latitude, v.center_longitude] for v in visits])
    model = DBSCAN(
        eps=radius_m / EARTH_RADIUS_M,
        min_samples=1,
        metric='haversine',
        algorithm='ball_tree',
    )
    return model.fit_predict(coords)


class HomeLocationDetector:
    """
    Identifies the user's home from where they spend their time.

    See the module docstring for the scoring rule.
    """

    def __init__(
        self,
        home_radius_m: float = 500.0,
        min_visits: int = 3,
        duration_weight: float = 0.5,
        frequency_weight: float = 0.5,
        night_min_hours: float = 6.0,
    ):
        """
        Initialize the detector.

        Args:
            home_radius_m: Tolerance for treating two visits as the same place
            min_visits: Minimum visits for a place to be considered home
            duration_weight: Weight of the dwell-time share
            frequency_weight: Weight of the visit-count share
            night_min_hours: Visits at least this long count as nights spent
        """
        if min_visits < 1:
            raise ValueError(f"min_visits must be at least 1, got {min_visits}")
        if duration_weight < 0 or frequency_weight < 0:
            raise ValueError("Scoring weights must be non-negative")
        self.home_radius_m = home_radius_m
        self.min_visits = min_visits
        self.duration_weight = duration_weight
        self.frequency_weight = frequency_weight
        self.night_min_hours = night_min_hours

    def candidates(self, visits: Sequence[PlaceVisit]) -> List[HomeCandidate]:
        """
        Score every place in the visit history.

        Returns:
            Candidates sorted best first (ineligible places included)
        """
        if not visits:
            return []

        labels = cluster_visits(visits, self.home_radius_m)
        total_hours = sum(_hours(v.duration) for v in visits)
        total_visits = len(visits)

        candidates = []
        for label in np.unique(labels):
            members = [v for v, lab in zip(visits, labels) if lab == label]
            hours = sum(_hours(v.duration) for v in members)

            duration_share = hours / total_hours if total_hours > 0 else 0.0
            frequency_share = len(members) / total_visits
            score = self.duration_weight * duration_share + self.frequency_weight * frequency_share

            candidates.append(HomeCandidate(
                location=Coordinate(
                    float(np.mean([v.center_latitude for v in members])),
                    float(np.mean([v.center_longitude for v in members])),
                ),
                visit_count=len(members),
                total_hours=hours,
                nights_spent=sum(1 for v in members if _hours(v.duration) >= self.night_min_hours),
                last_visit_time=max(ensure_utc(v.end_time) for v in members),
                place_visit_ids=tuple(v.id for v in members),
                score=score,
            ))

        candidates.sort(key=lambda c: (c.score, c.last_visit_time), reverse=True)
        return candidates

    def detect_home(self, visits: Sequence[PlaceVisit]) -> Optional[Coordinate]:
        """
        Detect the home location.

        Returns:
            Home coordinate, or None when no place has enough visits
        """
        if not visits:
            logger.debug("No visits to analyze for home detection")
            return None

        eligible = [c for c in self.candidates(visits) if c.visit_count >= self.min_visits]
        if not eligible:
            logger.warning("Unable to detect home location: no place with at least %d visits", self.min_visits)
            return None

        home = eligible[0]
        logger.info("Detected home at (%.5f, %.5f): %d visits, %.1f hours, %d nights",
                    home.location.latitude, home.location.longitude,
                    home.visit_count, home.total_hours, home.nights_spent)
        return home.location


def _hours(duration: timedelta) -> float:
    return duration.total_seconds() / 3600.0
