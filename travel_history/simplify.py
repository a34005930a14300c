"""
Douglas-Peucker path simplification on the sphere.

Deviation from a chord is measured as the cross-track distance to the great
circle through the chord's endpoints, so the tolerance is in meters at every
latitude.
"""

import logging
from typing import List, Sequence

from .coordinates import cross_track_distance
from .models import Coordinate, LocationSample

logger = logging.getLogger(__name__)


def douglas_peucker(points: Sequence[Coordinate], epsilon_m: float) -> List[Coordinate]:
    """
    Simplify a polyline, keeping points that deviate more than ``epsilon_m``.

    Endpoints are always kept. Re-simplifying the output with the same
    tolerance returns it unchanged.

    Args:
        points: Ordered coordinates
        epsilon_m: Tolerance in meters

    Returns:
        Reduced list of coordinates
    """
    points = list(points)
    if len(points) < 3:
        return points

    keep = [False] * len(points)
    keep[0] = keep[-1] = True

    # Explicit stack instead of recursion; long drives have tens of thousands of fixes
    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue

        start, end = points[first], points[last]
        max_distance = 0.0
        max_index = first
        for i in range(first + 1, last):
            d = cross_track_distance(points[i], start, end)
            if d > max_distance:
                max_distance = d
                max_index = i

        if max_distance > epsilon_m:
            keep[max_index] = True
            stack.append((first, max_index))
            stack.append((max_index, last))

    return [p for p, k in zip(points, keep) if k]


class PathSimplifier:
    """Reduces sample paths for storage and rendering."""

    def __init__(self, epsilon_m: float = 50.0):
        if epsilon_m < 0:
            raise ValueError(f"epsilon_m must be non-negative, got {epsilon_m}")
        self.epsilon_m = epsilon_m

    def simplify(self, points: Sequence[Coordinate]) -> List[Coordinate]:
        """Simplify an ordered list of coordinates."""
        simplified = douglas_peucker(points, self.epsilon_m)
        if len(points) >= 3:
            reduction = (1.0 - len(simplified) / len(points)) * 100
            logger.debug("Simplified path from %d to %d points (%.0f%% reduction)",
                         len(points), len(simplified), reduction)
        return simplified

    def simplify_samples(self, samples: Sequence[LocationSample]) -> List[Coordinate]:
        """Simplify the path traced by location samples (in the given order)."""
        return self.simplify([s.coordinate for s in samples])
