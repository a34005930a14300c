"""
Geodesy utilities for travel history analysis.

Great-circle distances on a spherical Earth, bounding-box pre-filters,
bearings and cross-track distances, plus helpers for deriving stable ids
from floating point coordinates.
"""

import hashlib
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .models import Coordinate


EARTH_RADIUS_M = 6371000.0  # Spherical Earth radius (meters)

# Grid used when coordinates take part in an id (1e-5 deg ~ 1.1 m)
ID_COORDINATE_PRECISION = 5


@dataclass(frozen=True)
class BoundingBox:
    """Lat/lon rectangle used as a coarse pre-filter before exact distance checks."""
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """True when lat/lon are finite and inside the WGS84 degree ranges."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0


def validate_coordinate(lat: float, lon: float) -> None:
    """Raise ValueError for NaN, infinite or out-of-range coordinates."""
    if not is_valid_coordinate(lat, lon):
        raise ValueError(f"Invalid coordinate: ({lat}, {lon})")


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Calculate great-circle distance between two points using Haversine formula.

    Works on scalars as well as numpy arrays (element-wise). Scalar
    coordinates are validated; arrays are not.

    Args:
        lat1, lon1: First point (degrees)
        lat2, lon2: Second point (degrees)

    Returns:
        Distance in meters
    """
    if all(np.ndim(v) == 0 for v in (lat1, lon1, lat2, lon2)):
        validate_coordinate(lat1, lon1)
        validate_coordinate(lat2, lon2)

    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))

    a = np.sin(dlat / 2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2)**2
    # Rounding can push a marginally above 1 for antipodal points
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    distance = EARTH_RADIUS_M * c
    if np.ndim(distance) == 0:
        return float(distance)
    return distance


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters between two coordinates."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def bounding_box(lat: float, lon: float, radius_m: float) -> BoundingBox:
    """
    Approximate a circle of ``radius_m`` around a point with a lat/lon box.

    The longitude half-width is widened by 1/cos(latitude) for meridian
    convergence. Near the poles the box spans all longitudes.

    Args:
        lat, lon: Center (degrees)
        radius_m: Radius in meters

    Returns:
        BoundingBox; only a pre-filter, callers must still check exact distance
    """
    if radius_m < 0:
        raise ValueError(f"radius_m must be non-negative, got {radius_m}")

    delta_lat = math.degrees(radius_m / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat))

    min_lat = max(-90.0, lat - delta_lat)
    max_lat = min(90.0, lat + delta_lat)

    if cos_lat < 1e-12 or max_lat >= 90.0 or min_lat <= -90.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    delta_lon = delta_lat / cos_lat
    return BoundingBox(min_lat, max_lat, lon - delta_lon, lon + delta_lon)


def compute_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Compute initial bearing from point 1 to point 2.

    Args:
        lat1, lon1: First point (degrees)
        lat2, lon2: Second point (degrees)

    Returns:
        Bearing in degrees (0-360, where 0 is North)
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlon_rad = np.radians(lon2 - lon1)

    x = np.sin(dlon_rad) * np.cos(lat2_rad)
    y = np.cos(lat1_rad) * np.sin(lat2_rad) - np.sin(lat1_rad) * np.cos(lat2_rad) * np.cos(dlon_rad)

    bearing = np.degrees(np.arctan2(x, y))
    return float((bearing + 360) % 360)


def cross_track_distance(point: Coordinate, line_start: Coordinate, line_end: Coordinate) -> float:
    """
    Distance in meters from a point to the great circle through two points.

    Degenerates to the plain Haversine distance when start and end coincide.
    """
    if line_start == line_end:
        return distance(point, line_start)

    angular_13 = distance(line_start, point) / EARTH_RADIUS_M
    bearing_12 = math.radians(compute_bearing(
        line_start.latitude, line_start.longitude, line_end.latitude, line_end.longitude))
    bearing_13 = math.radians(compute_bearing(
        line_start.latitude, line_start.longitude, point.latitude, point.longitude))

    sin_xt = math.sin(angular_13) * math.sin(bearing_13 - bearing_12)
    return abs(math.asin(max(-1.0, min(1.0, sin_xt)))) * EARTH_RADIUS_M


def path_length(lats: Sequence[float], lons: Sequence[float]) -> float:
    """Sum of consecutive Haversine legs along a path (meters)."""
    lat = np.asarray(lats, dtype=float)
    lon = np.asarray(lons, dtype=float)
    if len(lat) < 2:
        return 0.0
    legs = haversine_distance(lat[:-1], lon[:-1], lat[1:], lon[1:])
    return float(np.sum(legs))


def quantize(value: float, precision: int = ID_COORDINATE_PRECISION) -> str:
    """Canonical fixed-precision string for a coordinate component."""
    rounded = round(float(value), precision)
    if rounded == 0:
        rounded = 0.0  # avoid "-0.00000"
    return f"{rounded:.{precision}f}"


def stable_id(prefix: str, *parts) -> str:
    """
    Build a deterministic id from a prefix and canonical string parts.

    Floats are quantized first so that round-off below the id grid does
    not change the id.
    """
    canonical = []
    for part in parts:
        if part is None:
            canonical.append('-')
        elif isinstance(part, float):
            canonical.append(quantize(part))
        else:
            canonical.append(str(part))
    digest = hashlib.sha1('|'.join(canonical).encode('utf-8')).hexdigest()[:16]
    return f"{prefix}_{digest}"
