"""
Synthetic location histories for testing and development.

Generates sample streams with typical patterns:
- Stays (a phone lying still, with small GPS jitter)
- Movements made of constant-speed legs (walks, drives, flights)
- Multi-day histories with a home, a workplace and a trip away
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .models import LocationSample, epoch_ms


# Reference locations
SAN_FRANCISCO = (37.7749, -122.4194)
LOS_ANGELES = (34.0522, -118.2437)
DEFAULT_START = datetime(2024, 3, 4, tzinfo=timezone.utc)  # a Monday


def _meters_to_degrees_lat(meters):
    """Convert meters to degrees latitude (approximate)."""
    return meters / 111320.0


def _meters_to_degrees_lon(meters, lat: float):
    """Convert meters to degrees longitude at given latitude."""
    return meters / (111320.0 * np.cos(np.radians(lat)))


def offset_position(lat: float, lon: float, north_m: float, east_m: float) -> Tuple[float, float]:
    """Move a position by a local north/east offset in meters."""
    return (
        float(lat + _meters_to_degrees_lat(north_m)),
        float(lon + _meters_to_degrees_lon(east_m, lat)),
    )


def _sample(user_id: str, timestamp: datetime, lat: float, lon: float,
            altitude: Optional[float] = None) -> LocationSample:
    return LocationSample(
        id=f"{user_id}-{epoch_ms(timestamp)}",
        timestamp=timestamp,
        latitude=float(lat),
        longitude=float(lon),
        accuracy=10.0,
        altitude=altitude,
        user_id=user_id,
    )


def generate_stay(
    lat: float,
    lon: float,
    start: datetime,
    duration: timedelta,
    interval: timedelta = timedelta(minutes=1),
    jitter_m: float = 5.0,
    user_id: str = 'user',
    rng: Optional[np.random.Generator] = None,
) -> List[LocationSample]:
    """
    Generate samples of a device staying at one place.

    Jitter is gaussian (std ``jitter_m``) clipped to three standard deviations.

    Args:
        lat, lon: Place position
        start: Time of the first sample
        duration: Time span from the first to the last sample
        interval: Sampling interval

    Returns:
        Samples in time order, first at ``start`` and last at ``start + duration``
    """
    rng = rng or np.random.default_rng(0)
    num_points = int(duration / interval) + 1

    if jitter_m > 0:
        noise = np.clip(rng.normal(0, jitter_m, (num_points, 2)), -3 * jitter_m, 3 * jitter_m)
    else:
        noise = np.zeros((num_points, 2))
    lats = lat + _meters_to_degrees_lat(noise[:, 0])
    lons = lon + _meters_to_degrees_lon(noise[:, 1], lat)

    samples = [_sample(user_id, start + i * interval, lats[i], lons[i]) for i in range(num_points - 1)]
    samples.append(_sample(user_id, start + duration, lats[-1], lons[-1]))
    return samples


def generate_legs(
    lat: float,
    lon: float,
    start: datetime,
    heading: float,  # degrees, 0 = North
    speeds_kmh: Sequence[float],
    interval: timedelta = timedelta(minutes=1),
    altitudes: Optional[Sequence[float]] = None,
    include_origin: bool = True,
    user_id: str = 'user',
) -> List[LocationSample]:
    """
    Generate a straight movement made of constant-speed legs.

    Leg ``i`` lasts ``interval`` at ``speeds_kmh[i]``; one sample is emitted at
    the end of every leg.

    Args:
        altitudes: Optional altitude per emitted sample (origin included when emitted)
        include_origin: Also emit a sample at the starting point

    Returns:
        Samples in time order
    """
    heading_rad = np.radians(heading)
    seconds = interval.total_seconds()

    offsets = np.concatenate([[0.0], np.cumsum(np.asarray(speeds_kmh, dtype=float) / 3.6 * seconds)])
    north = offsets * np.cos(heading_rad)
    east = offsets * np.sin(heading_rad)
    lats = lat + _meters_to_degrees_lat(north)
    lons = lon + _meters_to_degrees_lon(east, lat)

    first = 0 if include_origin else 1
    samples = []
    for i in range(first, len(offsets)):
        altitude = altitudes[i - first] if altitudes is not None else None
        samples.append(_sample(user_id, start + i * interval, lats[i], lons[i], altitude))
    return samples


def generate_drive(
    lat: float,
    lon: float,
    start: datetime,
    heading: float,
    distance_m: float,
    speeds_kmh: Tuple[float, float] = (40.0, 80.0),
    interval: timedelta = timedelta(minutes=1),
    user_id: str = 'user',
) -> List[LocationSample]:
    """
    Generate road traffic: legs alternating between two speeds.

    The alternation keeps the speed variance of any window well above what a
    train would show. The origin is not emitted.

    Returns:
        Samples in time order, the last one ``distance_m`` from the origin
    """
    leg_m = [s / 3.6 * interval.total_seconds() for s in speeds_kmh]
    speeds = []
    travelled = 0.0
    i = 0
    while travelled + leg_m[i % 2] <= distance_m + 1e-6:
        speeds.append(speeds_kmh[i % 2])
        travelled += leg_m[i % 2]
        i += 1
    return generate_legs(lat, lon, start, heading, speeds, interval, include_origin=False, user_id=user_id)


def generate_commute_day(seed: Optional[int] = 42, user_id: str = 'user',
                         start: datetime = DEFAULT_START) -> List[LocationSample]:
    """
    Stay 20 minutes at A, drive 40 km at about 60 km/h, stay 30 minutes at B.

    A is San Francisco; B lies 40 km due east.
    """
    rng = np.random.default_rng(seed)
    a_lat, a_lon = SAN_FRANCISCO
    stay_a = generate_stay(a_lat, a_lon, start, timedelta(minutes=20), user_id=user_id, rng=rng)
    drive_start = stay_a[-1].timestamp
    drive = generate_drive(a_lat, a_lon, drive_start, heading=90.0, distance_m=40_000.0, user_id=user_id)
    b_lat, b_lon = offset_position(a_lat, a_lon, 0.0, 40_000.0)
    stay_b = generate_stay(b_lat, b_lon, drive[-1].timestamp + timedelta(minutes=1), timedelta(minutes=30),
                           user_id=user_id, rng=rng)
    return stay_a + drive + stay_b


def generate_overnight_stay(seed: Optional[int] = 42, user_id: str = 'user',
                            start: datetime = DEFAULT_START) -> List[LocationSample]:
    """A single stay from 22:00 to 07:00 the next morning, one fix per 15 minutes."""
    rng = np.random.default_rng(seed)
    lat, lon = SAN_FRANCISCO
    return generate_stay(lat, lon, start + timedelta(hours=22), timedelta(hours=9),
                         interval=timedelta(minutes=15), user_id=user_id, rng=rng)


def _stay(spans: List[Tuple[Tuple[float, float], datetime, datetime]],
          place: Tuple[float, float], start: datetime, end: datetime) -> None:
    spans.append((place, start, end))


def generate_travel_history(
    seed: Optional[int] = 42,
    user_id: str = 'user',
    start: datetime = DEFAULT_START,
    home_days: int = 3,
    trip_days: int = 3,
    return_home: bool = True,
    home: Tuple[float, float] = SAN_FRANCISCO,
    destination: Tuple[float, float] = LOS_ANGELES,
) -> List[LocationSample]:
    """
    Generate a multi-day history: ordinary days at home and at the office,
    then a trip to ``destination`` with a hotel night and a sightseeing stop
    per day, then (optionally) the return home.

    Day d of the history starts at ``start + d days``. The trip's first
    sightseeing stop is at 10:00 on day ``home_days``; the last hotel night
    ends at 08:00 on day ``home_days + trip_days``; the user is back home at
    20:00 that same day.

    Returns:
        Samples in time order, one fix per 10 minutes while staying
    """
    rng = np.random.default_rng(seed)
    office = offset_position(home[0], home[1], 5_000.0, 0.0)

    def day(d: int, hours: float) -> datetime:
        return start + timedelta(days=d, hours=hours)

    spans: List[Tuple[Tuple[float, float], datetime, datetime]] = []
    for d in range(home_days):
        _stay(spans, home, day(d, 0), day(d, 8))
        _stay(spans, office, day(d, 9), day(d, 17))
        _stay(spans, home, day(d, 18), day(d, 23) + timedelta(minutes=50))

    for t in range(trip_days):
        d = home_days + t
        sight = offset_position(destination[0], destination[1], 0.0, 3_000.0 * (t + 1))
        _stay(spans, sight, day(d, 10), day(d, 16))
        _stay(spans, destination, day(d, 18), day(d + 1, 8))

    if return_home:
        d = home_days + trip_days
        _stay(spans, home, day(d, 20), day(d + 1, 8))

    samples: List[LocationSample] = []
    for (lat, lon), span_start, span_end in spans:
        samples.extend(generate_stay(lat, lon, span_start, span_end - span_start,
                                     interval=timedelta(minutes=10), user_id=user_id, rng=rng))
    return samples
