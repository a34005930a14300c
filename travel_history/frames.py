"""
Conversion between pandas DataFrames and domain entities.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .coordinates import stable_id
from .models import LocationSample, LocationSource, PlaceVisit, RouteSegment, Trip, epoch_ms

logger = logging.getLogger(__name__)


def _optional_float(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _parse_timestamps(column: pd.Series, time_unit: str) -> pd.Series:
    if pd.api.types.is_datetime64_any_dtype(column):
        parsed = pd.to_datetime(column, utc=True)
    elif pd.api.types.is_numeric_dtype(column):
        parsed = pd.to_datetime(column, unit=time_unit, utc=True)
    else:
        parsed = pd.to_datetime(column, utc=True, errors='coerce')
    return parsed


def samples_from_dataframe(
    df: pd.DataFrame,
    time_col: str = 'timestamp',
    lat_col: str = 'latitude',
    lon_col: str = 'longitude',
    user_col: str = 'user_id',
    id_col: str = 'id',
    accuracy_col: str = 'accuracy',
    speed_col: str = 'speed',
    bearing_col: str = 'bearing',
    alt_col: str = 'altitude',
    source_col: str = 'source',
    default_user: str = '',
    time_unit: str = 'ms',
) -> List[LocationSample]:
    """
    Build location samples from a DataFrame.

    Only the time, latitude and longitude columns are required; the other
    columns are used when present. Numeric timestamps are read in
    ``time_unit`` (epoch milliseconds by default). Rows with an unparseable
    time or missing coordinates are skipped.

    Args:
        df: DataFrame with one row per location fix
        time_col: Name of timestamp column
        lat_col: Name of latitude column
        lon_col: Name of longitude column
        default_user: Owner for rows without a user column value

    Returns:
        List of LocationSample in row order
    """
    missing = [c for c in (time_col, lat_col, lon_col) if c not in df.columns]
    if missing:
        raise ValueError(f"DataFrame is missing required columns: {', '.join(missing)}")

    times = _parse_timestamps(df[time_col], time_unit)
    usable = times.notna() & df[lat_col].notna() & df[lon_col].notna()
    if not usable.all():
        logger.warning("Skipping %d rows with missing time or coordinates", int((~usable).sum()))

    def column(name):
        return df[name] if name in df.columns else pd.Series([None] * len(df), index=df.index)

    users = column(user_col)
    ids = column(id_col)
    accuracies = column(accuracy_col)
    speeds = column(speed_col)
    bearings = column(bearing_col)
    altitudes = column(alt_col)
    sources = column(source_col)

    samples = []
    for idx in df.index[usable.values]:
        timestamp = times[idx].to_pydatetime()
        lat = float(df.at[idx, lat_col])
        lon = float(df.at[idx, lon_col])
        user = users[idx] if users[idx] is not None and not pd.isna(users[idx]) else default_user
        user = str(user)

        sample_id = ids[idx]
        if sample_id is None or pd.isna(sample_id):
            sample_id = stable_id('sample', user, epoch_ms(timestamp), lat, lon)

        source = LocationSource.GPS
        if sources[idx] is not None and not pd.isna(sources[idx]):
            try:
                source = LocationSource(str(sources[idx]).lower())
            except ValueError:
                source = LocationSource.UNKNOWN

        samples.append(LocationSample(
            id=str(sample_id),
            timestamp=timestamp,
            latitude=lat,
            longitude=lon,
            accuracy=_optional_float(accuracies[idx]) or 0.0,
            speed=_optional_float(speeds[idx]),
            bearing=_optional_float(bearings[idx]),
            altitude=_optional_float(altitudes[idx]),
            source=source,
            user_id=user,
        ))

    return samples


def samples_to_dataframe(samples: Sequence[LocationSample]) -> pd.DataFrame:
    """Inverse of samples_from_dataframe (timestamps as UTC datetimes)."""
    return pd.DataFrame({
        'id': [s.id for s in samples],
        'user_id': [s.user_id for s in samples],
        'timestamp': pd.to_datetime([epoch_ms(s.timestamp) for s in samples], unit='ms', utc=True),
        'latitude': [s.latitude for s in samples],
        'longitude': [s.longitude for s in samples],
        'accuracy': [s.accuracy for s in samples],
        'speed': [s.speed if s.speed is not None else np.nan for s in samples],
        'bearing': [s.bearing if s.bearing is not None else np.nan for s in samples],
        'altitude': [s.altitude if s.altitude is not None else np.nan for s in samples],
        'source': [s.source.value for s in samples],
    })


VISIT_COLUMNS = [
    'id', 'user_id', 'start_time', 'end_time', 'duration_minutes',
    'center_latitude', 'center_longitude', 'sample_count',
    'approximate_address', 'poi_name', 'city', 'country_code',
]

SEGMENT_COLUMNS = [
    'id', 'user_id', 'start_time', 'end_time', 'duration_minutes',
    'distance_km', 'transport_type', 'average_speed_kmh',
    'from_place_visit_id', 'to_place_visit_id', 'path_points', 'sample_count',
]

TRIP_COLUMNS = [
    'id', 'user_id', 'name', 'start_time', 'end_time', 'is_ongoing',
    'primary_country', 'visit_count',
]


def visits_to_dataframe(visits: Sequence[PlaceVisit]) -> pd.DataFrame:
    rows = [{
        'id': v.id,
        'user_id': v.user_id,
        'start_time': v.start_time,
        'end_time': v.end_time,
        'duration_minutes': v.duration.total_seconds() / 60.0,
        'center_latitude': v.center_latitude,
        'center_longitude': v.center_longitude,
        'sample_count': len(v.location_sample_ids),
        'approximate_address': v.approximate_address,
        'poi_name': v.poi_name,
        'city': v.city,
        'country_code': v.country_code,
    } for v in visits]
    return pd.DataFrame(rows, columns=VISIT_COLUMNS)


def segments_to_dataframe(segments: Sequence[RouteSegment]) -> pd.DataFrame:
    """
    Flatten route segments; the simplified path becomes a "lat lon;lat lon" string.
    """
    rows = [{
        'id': s.id,
        'user_id': s.user_id,
        'start_time': s.start_time,
        'end_time': s.end_time,
        'duration_minutes': s.duration.total_seconds() / 60.0,
        'distance_km': s.distance_meters / 1000.0,
        'transport_type': s.transport_type.value,
        'average_speed_kmh': s.average_speed_mps * 3.6 if s.average_speed_mps is not None else np.nan,
        'from_place_visit_id': s.from_place_visit_id,
        'to_place_visit_id': s.to_place_visit_id,
        'path_points': ';'.join(f"{c.latitude:.6f} {c.longitude:.6f}" for c in s.simplified_path),
        'sample_count': len(s.location_sample_ids),
    } for s in segments]
    return pd.DataFrame(rows, columns=SEGMENT_COLUMNS)


def trips_to_dataframe(trips: Sequence[Trip]) -> pd.DataFrame:
    rows = [{
        'id': t.id,
        'user_id': t.user_id,
        'name': t.name,
        'start_time': t.start_time,
        'end_time': t.end_time,
        'is_ongoing': t.is_ongoing,
        'primary_country': t.primary_country,
        'visit_count': len(t.visit_ids),
    } for t in trips]
    return pd.DataFrame(rows, columns=TRIP_COLUMNS)
