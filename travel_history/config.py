"""
Tunable parameters for the travel history pipeline.

All values are plain parameters; nothing is discovered at runtime.
"""

from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any, Dict, Mapping


# Transport classification thresholds (km/h, km/h^2, meters)
TRANSPORT_THRESHOLDS = {
    'walk_max_speed': 7.0,
    'bike_max_speed': 25.0,
    'car_max_speed': 120.0,
    'train_min_speed': 40.0,
    'train_max_speed': 200.0,
    'train_max_variance': 100.0,
    'plane_min_speed': 200.0,
    'plane_altitude_swing': 1000.0,
}


@dataclass(frozen=True)
class TransportThresholds:
    """Speed/variance/altitude limits used by the transport classifier."""
    walk_max_speed: float = TRANSPORT_THRESHOLDS['walk_max_speed']
    bike_max_speed: float = TRANSPORT_THRESHOLDS['bike_max_speed']
    car_max_speed: float = TRANSPORT_THRESHOLDS['car_max_speed']
    train_min_speed: float = TRANSPORT_THRESHOLDS['train_min_speed']
    train_max_speed: float = TRANSPORT_THRESHOLDS['train_max_speed']
    train_max_variance: float = TRANSPORT_THRESHOLDS['train_max_variance']
    plane_min_speed: float = TRANSPORT_THRESHOLDS['plane_min_speed']
    plane_altitude_swing: float = TRANSPORT_THRESHOLDS['plane_altitude_swing']


def _thresholds_from_dict(values: Mapping[str, Any]) -> TransportThresholds:
    known = {f.name for f in fields(TransportThresholds)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown transport threshold keys: {', '.join(unknown)}")
    return TransportThresholds(**values)


_DURATION_FIELDS = {
    'min_visit_duration',
    'geocoding_cache_ttl',
    'geocoding_timeout',
    'trip_max_gap',
    'min_trip_duration',
    'ongoing_window',
}


@dataclass(frozen=True)
class PipelineConfig:
    """
    Every tunable of the batch pipeline with its default.

    Distances are meters, durations are timedeltas.
    """
    # Place visits
    spatial_threshold_m: float = 100.0
    min_visit_duration: timedelta = timedelta(minutes=10)

    # Route segments
    simplification_epsilon_m: float = 50.0
    transport_window_size: int = 5
    transport_thresholds: TransportThresholds = field(default_factory=TransportThresholds)

    # Geocoding
    geocoding_cache_radius_m: float = 100.0
    geocoding_cache_ttl: timedelta = timedelta(days=30)
    geocoding_timeout: timedelta = timedelta(seconds=10)

    # Home detection
    home_radius_m: float = 500.0
    home_min_visits: int = 3
    home_duration_weight: float = 0.5
    home_frequency_weight: float = 0.5

    # Trips
    trip_distance_threshold_m: float = 100_000.0
    trip_max_gap: timedelta = timedelta(hours=36)
    min_trip_duration: timedelta = timedelta(hours=4)
    ongoing_window: timedelta = timedelta(hours=24)
    trip_day_timezone: str = 'UTC'

    # Optional sample filtering ahead of route building
    filter_route_samples: bool = False

    def __post_init__(self):
        if self.spatial_threshold_m <= 0:
            raise ValueError("spatial_threshold_m must be positive")
        if self.simplification_epsilon_m < 0:
            raise ValueError("simplification_epsilon_m must be non-negative")
        if self.transport_window_size < 2:
            raise ValueError("transport_window_size must be at least 2")
        if self.home_min_visits < 1:
            raise ValueError("home_min_visits must be at least 1")
        if self.home_duration_weight < 0 or self.home_frequency_weight < 0:
            raise ValueError("home scoring weights must be non-negative")
        for name in _DURATION_FIELDS:
            if getattr(self, name) < timedelta(0):
                raise ValueError(f"{name} must be non-negative")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'PipelineConfig':
        """
        Build a config from a plain mapping (e.g. parsed JSON).

        Durations may be given as seconds. ``transport_thresholds`` may be a
        nested mapping. Unknown keys raise ValueError.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key in _DURATION_FIELDS and not isinstance(value, timedelta):
                value = timedelta(seconds=float(value))
            elif key == 'transport_thresholds' and isinstance(value, Mapping):
                value = _thresholds_from_dict(value)
            kwargs[key] = value
        return cls(**kwargs)
