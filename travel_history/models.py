"""
Domain entities for travel history derivation.

Samples come in from the tracker; visits, route segments and trips are
produced fresh by every batch run and never mutated afterwards.
"""

from dataclasses import dataclass, field
from datetime import date as calendar_date, datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware datetime, treating naive input as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def epoch_ms(dt: datetime) -> int:
    """Unix epoch milliseconds of a datetime (naive = UTC)."""
    return int(round(ensure_utc(dt).timestamp() * 1000))


class LocationSource(Enum):
    """Positioning source reported by the device."""
    GPS = "gps"
    NETWORK = "network"
    PASSIVE = "passive"
    UNKNOWN = "unknown"


class TransportType(Enum):
    """Inferred mode of travel."""
    WALK = "walk"
    BIKE = "bike"
    CAR = "car"
    TRAIN = "train"
    PLANE = "plane"
    BOAT = "boat"
    UNKNOWN = "unknown"

    @classmethod
    def infer_from_speed(cls, speed_mps: Optional[float]) -> 'TransportType':
        """
        Coarse speed-only guess for a whole movement.

        Args:
            speed_mps: Average speed in meters/second (None if unknown)

        Returns:
            TransportType (UNKNOWN when speed is missing or negative)
        """
        if speed_mps is None or speed_mps < 0:
            return cls.UNKNOWN
        if speed_mps < 2.0:
            return cls.WALK
        if speed_mps < 7.0:
            return cls.BIKE
        if speed_mps < 40.0:
            return cls.CAR
        if speed_mps < 70.0:
            return cls.TRAIN
        return cls.PLANE


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class LocationSample:
    """
    A single raw location fix.

    Attributes:
        id: Sample identifier assigned by the tracker
        timestamp: Time of the fix (timezone-aware)
        latitude, longitude: Position in degrees
        accuracy: Horizontal accuracy in meters
        speed: Reported speed in m/s, if any
        bearing: Reported bearing in degrees, if any
        altitude: Altitude in meters, if any
        source: Positioning source
        user_id: Owning user
        device_id: Recording device
    """
    id: str
    timestamp: datetime
    latitude: float
    longitude: float
    accuracy: float = 0.0
    speed: Optional[float] = None
    bearing: Optional[float] = None
    altitude: Optional[float] = None
    source: LocationSource = LocationSource.GPS
    user_id: str = ''
    device_id: str = ''

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass(frozen=True)
class GeocodedLocation:
    """Result of reverse geocoding a coordinate."""
    latitude: float
    longitude: float
    formatted_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    postal_code: Optional[str] = None
    poi_name: Optional[str] = None
    street: Optional[str] = None
    street_number: Optional[str] = None


@dataclass(frozen=True)
class PlaceVisit:
    """A dwell period at a roughly fixed location."""
    id: str
    start_time: datetime
    end_time: datetime
    center_latitude: float
    center_longitude: float
    location_sample_ids: Tuple[str, ...] = ()
    user_id: str = ''
    approximate_address: Optional[str] = None
    poi_name: Optional[str] = None
    city: Optional[str] = None
    country_code: Optional[str] = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def center(self) -> Coordinate:
        return Coordinate(self.center_latitude, self.center_longitude)


@dataclass(frozen=True)
class RouteSegment:
    """Movement between two place visits."""
    id: str
    start_time: datetime
    end_time: datetime
    simplified_path: Tuple[Coordinate, ...]
    distance_meters: float
    transport_type: TransportType = TransportType.UNKNOWN
    user_id: str = ''
    from_place_visit_id: Optional[str] = None
    to_place_visit_id: Optional[str] = None
    location_sample_ids: Tuple[str, ...] = ()
    average_speed_mps: Optional[float] = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class Trip:
    """A contiguous run of visits away from home."""
    id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    primary_country: Optional[str] = None
    is_ongoing: bool = False
    visit_ids: Tuple[str, ...] = ()
    name: Optional[str] = None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


class TimelineItemKind(Enum):
    """Kinds of entries in a day timeline."""
    DAY_START = "day_start"
    VISIT = "visit"
    ROUTE = "route"
    DAY_END = "day_end"


@dataclass(frozen=True)
class TimelineItem:
    """One entry of a trip day timeline."""
    id: str
    kind: TimelineItemKind
    timestamp: datetime
    place_visit: Optional[PlaceVisit] = None
    route_segment: Optional[RouteSegment] = None


@dataclass
class TripDay:
    """Ordered visits and routes of a trip on one calendar day."""
    id: str
    trip_id: str
    date: calendar_date
    items: List[TimelineItem] = field(default_factory=list)

    @property
    def visits(self) -> List[PlaceVisit]:
        return [item.place_visit for item in self.items if item.place_visit is not None]

    @property
    def routes(self) -> List[RouteSegment]:
        return [item.route_segment for item in self.items if item.route_segment is not None]
