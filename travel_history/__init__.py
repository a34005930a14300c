"""
Travel History - Derive place visits, routes and trips from raw location samples.

This package provides tools for:
- Clustering time-ordered location fixes into place visits
- Building simplified route segments with an inferred transport mode
- Detecting the user's home and the trips taken away from it
- Reverse geocoding visits through a spatial/TTL cache

Example usage:
    from travel_history import LocationProcessor, PipelineConfig
    from travel_history.sample_data import generate_travel_history

    samples = generate_travel_history()
    result = LocationProcessor(PipelineConfig()).process(samples, user_id='user')
    for trip in result.trips:
        print(trip.start_time, trip.end_time, trip.is_ongoing)
"""

from .config import PipelineConfig, TransportThresholds
from .coordinates import haversine_distance, bounding_box, stable_id
from .geocoding import (
    CachingReverseGeocoder,
    GeocodingCache,
    NominatimReverseGeocoder,
    ReverseGeocoder,
    StaticReverseGeocoder,
)
from .home import HomeLocationDetector
from .models import (
    Coordinate,
    GeocodedLocation,
    LocationSample,
    LocationSource,
    PlaceVisit,
    RouteSegment,
    TransportType,
    Trip,
    TripDay,
)
from .pipeline import LocationProcessor, ProcessingResult
from .routes import RouteSegmentBuilder
from .simplify import PathSimplifier
from .transport import TransportModeDetector
from .trips import TripBoundaryDetector, TripDetector
from .visits import PlaceVisitDetector

__version__ = "0.1.0"
__all__ = [
    "PipelineConfig",
    "TransportThresholds",
    "haversine_distance",
    "bounding_box",
    "stable_id",
    "CachingReverseGeocoder",
    "GeocodingCache",
    "NominatimReverseGeocoder",
    "ReverseGeocoder",
    "StaticReverseGeocoder",
    "HomeLocationDetector",
    "Coordinate",
    "GeocodedLocation",
    "LocationSample",
    "LocationSource",
    "PlaceVisit",
    "RouteSegment",
    "TransportType",
    "Trip",
    "TripDay",
    "LocationProcessor",
    "ProcessingResult",
    "RouteSegmentBuilder",
    "PathSimplifier",
    "TransportModeDetector",
    "TripBoundaryDetector",
    "TripDetector",
    "PlaceVisitDetector",
]
