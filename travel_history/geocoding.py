"""
Reverse geocoding with a spatial-proximity cache.

Components:
- ReverseGeocoder: capability interface (lat/lon -> GeocodedLocation or None)
- NominatimReverseGeocoder: OpenStreetMap Nominatim client
- StaticReverseGeocoder: nearest-match lookup over a fixed list of places
- GeocodingCache: TTL cache answering "anything cached near here?"
- CachingReverseGeocoder: read-through wrapper with a per-lookup timeout

Public reverse-geocoding services are rate-limited. For Nominatim respect the
usage policy: keep at least one second between requests and send a
descriptive User-Agent.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np
import pandas as pd
import requests

from .coordinates import bounding_box, haversine_distance
from .models import GeocodedLocation, epoch_ms

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReverseGeocoder(ABC):
    """
    Turns a coordinate into an address.

    Implementations must not raise: any failure is reported as None.
    """

    @abstractmethod
    def reverse_geocode(self, latitude: float, longitude: float) -> Optional[GeocodedLocation]:
        """Return the address at the coordinate, or None if unavailable."""


@dataclass(frozen=True)
class NominatimConfig:
    """Configuration for the Nominatim reverse API."""
    base_url: str = 'https://nominatim.openstreetmap.org/reverse'
    accept_language: str = 'en'
    zoom: int = 18
    timeout_seconds: float = 10.0
    min_interval_seconds: float = 1.0
    user_agent: str = 'travel-history/0.1.0 (reverse-geocode; please set your own UA)'


def parse_nominatim_response(raw: Dict[str, Any], latitude: float, longitude: float) -> Optional[GeocodedLocation]:
    """
    Map a Nominatim ``jsonv2`` reverse response to a GeocodedLocation.

    Returns None for error payloads (e.g. ``{"error": "Unable to geocode"}``).
    """
    if not raw or 'error' in raw:
        return None

    address = raw.get('address') or {}
    city = (address.get('city') or address.get('town') or address.get('village')
            or address.get('hamlet') or address.get('municipality'))
    country_code = address.get('country_code')

    return GeocodedLocation(
        latitude=latitude,
        longitude=longitude,
        formatted_address=raw.get('display_name') or None,
        city=city,
        state=address.get('state') or address.get('region'),
        country_code=country_code.upper() if country_code else None,
        country_name=address.get('country'),
        postal_code=address.get('postcode'),
        poi_name=raw.get('name') or None,
        street=address.get('road'),
        street_number=address.get('house_number'),
    )


class NominatimReverseGeocoder(ReverseGeocoder):
    """Reverse geocoder using OpenStreetMap Nominatim."""

    def __init__(self, config: Optional[NominatimConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or NominatimConfig()
        self.session = session or requests.Session()
        self._last_request_at = 0.0
        self._throttle_lock = threading.Lock()

    def reverse_geocode(self, latitude: float, longitude: float) -> Optional[GeocodedLocation]:
        params = {
            'format': 'jsonv2',
            'lat': f"{latitude:.8f}",
            'lon': f"{longitude:.8f}",
            'zoom': str(self.config.zoom),
            'addressdetails': '1',
            'accept-language': self.config.accept_language,
        }
        headers = {
            'User-Agent': self.config.user_agent,
            'Accept': 'application/json',
        }

        self._sleep_if_needed()
        try:
            response = self.session.get(
                self.config.base_url,
                params=params,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            raw = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Nominatim lookup failed for (%.6f, %.6f): %s", latitude, longitude, exc)
            return None

        return parse_nominatim_response(raw, latitude, longitude)

    def _sleep_if_needed(self) -> None:
        # Held across the sleep; requests stay min_interval_seconds apart across threads
        with self._throttle_lock:
            now = time.monotonic()
            wait = self.config.min_interval_seconds - (now - self._last_request_at)
            if wait > 0:
                time.sleep(wait)
            self._last_request_at = time.monotonic()


class StaticReverseGeocoder(ReverseGeocoder):
    """
    Resolves coordinates against a fixed list of known places.

    The nearest place within ``radius_m`` wins. Useful offline and in tests.
    """

    def __init__(self, places: Sequence[GeocodedLocation], radius_m: float = 1000.0):
        self.places = list(places)
        self.radius_m = radius_m
        self.calls = 0

    def reverse_geocode(self, latitude: float, longitude: float) -> Optional[GeocodedLocation]:
        self.calls += 1
        if not self.places:
            return None
        lats = np.array([p.latitude for p in self.places])
        lons = np.array([p.longitude for p in self.places])
        distances = haversine_distance(latitude, longitude, lats, lons)
        best = int(np.argmin(distances))
        if distances[best] > self.radius_m:
            return None
        return self.places[best]


def _row_key(latitude: float, longitude: float) -> str:
    return f"{float(latitude)!r},{float(longitude)!r}"


def _longitude_mask(lons: pd.Series, min_lon: float, max_lon: float) -> pd.Series:
    """Longitude range test that wraps across the antimeridian."""
    if min_lon < -180.0:
        return (lons >= min_lon + 360.0) | (lons <= max_lon)
    if max_lon > 180.0:
        return (lons >= min_lon) | (lons <= max_lon - 360.0)
    return lons.between(min_lon, max_lon)


def _empty_frame() -> pd.DataFrame:
    return pd.DataFrame({
        'latitude': pd.Series(dtype=float),
        'longitude': pd.Series(dtype=float),
        'cached_at_ms': pd.Series(dtype='int64'),
        'expires_at_ms': pd.Series(dtype='int64'),
        'location': pd.Series(dtype=object),
    })


class GeocodingCache:
    """
    Spatial-proximity cache of geocoded locations.

    Rows are keyed by their exact coordinate pair and are visible to reads only
    while ``now < expires_at``. Lookups narrow candidates with a bounding box,
    then pick the nearest row by exact Haversine distance.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now
        self._frame = _empty_frame()

    def _now_ms(self) -> int:
        return epoch_ms(self._clock())

    def get(self, latitude: float, longitude: float, radius_m: float) -> Optional[GeocodedLocation]:
        """
        Find the nearest live entry within ``radius_m`` of the coordinate.

        Args:
            latitude, longitude: Query point (degrees)
            radius_m: Search radius in meters

        Returns:
            Cached GeocodedLocation, or None on a miss
        """
        frame = self._frame
        if frame.empty:
            return None

        now_ms = self._now_ms()
        box = bounding_box(latitude, longitude, radius_m)
        mask = (
            frame['latitude'].between(box.min_lat, box.max_lat)
            & _longitude_mask(frame['longitude'], box.min_lon, box.max_lon)
            & (frame['expires_at_ms'] > now_ms)
        )
        candidates = frame[mask]
        if candidates.empty:
            logger.debug("Geocoding cache miss for (%.6f, %.6f)", latitude, longitude)
            return None

        distances = np.atleast_1d(haversine_distance(
            latitude,
            longitude,
            candidates['latitude'].to_numpy(dtype=float),
            candidates['longitude'].to_numpy(dtype=float),
        ))
        distances = np.where(distances <= radius_m, distances, np.inf)
        best = int(np.argmin(distances))
        if not np.isfinite(distances[best]):
            logger.debug("Geocoding cache miss for (%.6f, %.6f)", latitude, longitude)
            return None

        location = candidates['location'].iloc[best]
        logger.debug("Geocoding cache hit for (%.6f, %.6f): %s",
                     latitude, longitude, location.city or location.formatted_address)
        return location

    def put(self, location: GeocodedLocation, ttl_seconds: float) -> None:
        """Insert or replace the entry at the location's exact coordinates."""
        now_ms = self._now_ms()
        key = _row_key(location.latitude, location.longitude)
        row = pd.DataFrame(
            {
                'latitude': [float(location.latitude)],
                'longitude': [float(location.longitude)],
                'cached_at_ms': [now_ms],
                'expires_at_ms': [now_ms + int(round(ttl_seconds * 1000))],
                'location': pd.Series([location], index=[key], dtype=object),
            },
            index=[key],
        )
        frame = self._frame.drop(index=key, errors='ignore')
        self._frame = pd.concat([frame, row]) if not frame.empty else row

    def clear_expired(self) -> int:
        """Drop expired rows; returns how many were removed."""
        before = len(self._frame)
        self._frame = self._frame[self._frame['expires_at_ms'] > self._now_ms()]
        removed = before - len(self._frame)
        if removed:
            logger.debug("Removed %d expired geocoding cache rows", removed)
        return removed

    def clear(self) -> None:
        self._frame = _empty_frame()

    def count(self) -> int:
        """Number of non-expired rows."""
        if self._frame.empty:
            return 0
        return int((self._frame['expires_at_ms'] > self._now_ms()).sum())


class CachingReverseGeocoder(ReverseGeocoder):
    """
    Read-through cache in front of another ReverseGeocoder.

    A miss calls the wrapped geocoder, bounded by ``timeout``; successful
    results are cached at the queried coordinate. Failures and timeouts yield
    None and are not cached.
    """

    def __init__(
        self,
        geocoder: ReverseGeocoder,
        cache: Optional[GeocodingCache] = None,
        radius_m: float = 100.0,
        ttl: timedelta = timedelta(days=30),
        timeout: timedelta = timedelta(seconds=10),
        max_workers: int = 2,
    ):
        self.geocoder = geocoder
        self.cache = cache if cache is not None else GeocodingCache()
        self.radius_m = radius_m
        self.ttl = ttl
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='reverse-geocode')

    def reverse_geocode(self, latitude: float, longitude: float) -> Optional[GeocodedLocation]:
        cached = self.cache.get(latitude, longitude, self.radius_m)
        if cached is not None:
            return cached

        result = self._lookup(latitude, longitude)
        if result is None:
            return None

        result = replace(result, latitude=latitude, longitude=longitude)
        self.cache.put(result, self.ttl.total_seconds())
        return result

    def _lookup(self, latitude: float, longitude: float) -> Optional[GeocodedLocation]:
        future = self._executor.submit(self.geocoder.reverse_geocode, latitude, longitude)
        try:
            return future.result(timeout=self.timeout.total_seconds())
        except FutureTimeoutError:
            future.cancel()
            logger.warning("Reverse geocoding timed out after %.1fs for (%.6f, %.6f)",
                           self.timeout.total_seconds(), latitude, longitude)
        except Exception:
            logger.warning("Reverse geocoder raised for (%.6f, %.6f)", latitude, longitude, exc_info=True)
        return None

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def __enter__(self) -> 'CachingReverseGeocoder':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
