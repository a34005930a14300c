"""
Shared fixtures for travel_history tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from travel_history.models import PlaceVisit


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def t0():
    return datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)


def make_visit(visit_id, lat, lon, start, hours, country_code=None, city=None, user_id='user'):
    """Build a PlaceVisit lasting ``hours`` from ``start``."""
    return PlaceVisit(
        id=visit_id,
        start_time=start,
        end_time=start + timedelta(hours=hours),
        center_latitude=lat,
        center_longitude=lon,
        user_id=user_id,
        country_code=country_code,
        city=city,
    )
