import math
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

import pytest
from fastapi.testclient import TestClient

from ephemeris_server.ephemeris.bodies import ALL_BODIES, OBSERVER_BODY
from ephemeris_server.ephemeris.provider import BodyPosition
from ephemeris_server.service import EphemerisService

# Longitudes chosen so the aspect tests have known answers:
# sun/moon 90 apart (square), sun/venus 0.5 apart (exact conjunction),
# sun/mars 120 apart (trine), sun/jupiter 180 apart (opposition).
DEFAULT_LONGITUDES = {
    "sun": 10.0,
    "moon": 100.0,
    "mercury": 25.0,
    "venus": 10.5,
    "mars": 130.0,
    "jupiter": 190.0,
    "saturn": 340.0,
    "uranus": 53.0,
    "neptune": 357.0,
    "pluto": 301.0,
    "chiron": 19.0,
    "sirius": 104.2,
}


def minutes_of_day(instant: datetime) -> int:
    return instant.hour * 60 + instant.minute


def sinusoidal_altitude(instant: datetime) -> float:
    """Rises at 06:00, peaks at 12:00 (30 deg) and sets at 18:00 UTC."""
    return 30.0 * math.sin(2 * math.pi * (minutes_of_day(instant) - 360) / 1440)


class FakePositionProvider:
    """In-memory position provider that records every call."""

    def __init__(
        self,
        longitudes: Optional[Dict[str, float]] = None,
        altitude_fn: Callable[[datetime], float] = sinusoidal_altitude,
        absent: Iterable[str] = (),
        error: Optional[Exception] = None
    ):
        self.longitudes = dict(DEFAULT_LONGITUDES if longitudes is None else longitudes)
        self.altitude_fn = altitude_fn
        self.absent = set(absent)
        self.error = error
        self.calls = []

    def positions_at(self, instant, latitude, longitude, bodies):
        self.calls.append({
            "instant": instant,
            "latitude": latitude,
            "longitude": longitude,
            "bodies": list(bodies),
        })
        if self.error is not None:
            raise self.error

        altitude = self.altitude_fn(instant)
        result = {}
        for body in bodies:
            if body == OBSERVER_BODY:
                result[body] = None
                continue
            if body in self.absent or body not in self.longitudes:
                continue
            result[body] = BodyPosition(
                apparent_longitude=self.longitudes[body],
                apparent_latitude=0.0,
                distance_au=1.0,
                ra_hours=self.longitudes[body] / 15.0,
                dec_deg=0.0,
                altitude=altitude,
                azimuth=minutes_of_day(instant) / 4.0,
            )
        return result

    def describe(self):
        return {"provider": "fake", "loaded": True}


@pytest.fixture
def fake_provider():
    return FakePositionProvider()


@pytest.fixture
def service(fake_provider):
    return EphemerisService(fake_provider, supported_bodies=ALL_BODIES)


@pytest.fixture(scope="session")
def app_service():
    """Service shared by the application for the whole test session."""
    return EphemerisService(FakePositionProvider())


@pytest.fixture(scope="session")
def client(app_service):
    """
    Test client with the fake service injected before startup.

    The MCP session manager only starts once per process, so one client
    serves the whole session.
    """
    from ephemeris_server import api
    from ephemeris_server.main import app

    api.SERVICE = app_service
    with TestClient(app) as test_client:
        yield test_client
    api.SERVICE = None


@pytest.fixture
def noon_utc():
    return "2024-03-20T12:00:00Z"
