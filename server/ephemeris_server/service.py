"""
The named ephemeris operations shared by the REST and MCP surfaces.

Each operation validates its inputs, runs the aggregator once (twice for
comparisons, once per sample for daily events) and feeds the result to
the derived calculators. Results are plain JSON-serializable dicts.
"""

from typing import Any, Dict, Optional, Sequence

from . import __version__
from .astro.aspects import calculate_aspects
from .astro.compare import compare_position
from .astro.events import scan_daily_events
from .astro.lunar import moon_phase
from .astro.validation import (
    ensure_supported_bodies,
    ensure_supported_body,
    ensure_valid_coordinates,
    ensure_valid_orb,
)
from .astro.zodiac import zodiac_sign
from .config import AppConfig, AspectsConfig, ScannerConfig
from .ephemeris.aggregator import EphemerisResult, aggregate
from .ephemeris.bodies import ALL_BODIES, OBSERVER_BODY, get_filtered_bodies
from .ephemeris.provider import ABSENT, PositionOrAbsent, PositionProvider, serialize_position
from .errors import MissingData, ValidationError
from .obs.logging import StructuredLogger, TimedOperation
from .util.dates import INVALID_DATETIME, format_date, format_instant, parse_instant, utc_now

structured_logger = StructuredLogger(__name__)

TOOL_NAMES = (
    "get_ephemeris_data",
    "get_single_body_position",
    "get_current_sky",
    "get_planetary_positions",
    "get_luminaries",
    "calculate_aspects",
    "get_moon_phase",
    "get_daily_events",
    "get_zodiac_sign",
    "compare_positions",
    "get_earth_position",
)

EARTH_NOTE = (
    "Earth is the observer's body: positions are computed from the Earth, "
    "so it has no position of its own in this frame."
)


def _longitude(position: PositionOrAbsent) -> Optional[float]:
    return None if position is ABSENT else position.apparent_longitude


def _serialize(result: EphemerisResult) -> Dict[str, Any]:
    return {body: serialize_position(position) for body, position in result.items()}


class EphemerisService:
    """Implements every operation on top of one position provider."""

    def __init__(
        self,
        provider: PositionProvider,
        supported_bodies: Sequence[str] = ALL_BODIES,
        aspects: Optional[AspectsConfig] = None,
        scanner: Optional[ScannerConfig] = None,
        name: str = "ephemeris-server"
    ):
        self.provider = provider
        self.supported_bodies = tuple(supported_bodies)
        self.aspects = aspects or AspectsConfig()
        self.scanner = scanner or ScannerConfig()
        self.name = name

    @classmethod
    def from_config(cls, config: AppConfig, provider: PositionProvider) -> "EphemerisService":
        return cls(
            provider,
            supported_bodies=config.bodies.enabled,
            aspects=config.aspects,
            scanner=config.scanner,
            name=config.mcp.name,
        )

    def _aggregate(self, instant, latitude, longitude, bodies=None) -> EphemerisResult:
        return aggregate(self.provider, instant, latitude, longitude, bodies, self.supported_bodies)

    def _single(self, body: str, instant, latitude: float, longitude: float) -> PositionOrAbsent:
        return self._aggregate(instant, latitude, longitude, [body])[body]

    def get_ephemeris_data(
        self,
        latitude: float,
        longitude: float,
        instant: Optional[str] = None,
        bodies: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        ensure_valid_coordinates(latitude, longitude)
        requested = ensure_supported_bodies(bodies, self.supported_bodies)
        at = parse_instant(instant)

        result = self._aggregate(at, latitude, longitude, requested)
        return {
            "datetime": format_instant(at),
            "location": {"latitude": latitude, "longitude": longitude},
            "bodies": _serialize(result),
        }

    def get_single_body_position(
        self,
        body: str,
        latitude: float,
        longitude: float,
        instant: Optional[str] = None
    ) -> Dict[str, Any]:
        ensure_valid_coordinates(latitude, longitude)
        body = ensure_supported_body(body, self.supported_bodies)
        at = parse_instant(instant)

        position = self._single(body, at, latitude, longitude)
        if position is ABSENT:
            raise MissingData(f"No position data available for {body}")

        return {
            "datetime": format_instant(at),
            "body": body,
            "position": position.to_dict(),
        }

    def get_current_sky(self, latitude: float, longitude: float) -> Dict[str, Any]:
        return self.get_ephemeris_data(latitude, longitude)

    def get_planetary_positions(
        self,
        latitude: float,
        longitude: float,
        instant: Optional[str] = None
    ) -> Dict[str, Any]:
        return self._group("planets", latitude, longitude, instant)

    def get_luminaries(
        self,
        latitude: float,
        longitude: float,
        instant: Optional[str] = None
    ) -> Dict[str, Any]:
        return self._group("luminaries", latitude, longitude, instant)

    def _group(self, group: str, latitude: float, longitude: float, instant: Optional[str]) -> Dict[str, Any]:
        members = get_filtered_bodies(group, self.supported_bodies)
        if not members:
            raise ValidationError(
                f"No bodies of group '{group}' are enabled",
                code="INPUT.INVALID_BODY",
                title="Unsupported body"
            )
        return self.get_ephemeris_data(latitude, longitude, instant, members)

    def calculate_aspects(
        self,
        latitude: float,
        longitude: float,
        instant: Optional[str] = None,
        orb: Optional[float] = None,
        bodies: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        ensure_valid_coordinates(latitude, longitude)
        orb = self.aspects.default_orb if orb is None else orb
        ensure_valid_orb(orb, self.aspects.min_orb, self.aspects.max_orb)
        requested = ensure_supported_bodies(bodies, self.supported_bodies)
        at = parse_instant(instant)

        result = self._aggregate(at, latitude, longitude, requested)
        longitudes = {body: _longitude(position) for body, position in result.items()}
        found = calculate_aspects(longitudes, orb)

        return {
            "datetime": format_instant(at),
            "aspects": found["aspects"],
            "orb_used": found["orb_used"],
        }

    def get_moon_phase(self, instant: Optional[str] = None) -> Dict[str, Any]:
        at = parse_instant(instant)
        luminaries = [body for body in ("sun", "moon") if body in self.supported_bodies]
        if len(luminaries) < 2:
            raise MissingData("Sun and Moon position data required for moon phase calculation")

        # Phase depends only on geocentric longitudes; any location will do.
        result = self._aggregate(at, 0.0, 0.0, luminaries)
        phase = moon_phase(_longitude(result["sun"]), _longitude(result["moon"]))

        return {"datetime": format_instant(at), **phase}

    def get_daily_events(
        self,
        body: str,
        latitude: float,
        longitude: float,
        instant: Optional[str] = None
    ) -> Dict[str, Any]:
        ensure_valid_coordinates(latitude, longitude)
        body = ensure_supported_body(body, self.supported_bodies)
        at = parse_instant(instant)

        with TimedOperation(structured_logger, "daily_event_scan", body=body,
                            step_minutes=self.scanner.step_minutes):
            events = scan_daily_events(
                lambda t: self._single(body, t, latitude, longitude),
                at,
                step_minutes=self.scanner.step_minutes,
                max_events=self.scanner.max_events,
            )
        return {
            "body": body,
            "date": format_date(at),
            "events": [event.to_dict() for event in events],
        }

    def get_zodiac_sign(
        self,
        body: str,
        latitude: float,
        longitude: float,
        instant: Optional[str] = None
    ) -> Dict[str, Any]:
        ensure_valid_coordinates(latitude, longitude)
        body = ensure_supported_body(body, self.supported_bodies)
        at = parse_instant(instant)

        position = self._single(body, at, latitude, longitude)
        if position is ABSENT:
            raise MissingData(f"No position data available for {body}")

        return {
            "datetime": format_instant(at),
            "body": body,
            "longitude": round(position.apparent_longitude, 3),
            **zodiac_sign(position.apparent_longitude),
        }

    def compare_positions(
        self,
        latitude: float,
        longitude: float,
        date1: Optional[str],
        date2: Optional[str],
        bodies: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        ensure_valid_coordinates(latitude, longitude)
        requested = ensure_supported_bodies(bodies, self.supported_bodies)
        if not date1 or not date2:
            raise ValidationError(
                "Both date1 and date2 are required",
                code=INVALID_DATETIME,
                title="Invalid datetime",
                tip="Pass two ISO-8601 UTC datetimes to compare."
            )
        at1 = parse_instant(date1)
        at2 = parse_instant(date2)

        first = self._aggregate(at1, latitude, longitude, requested)
        second = self._aggregate(at2, latitude, longitude, requested)

        comparisons = {}
        for body, position in first.items():
            later = second.get(body, ABSENT)
            if position is ABSENT or later is ABSENT:
                continue
            comparisons[body] = compare_position(position.apparent_longitude, later.apparent_longitude)

        return {
            "date1": format_instant(at1),
            "date2": format_instant(at2),
            "comparisons": comparisons,
        }

    def get_earth_position(self, instant: Optional[str] = None) -> Dict[str, Any]:
        at = parse_instant(instant)
        return {
            "datetime": format_instant(at),
            OBSERVER_BODY: None,
            "note": EARTH_NOTE,
        }

    def get_server_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": __version__,
            "description": "Ephemeris calculations for celestial bodies: positions, aspects, "
                           "moon phase, daily events, zodiac signs and position comparisons",
            "supported_bodies": list(self.supported_bodies),
            "tools": list(TOOL_NAMES),
            "timestamp": format_instant(utc_now()),
        }

    def describe_provider(self) -> Dict[str, Any]:
        return self.provider.describe()
