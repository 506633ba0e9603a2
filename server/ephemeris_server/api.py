# server/ephemeris_server/api.py
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from typing import Annotated, Any, Callable, Dict, List, Optional
import logging
import time

from .schemas import (
    EphemerisDataResponse, SingleBodyResponse, AspectsResponse, MoonPhaseResponse,
    DailyEventsResponse, ZodiacResponse, CompareResponse, EarthResponse,
    ServerInfoResponse, ErrorOut
)
from .errors import EphemerisError, ErrorHandler, raise_http_error, service_unavailable
from .config import AppConfig
from .obs.logging import StructuredLogger, get_request_id
from .obs.metrics import metrics
from .service import EphemerisService

business_logger = StructuredLogger(__name__)
logger = logging.getLogger(__name__)

router = APIRouter()

# Global variables - will be injected in main.py
SERVICE: Optional[EphemerisService] = None
CONFIG: Optional[AppConfig] = None

SURFACE = "rest"

ERROR_RESPONSES = {
    400: {"model": ErrorOut},
    500: {"model": ErrorOut},
    503: {"model": ErrorOut}
}

Latitude = Annotated[float, Query(description="Latitude in degrees (-90 to 90)")]
Longitude = Annotated[float, Query(description="Longitude in degrees (-180 to 180)")]
Datetime = Annotated[Optional[str], Query(description="ISO 8601 UTC datetime (optional, defaults to current time)")]
Bodies = Annotated[Optional[str], Query(description="Comma-separated celestial bodies (optional, defaults to all bodies)")]
Body = Annotated[str, Query(description="Name of the celestial body")]


def _split_bodies(bodies: Optional[str]) -> Optional[List[str]]:
    if bodies is None:
        return None
    return [name for name in (part.strip() for part in bodies.split(",")) if name]


def _run(operation: str, call: Callable[[EphemerisService], Dict[str, Any]],
         bodies: Optional[List[str]] = None) -> JSONResponse:
    """
    Run one service operation with metrics, structured logs and error mapping.
    """
    if SERVICE is None:
        service_unavailable()

    start_time = time.perf_counter()
    try:
        payload = call(SERVICE)
    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, SURFACE, success=False, duration_seconds=duration_ms / 1000)
        if isinstance(e, EphemerisError):
            metrics.record_error(e.code)
            business_logger.operation_error(operation, SURFACE, e.code, e.message, duration_ms)
            raise_http_error(e)
        if isinstance(e, HTTPException):
            raise
        metrics.record_error("SERVER.ERROR")
        business_logger.operation_error(operation, SURFACE, "SERVER.ERROR", str(e), duration_ms)
        ErrorHandler.handle_operation_error(e, operation)

    duration_ms = (time.perf_counter() - start_time) * 1000
    metrics.record_operation(operation, SURFACE, success=True, duration_seconds=duration_ms / 1000)
    business_logger.operation_completed(operation, SURFACE, duration_ms, bodies)

    headers = {}
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id
    return JSONResponse(payload, headers=headers)


@router.get("/v1/ephemeris", response_model=EphemerisDataResponse, responses=ERROR_RESPONSES)
def ephemeris_data(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None,
    bodies: Bodies = None
):
    """
    Ephemeris data for celestial bodies at a location and time.
    """
    requested = _split_bodies(bodies)
    return _run(
        "get_ephemeris_data",
        lambda s: s.get_ephemeris_data(latitude, longitude, datetime, requested),
        requested
    )


@router.get("/v1/ephemeris/body", response_model=SingleBodyResponse, responses=ERROR_RESPONSES)
def single_body_position(
    body: Body,
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
):
    """
    Position of a single celestial body.
    """
    return _run(
        "get_single_body_position",
        lambda s: s.get_single_body_position(body, latitude, longitude, datetime),
        [body]
    )


@router.get("/v1/sky/current", response_model=EphemerisDataResponse, responses=ERROR_RESPONSES)
def current_sky(latitude: Latitude, longitude: Longitude):
    """
    Every supported body for the current time at a location.
    """
    return _run("get_current_sky", lambda s: s.get_current_sky(latitude, longitude))


@router.get("/v1/planets", response_model=EphemerisDataResponse, responses=ERROR_RESPONSES)
def planetary_positions(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
):
    """
    Positions of the planets (Mercury through Pluto).
    """
    return _run(
        "get_planetary_positions",
        lambda s: s.get_planetary_positions(latitude, longitude, datetime)
    )


@router.get("/v1/luminaries", response_model=EphemerisDataResponse, responses=ERROR_RESPONSES)
def luminaries(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
):
    """
    Positions of the Sun and Moon.
    """
    return _run("get_luminaries", lambda s: s.get_luminaries(latitude, longitude, datetime))


@router.get("/v1/aspects", response_model=AspectsResponse, responses=ERROR_RESPONSES)
def aspects(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None,
    orb: Optional[float] = Query(None, description="Orb tolerance in degrees (default: 8)"),
    bodies: Bodies = None
):
    """
    Aspects between celestial bodies at a location and time.
    """
    requested = _split_bodies(bodies)
    return _run(
        "calculate_aspects",
        lambda s: s.calculate_aspects(latitude, longitude, datetime, orb, requested),
        requested
    )


@router.get("/v1/moon/phase", response_model=MoonPhaseResponse, responses=ERROR_RESPONSES)
def moon_phase(datetime: Datetime = None):
    """
    Moon phase and illumination percentage.
    """
    return _run("get_moon_phase", lambda s: s.get_moon_phase(datetime), ["sun", "moon"])


@router.get("/v1/events/daily", response_model=DailyEventsResponse, responses=ERROR_RESPONSES)
def daily_events(
    body: Body,
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
):
    """
    Rising, culmination and setting times of a body on the UTC day of ``datetime``.
    """
    return _run(
        "get_daily_events",
        lambda s: s.get_daily_events(body, latitude, longitude, datetime),
        [body]
    )


@router.get("/v1/zodiac", response_model=ZodiacResponse, responses=ERROR_RESPONSES)
def zodiac(
    body: Body,
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
):
    """
    Zodiac sign and degree of a body.
    """
    return _run(
        "get_zodiac_sign",
        lambda s: s.get_zodiac_sign(body, latitude, longitude, datetime),
        [body]
    )


@router.get("/v1/compare", response_model=CompareResponse, responses=ERROR_RESPONSES)
def compare(
    latitude: Latitude,
    longitude: Longitude,
    date1: str = Query(..., description="First date to compare (ISO 8601 UTC)"),
    date2: str = Query(..., description="Second date to compare (ISO 8601 UTC)"),
    bodies: Bodies = None
):
    """
    Movement of celestial bodies between two dates.
    """
    requested = _split_bodies(bodies)
    return _run(
        "compare_positions",
        lambda s: s.compare_positions(latitude, longitude, date1, date2, requested),
        requested
    )


@router.get("/v1/earth", response_model=EarthResponse, responses=ERROR_RESPONSES)
def earth_position(datetime: Datetime = None):
    """
    Earth's position. Always null: Earth is the observer's body.
    """
    return _run("get_earth_position", lambda s: s.get_earth_position(datetime), ["earth"])


@router.get("/v1/info", response_model=ServerInfoResponse)
def server_info():
    """
    Server name, version, supported bodies and tool names.
    """
    return _run("get_server_info", lambda s: s.get_server_info())
