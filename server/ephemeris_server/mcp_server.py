# server/ephemeris_server/mcp_server.py
"""
Model Context Protocol surface.

Every ephemeris operation is exposed as an MCP tool whose result is the
same JSON document the REST API returns, pretty-printed as text. The
server runs over stdio (``ephemeris-mcp``) or is mounted into the FastAPI
application at ``/mcp`` as streamable HTTP.
"""

import asyncio
import json
import logging
import time
from typing import Annotated, Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from .config import load_config
from .ephemeris.bodies import BodyName
from .ephemeris.spice_provider import SpicePositionProvider
from .errors import EphemerisError, ProviderError
from .obs.logging import StructuredLogger, setup_logging, set_request_context, clear_request_context
from .obs.metrics import metrics
from .service import EphemerisService

logger = logging.getLogger(__name__)
business_logger = StructuredLogger(__name__)

SURFACE = "mcp"

# Injected by main.py (HTTP) or main() below (stdio)
SERVICE: Optional[EphemerisService] = None

mcp = FastMCP(
    load_config().mcp.name,
    instructions=(
        "Ephemeris calculations for the Sun, Moon, planets, Chiron and Sirius as seen "
        "from a location on Earth. Datetimes are ISO 8601 in UTC; latitude and longitude "
        "are in degrees. Longitudes are apparent ecliptic longitudes of date."
    ),
    host="0.0.0.0",
    stateless_http=True,
)

Latitude = Annotated[float, Field(description="Latitude in degrees (-90 to 90)")]
Longitude = Annotated[float, Field(description="Longitude in degrees (-180 to 180)")]
Datetime = Annotated[
    Optional[str],
    Field(description="ISO 8601 datetime in UTC (optional, defaults to current time)")
]
Bodies = Annotated[
    Optional[List[BodyName]],
    Field(description="Celestial bodies to include (optional, defaults to all bodies)")
]
Body = Annotated[BodyName, Field(description="Name of the celestial body")]


def configure(service: EphemerisService) -> None:
    global SERVICE
    SERVICE = service


def _invoke(operation: str, call: Callable[[EphemerisService], Dict[str, Any]],
            bodies: Optional[List[str]] = None) -> str:
    if SERVICE is None:
        raise ProviderError("Ephemeris service is not initialized", code="SERVER.NOT_READY",
                            title="Service unavailable")

    set_request_context(surface=SURFACE)
    start_time = time.perf_counter()
    try:
        payload = call(SERVICE)
    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, SURFACE, success=False, duration_seconds=duration_ms / 1000)
        if isinstance(e, EphemerisError):
            code, message = e.code, e.message
        else:
            code, message = "SERVER.ERROR", str(e)
        metrics.record_error(code)
        business_logger.operation_error(operation, SURFACE, code, message, duration_ms)
        raise
    finally:
        clear_request_context()

    duration_ms = (time.perf_counter() - start_time) * 1000
    metrics.record_operation(operation, SURFACE, success=True, duration_seconds=duration_ms / 1000)
    business_logger.operation_completed(operation, SURFACE, duration_ms, bodies)
    return json.dumps(payload, indent=2)


async def _run(operation: str, call: Callable[[EphemerisService], Dict[str, Any]],
               bodies: Optional[List[str]] = None) -> str:
    # SPICE calls block; keep them off the event loop
    return await asyncio.to_thread(_invoke, operation, call, bodies)


@mcp.tool()
async def get_ephemeris_data(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None,
    bodies: Bodies = None
) -> str:
    """Get ephemeris data for celestial bodies at a specific location and time.

    Args:
        latitude: Observer latitude in degrees
        longitude: Observer longitude in degrees
        datetime: ISO 8601 UTC datetime, defaults to now
        bodies: Bodies to include, defaults to all

    Returns:
        Positions keyed by body; Earth is always null
    """
    return await _run(
        "get_ephemeris_data",
        lambda s: s.get_ephemeris_data(latitude, longitude, datetime, bodies),
        bodies
    )


@mcp.tool()
async def get_single_body_position(
    body: Body,
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
) -> str:
    """Get position data for a single celestial body."""
    return await _run(
        "get_single_body_position",
        lambda s: s.get_single_body_position(body, latitude, longitude, datetime),
        [body]
    )


@mcp.tool()
async def get_current_sky(latitude: Latitude, longitude: Longitude) -> str:
    """Get all celestial body positions for current time at a location."""
    return await _run("get_current_sky", lambda s: s.get_current_sky(latitude, longitude))


@mcp.tool()
async def get_planetary_positions(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
) -> str:
    """Get positions for planets only (excluding sun and moon)."""
    return await _run(
        "get_planetary_positions",
        lambda s: s.get_planetary_positions(latitude, longitude, datetime)
    )


@mcp.tool()
async def get_luminaries(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
) -> str:
    """Get positions for sun and moon only."""
    return await _run("get_luminaries", lambda s: s.get_luminaries(latitude, longitude, datetime))


@mcp.tool()
async def calculate_aspects(
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None,
    orb: Annotated[Optional[float], Field(description="Orb tolerance in degrees (default: 8)")] = None,
    bodies: Bodies = None
) -> str:
    """Calculate astrological aspects between celestial bodies at a location and time.

    Args:
        latitude: Observer latitude in degrees
        longitude: Observer longitude in degrees
        datetime: ISO 8601 UTC datetime, defaults to now
        orb: Maximum deviation from the exact aspect angle, 0.1 to 15 degrees
        bodies: Bodies to pair up, defaults to all

    Returns:
        Aspects found for every pair of bodies and the orb that was applied
    """
    return await _run(
        "calculate_aspects",
        lambda s: s.calculate_aspects(latitude, longitude, datetime, orb, bodies),
        bodies
    )


@mcp.tool()
async def get_moon_phase(datetime: Datetime = None) -> str:
    """Calculate moon phase and illumination percentage for a given date."""
    return await _run("get_moon_phase", lambda s: s.get_moon_phase(datetime), ["sun", "moon"])


@mcp.tool()
async def get_daily_events(
    body: Body,
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
) -> str:
    """Get rising, culmination, and setting times for celestial bodies on a given date.

    The UTC day containing ``datetime`` is sampled at a fixed step; event
    times are accurate to that step.
    """
    return await _run(
        "get_daily_events",
        lambda s: s.get_daily_events(body, latitude, longitude, datetime),
        [body]
    )


@mcp.tool()
async def get_zodiac_sign(
    body: Body,
    latitude: Latitude,
    longitude: Longitude,
    datetime: Datetime = None
) -> str:
    """Get zodiac sign and degree for celestial body positions."""
    return await _run(
        "get_zodiac_sign",
        lambda s: s.get_zodiac_sign(body, latitude, longitude, datetime),
        [body]
    )


@mcp.tool()
async def compare_positions(
    latitude: Latitude,
    longitude: Longitude,
    date1: Annotated[str, Field(description="First date to compare (ISO 8601 UTC)")],
    date2: Annotated[str, Field(description="Second date to compare (ISO 8601 UTC)")],
    bodies: Bodies = None
) -> str:
    """Compare celestial body positions between two different dates.

    Args:
        latitude: Observer latitude in degrees
        longitude: Observer longitude in degrees
        date1: Earlier (or reference) datetime
        date2: Later datetime
        bodies: Bodies to compare, defaults to all

    Returns:
        Per-body longitudes on both dates, the signed movement and its direction
    """
    return await _run(
        "compare_positions",
        lambda s: s.compare_positions(latitude, longitude, date1, date2, bodies),
        bodies
    )


@mcp.tool()
async def get_earth_position(datetime: Datetime = None) -> str:
    """Get Earth's position (always null: Earth is the observer's body)."""
    return await _run("get_earth_position", lambda s: s.get_earth_position(datetime), ["earth"])


@mcp.resource("ephemeris://server-info")
def server_info() -> str:
    """Server name, version, supported bodies and tool names."""
    return _invoke("get_server_info", lambda s: s.get_server_info())


def main():
    """Run the MCP server over stdio."""
    config = load_config()
    # stdout carries the protocol; setup_logging writes to stderr
    setup_logging(level=config.logging.level, enable_json=config.logging.json_format)

    provider = SpicePositionProvider.from_config(config)
    provider.load()
    configure(EphemerisService.from_config(config, provider))

    logger.info(f"Starting MCP server '{config.mcp.name}' over stdio")
    try:
        mcp.run(transport="stdio")
    finally:
        provider.unload()


if __name__ == "__main__":
    main()
