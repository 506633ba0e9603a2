"""
Builds the per-request ephemeris result from one position provider call.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from .bodies import ALL_BODIES
from .provider import ABSENT, PositionOrAbsent, PositionProvider
from ..astro.validation import ensure_valid_coordinates
from ..errors import EphemerisError, provider_error_from
from ..obs.metrics import metrics
from ..util.dates import truncate_to_minute

logger = logging.getLogger(__name__)

EphemerisResult = Dict[str, PositionOrAbsent]


def aggregate(
    provider: PositionProvider,
    instant: datetime,
    latitude: float,
    longitude: float,
    bodies: Optional[Sequence[str]] = None,
    supported: Sequence[str] = ALL_BODIES
) -> EphemerisResult:
    """
    Positions of the requested bodies for one observer and instant.

    The location is validated before the provider is called. An empty or
    omitted body list means every supported body. The result has exactly
    one key per requested body, in request order; bodies the provider
    could not place map to ABSENT.
    """
    ensure_valid_coordinates(latitude, longitude)

    requested = list(bodies) if bodies else list(supported)
    at = truncate_to_minute(instant.astimezone(timezone.utc))

    try:
        raw = provider.positions_at(at, latitude, longitude, requested)
    except EphemerisError:
        metrics.record_provider_call(len(requested), success=False)
        raise
    except Exception as e:
        metrics.record_provider_call(len(requested), success=False)
        raise provider_error_from(e, "positions_at") from e

    metrics.record_provider_call(len(requested), success=True)

    result: EphemerisResult = {}
    for body in requested:
        position = raw.get(body)
        result[body] = ABSENT if position is None else position

    logger.debug(f"Aggregated {len(requested)} bodies at {at.isoformat()}")
    return result
