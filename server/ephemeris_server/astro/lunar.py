"""
Lunar phase and illumination from the Sun and Moon longitudes.
"""

import math
from typing import Any, Dict, Tuple

from ..errors import MissingData
from ..ephemeris.provider import is_number

# Upper bound of elongation (exclusive) for each named phase
PHASES: Tuple[Tuple[str, float], ...] = (
    ("New Moon", 22.5),
    ("Waxing Crescent", 67.5),
    ("First Quarter", 112.5),
    ("Waxing Gibbous", 157.5),
    ("Full Moon", 202.5),
    ("Waning Gibbous", 247.5),
    ("Third Quarter", 292.5),
    ("Waning Crescent", 337.5),
)


def phase_name(elongation: float) -> str:
    for name, upper in PHASES:
        if elongation < upper:
            return name
    return "New Moon"


def moon_phase(sun_longitude: Any, moon_longitude: Any) -> Dict[str, Any]:
    """
    Phase name, percent illumination, elongation and phase angle.

    Raises:
        MissingData: either longitude is absent or non-numeric
    """
    if not is_number(sun_longitude) or not is_number(moon_longitude):
        raise MissingData("Sun and Moon position data required for moon phase calculation")

    elongation = ((moon_longitude - sun_longitude) + 360.0) % 360.0
    phase_angle = abs(180.0 - elongation)
    illumination = (1 + math.cos(math.radians(phase_angle))) / 2 * 100

    return {
        "phase": phase_name(elongation),
        "illumination": round(illumination, 2),
        "elongation": round(elongation, 2),
        "phase_angle": round(phase_angle, 2),
    }
