"""
Aspect detection between pairs of ecliptic longitudes.
"""

from typing import Any, Dict, List, Mapping, Tuple

from ..errors import InsufficientData
from ..ephemeris.provider import is_number

ASPECTS: Tuple[Tuple[str, float], ...] = (
    ("conjunction", 0.0),
    ("sextile", 60.0),
    ("square", 90.0),
    ("trine", 120.0),
    ("opposition", 180.0),
)

DEFAULT_ORB = 8.0
EXACT_ORB = 1.0


def angular_separation(a: float, b: float) -> float:
    """Smaller arc between two longitudes, in [0, 180] for inputs in [0, 360)."""
    angle = abs(a - b)
    return 360.0 - angle if angle > 180.0 else angle


def calculate_aspects(longitudes: Mapping[str, Any], orb: float = DEFAULT_ORB) -> Dict[str, Any]:
    """
    Find every aspect between the usable longitudes within ``orb`` degrees.

    Non-numeric entries (absent bodies, None) are skipped. Pairs are taken
    in input order (i < j); a pair may match more than one aspect when the
    orb is wide.

    Raises:
        InsufficientData: fewer than two usable longitudes
    """
    usable = [(name, float(value)) for name, value in longitudes.items() if is_number(value)]
    if len(usable) < 2:
        raise InsufficientData("Need at least 2 bodies with valid positions to calculate aspects")

    aspects: List[Dict[str, Any]] = []
    for i in range(len(usable)):
        body1, lon1 = usable[i]
        for j in range(i + 1, len(usable)):
            body2, lon2 = usable[j]
            separation = angular_separation(lon1, lon2)

            for name, nominal in ASPECTS:
                deviation = abs(separation - nominal)
                if deviation <= orb:
                    aspects.append({
                        "body1": body1,
                        "body2": body2,
                        "aspect": name,
                        "angle": round(separation, 2),
                        "orb": round(deviation, 2),
                        "exact": deviation < EXACT_ORB,
                    })

    return {"aspects": aspects, "orb_used": orb}
