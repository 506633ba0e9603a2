"""
Tropical zodiac sign for an ecliptic longitude.
"""

import math
from typing import Any, Dict, Tuple

SIGNS: Tuple[str, ...] = (
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
)


def normalize_longitude(longitude: float) -> float:
    return ((longitude % 360.0) + 360.0) % 360.0


def zodiac_sign(longitude: float) -> Dict[str, Any]:
    """
    Map a longitude to its sign, degree within the sign and normalized position.

    Any finite longitude is accepted; it is normalized to [0, 360) first.
    """
    normalized = normalize_longitude(longitude)
    # Float rounding can land exactly on 360
    index = min(int(math.floor(normalized / 30.0)), len(SIGNS) - 1)
    degree = normalized % 30.0

    return {
        "sign": SIGNS[index],
        "degree": round(degree, 3),
        "position": round(normalized, 3),
    }
