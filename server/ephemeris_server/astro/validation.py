"""
Request validation for observer locations, orbs and body lists.

Everything here runs before the position provider is touched.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..errors import ValidationError
from ..ephemeris.bodies import ALL_BODIES

INVALID_COORDINATES = "INPUT.INVALID_COORDINATES"
INVALID_ORB = "INPUT.INVALID_ORB"
INVALID_BODY = "INPUT.INVALID_BODY"

MIN_ORB = 0.1
MAX_ORB = 15.0


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


def validate_coordinates(latitude: float, longitude: float) -> ValidationResult:
    """
    Check an observer location. The first failing rule wins.

    NaN in either coordinate is reported before any range check.
    """
    if math.isnan(latitude) or math.isnan(longitude):
        return ValidationResult(False, "Invalid latitude or longitude")

    if latitude < -90 or latitude > 90:
        return ValidationResult(False, "Latitude must be between -90 and 90")

    if longitude < -180 or longitude > 180:
        return ValidationResult(False, "Longitude must be between -180 and 180")

    return ValidationResult(True)


def ensure_valid_coordinates(latitude: float, longitude: float) -> None:
    """Raise ValidationError with the failing reason for a bad location."""
    result = validate_coordinates(latitude, longitude)
    if not result.is_valid:
        raise ValidationError(
            result.error,
            code=INVALID_COORDINATES,
            title="Invalid coordinates",
            tip="Latitude must be within [-90, 90] and longitude within [-180, 180]."
        )


def ensure_valid_orb(orb: float, min_orb: float = MIN_ORB, max_orb: float = MAX_ORB) -> float:
    if math.isnan(orb) or orb < min_orb or orb > max_orb:
        raise ValidationError(
            f"Orb must be between {min_orb:g} and {max_orb:g} degrees",
            code=INVALID_ORB,
            title="Invalid orb",
            tip=f"Pass an orb between {min_orb:g} and {max_orb:g}."
        )
    return orb


def ensure_supported_bodies(bodies: Optional[Iterable[str]],
                            supported: Sequence[str] = ALL_BODIES) -> Optional[List[str]]:
    """
    Normalize and check a requested body list.

    Returns None for an omitted or empty list so callers fall back to the
    full supported set. Duplicates are dropped, first occurrence kept.
    """
    if bodies is None:
        return None

    requested = []
    for name in bodies:
        normalized = name.strip().lower()
        if normalized and normalized not in requested:
            requested.append(normalized)

    if not requested:
        return None

    unknown = [name for name in requested if name not in supported]
    if unknown:
        raise ValidationError(
            f"Unsupported bodies: {', '.join(unknown)}. Supported bodies: {', '.join(supported)}",
            code=INVALID_BODY,
            title="Unsupported body",
            tip="Use one of the supported body names."
        )
    return requested


def ensure_supported_body(body: str, supported: Sequence[str] = ALL_BODIES) -> str:
    """Single-body variant of ensure_supported_bodies."""
    checked = ensure_supported_bodies([body], supported)
    if not checked:
        raise ValidationError(
            "Body name is required",
            code=INVALID_BODY,
            title="Unsupported body",
            tip="Use one of the supported body names."
        )
    return checked[0]
