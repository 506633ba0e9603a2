"""
Position provider interface and the per-body position record.

A provider turns (instant, observer location, bodies) into apparent
positions. Bodies without a meaningful position for the observer are
left out of the returned mapping (or mapped to None); the aggregator
turns that into an explicit ABSENT marker.
"""

import math
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Union


@dataclass(frozen=True)
class BodyPosition:
    """Apparent position of one body at one instant, in degrees unless noted."""

    apparent_longitude: float
    apparent_latitude: Optional[float] = None
    distance_au: Optional[float] = None
    ra_hours: Optional[float] = None
    dec_deg: Optional[float] = None
    altitude: Optional[float] = None
    azimuth: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Absence(Enum):
    """Marker for a body that was requested but has no position."""

    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absence.ABSENT

PositionOrAbsent = Union[BodyPosition, Absence]


def is_number(value: Any) -> bool:
    """True for finite int/float values (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def serialize_position(position: PositionOrAbsent) -> Optional[Dict[str, Any]]:
    """JSON form of a position; ABSENT becomes null."""
    if position is ABSENT:
        return None
    return position.to_dict()


class PositionProvider(Protocol):
    """Anything able to compute apparent positions for the supported bodies."""

    def positions_at(
        self,
        instant: datetime,
        latitude: float,
        longitude: float,
        bodies: Sequence[str]
    ) -> Mapping[str, Optional[BodyPosition]]:
        ...

    def describe(self) -> Dict[str, Any]:
        ...
