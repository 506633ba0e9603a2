"""
Rise, culmination and set detection by sampling altitude across a UTC day.

This is a fixed-step sampler, not a closed-form solver: event times are
the first sample at or past the horizon crossing, so they carry up to one
step of error.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..ephemeris.provider import ABSENT, PositionOrAbsent, is_number
from ..util.dates import format_instant, start_of_day

MINUTES_PER_DAY = 1440
DEFAULT_STEP_MINUTES = 15
DEFAULT_MAX_EVENTS = 6
# Culmination azimuth is not sampled; due south is reported.
CULMINATION_AZIMUTH = 180.0

Sampler = Callable[[datetime], PositionOrAbsent]


@dataclass
class Event:
    event: str
    time: datetime
    altitude: float
    azimuth: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "time": format_instant(self.time),
            "altitude": round(self.altitude, 2),
            "azimuth": round(self.azimuth, 2),
        }


def sample_times(day: datetime, step_minutes: int = DEFAULT_STEP_MINUTES) -> List[datetime]:
    """Sample instants covering the UTC day of ``day``, in time order."""
    start = start_of_day(day)
    return [start + timedelta(minutes=m) for m in range(0, MINUTES_PER_DAY, step_minutes)]


def scan_daily_events(
    sample: Sampler,
    day: datetime,
    step_minutes: int = DEFAULT_STEP_MINUTES,
    max_events: int = DEFAULT_MAX_EVENTS
) -> List[Event]:
    """
    Scan one UTC day and return rising, setting and culmination events.

    ``sample`` is called once per step, sequentially, in time order. Samples
    where the body is absent or has no numeric altitude/azimuth are skipped
    and do not reset the previous altitude.
    """
    events: List[Event] = []
    previous_altitude: Optional[float] = None
    max_altitude = -90.0
    max_altitude_time: Optional[datetime] = None

    for instant in sample_times(day, step_minutes):
        position = sample(instant)
        if position is ABSENT or position is None:
            continue
        altitude, azimuth = position.altitude, position.azimuth
        if not is_number(altitude) or not is_number(azimuth):
            continue

        if altitude > max_altitude:
            max_altitude = altitude
            max_altitude_time = instant

        if previous_altitude is not None:
            if previous_altitude < 0 <= altitude:
                events.append(Event("rising", instant, altitude, azimuth))
            elif previous_altitude > 0 > altitude:
                events.append(Event("setting", instant, altitude, azimuth))

        previous_altitude = altitude

    if max_altitude > 0 and max_altitude_time is not None:
        events.append(Event("culmination", max_altitude_time, max_altitude, CULMINATION_AZIMUTH))

    # sorted() is stable, so same-time events keep emission order
    events = sorted(events, key=lambda e: e.time)
    return events[:max_events]
