"""
Longitude movement between two instants.
"""

from typing import Any, Dict


def compare_position(pos1: float, pos2: float) -> Dict[str, Any]:
    """
    Signed shortest movement from ``pos1`` to ``pos2`` in [-180, 180).

    Positive movement is forward (direct) motion; zero or negative
    movement is reported as retrograde.
    """
    movement = ((pos2 - pos1 + 540.0) % 360.0) - 180.0
    return {
        "date1_position": pos1,
        "date2_position": pos2,
        "movement": movement,
        "direction": "forward" if movement > 0 else "retrograde",
    }
