"""
Supported celestial bodies and the named groups used by the operations.
"""

from typing import List, Literal, Sequence, Tuple

BodyName = Literal[
    "sun", "moon", "mercury", "venus", "earth", "mars", "jupiter",
    "saturn", "uranus", "neptune", "pluto", "chiron", "sirius"
]

ALL_BODIES: Tuple[str, ...] = (
    "sun",
    "moon",
    "mercury",
    "venus",
    "earth",
    "mars",
    "jupiter",
    "saturn",
    "uranus",
    "neptune",
    "pluto",
    "chiron",
    "sirius",
)

BODY_GROUPS = {
    "planets": (
        "mercury", "venus", "earth", "mars", "jupiter",
        "saturn", "uranus", "neptune", "pluto",
    ),
    "luminaries": ("sun", "moon"),
    "stars": ("sirius",),
    "asteroids": ("chiron",),
    "all": ALL_BODIES,
}

# The observer stands on this body, so it never has a position.
OBSERVER_BODY = "earth"


def get_filtered_bodies(group: str, supported: Sequence[str] = ALL_BODIES) -> List[str]:
    """
    Return the bodies of a named group, restricted to the supported set.

    Unknown group names fall back to every supported body.
    """
    members = BODY_GROUPS.get(group, ALL_BODIES)
    return [body for body in members if body in supported]
