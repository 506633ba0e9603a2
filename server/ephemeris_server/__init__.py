"""
Ephemeris server.

Celestial-body positions and derived calculations (aspects, moon phase,
daily events, zodiac signs, position comparisons) served over a REST API
and as Model Context Protocol tools.
"""

__version__ = "1.0.0"
