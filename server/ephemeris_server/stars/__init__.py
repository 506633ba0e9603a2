"""
Fixed stars for the ephemeris server.

Loads bright-star J2000 coordinates from the bundled CSV catalog and
carries them to the ecliptic of date. Supplies the ``sirius`` body.
"""

__version__ = "1.0.0"
