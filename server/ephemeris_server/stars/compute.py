"""
Star position computation and coordinate transformations.

Carries catalog J2000 coordinates to a given instant: proper motion,
precession to the mean equator of date, then rotation by the mean
obliquity into the ecliptic of date.
"""

import math
import logging
from typing import Dict
from datetime import datetime, timezone

import numpy as np

logger = logging.getLogger(__name__)

J2000_JD = 2451545.0  # Julian Date of J2000.0 epoch
DAYS_PER_YEAR = 365.25
ARCSEC_PER_DEGREE = 3600.0
MAS_PER_ARCSEC = 1000.0


def julian_date(instant: datetime) -> float:
    """
    Julian Date of an instant (UTC, leap seconds ignored).

    Algorithm from Jean Meeus, "Astronomical Algorithms", Ch. 7.
    """
    dt = instant.astimezone(timezone.utc)
    year = dt.year
    month = dt.month
    day = dt.day + dt.hour / 24.0 + dt.minute / 1440.0 + (dt.second + dt.microsecond / 1e6) / 86400.0

    if month <= 2:
        year -= 1
        month += 12

    # Gregorian calendar correction
    A = int(year / 100)
    B = 2 - A + int(A / 4)

    return int(365.25 * (year + 4716)) + int(30.6001 * (month + 1)) + day + B - 1524.5


def julian_centuries(jd: float) -> float:
    """Julian centuries since J2000.0."""
    return (jd - J2000_JD) / 36525.0


def apply_proper_motion(ra_hours: float, dec_deg: float, pm_ra_mas_yr: float,
                        pm_dec_mas_yr: float, years_from_j2000: float) -> Dict[str, float]:
    """
    Apply proper motion from J2000.0 to the given epoch.

    Args:
        ra_hours: Right Ascension at J2000.0 in hours
        dec_deg: Declination at J2000.0 in degrees
        pm_ra_mas_yr: Proper motion in RA (mas/year, includes the cos(dec) factor)
        pm_dec_mas_yr: Proper motion in Dec (mas/year)
        years_from_j2000: Years elapsed since J2000.0

    Returns:
        Dictionary with corrected RA (hours) and Dec (degrees)
    """
    pm_ra_deg = (pm_ra_mas_yr / MAS_PER_ARCSEC) / ARCSEC_PER_DEGREE
    pm_dec_deg = (pm_dec_mas_yr / MAS_PER_ARCSEC) / ARCSEC_PER_DEGREE

    cos_dec = math.cos(math.radians(dec_deg))
    if abs(cos_dec) > 1e-9:
        pm_ra_deg /= cos_dec

    new_ra_deg = ((ra_hours * 15.0) + (pm_ra_deg * years_from_j2000)) % 360.0
    new_dec_deg = max(-90.0, min(90.0, dec_deg + (pm_dec_deg * years_from_j2000)))

    return {
        "ra_hours": new_ra_deg / 15.0,
        "dec_deg": new_dec_deg
    }


def mean_obliquity(T: float) -> float:
    """Mean obliquity of the ecliptic in degrees (IAU 1980), T in Julian centuries."""
    return 23.43929111 - (46.8150 * T + 0.00059 * T**2 - 0.001813 * T**3) / ARCSEC_PER_DEGREE


def precession_matrix(T: float) -> np.ndarray:
    """IAU 2006 precession matrix from J2000.0 to the mean equator of date."""
    zeta_A = np.radians((2306.2181 * T + 0.30188 * T**2 + 0.017998 * T**3) / ARCSEC_PER_DEGREE)
    z_A = np.radians((2306.2181 * T + 1.09468 * T**2 + 0.018203 * T**3) / ARCSEC_PER_DEGREE)
    theta_A = np.radians((2004.3109 * T - 0.42665 * T**2 - 0.041833 * T**3) / ARCSEC_PER_DEGREE)

    cos_zeta, sin_zeta = np.cos(-zeta_A), np.sin(-zeta_A)
    cos_z, sin_z = np.cos(-z_A), np.sin(-z_A)
    cos_theta, sin_theta = np.cos(theta_A), np.sin(theta_A)

    # P = R3(-z_A) * R2(theta_A) * R3(-zeta_A)
    R1 = np.array([[cos_zeta, sin_zeta, 0], [-sin_zeta, cos_zeta, 0], [0, 0, 1]])
    R2 = np.array([[cos_theta, 0, -sin_theta], [0, 1, 0], [sin_theta, 0, cos_theta]])
    R3 = np.array([[cos_z, sin_z, 0], [-sin_z, cos_z, 0], [0, 0, 1]])

    return R3 @ R2 @ R1


def unit_vector(ra_hours: float, dec_deg: float) -> np.ndarray:
    """Unit vector for equatorial coordinates."""
    ra = np.radians(ra_hours * 15.0)
    dec = np.radians(dec_deg)
    return np.array([np.cos(dec) * np.cos(ra), np.cos(dec) * np.sin(ra), np.sin(dec)])


def to_ecliptic_of_date(ra_hours: float, dec_deg: float, jd: float) -> Dict[str, float]:
    """
    Convert J2000 equatorial coordinates to ecliptic coordinates of date.

    Args:
        ra_hours: Right Ascension (J2000) in hours
        dec_deg: Declination (J2000) in degrees
        jd: Julian Date of the target epoch

    Returns:
        Dictionary with ecliptic longitude and latitude in degrees
    """
    T = julian_centuries(jd)
    v_eq_date = precession_matrix(T) @ unit_vector(ra_hours, dec_deg)

    eps = np.radians(mean_obliquity(T))
    rotation = np.array(
        [[1.0, 0.0, 0.0], [0.0, np.cos(eps), np.sin(eps)], [0.0, -np.sin(eps), np.cos(eps)]]
    )
    v_ecl = rotation @ v_eq_date

    lon = (math.degrees(math.atan2(v_ecl[1], v_ecl[0])) + 360.0) % 360.0
    lat = math.degrees(math.asin(max(-1.0, min(1.0, float(v_ecl[2])))))

    return {
        "lon_deg": lon,
        "lat_deg": lat
    }


def star_position(star: Dict, instant: datetime) -> Dict[str, float]:
    """
    Position of a catalog star at an instant.

    Returns the J2000 RA/Dec with proper motion applied, plus ecliptic
    longitude/latitude of date.
    """
    jd = julian_date(instant)
    years_from_j2000 = (jd - J2000_JD) / DAYS_PER_YEAR

    corrected = apply_proper_motion(
        star["ra_hours"], star["dec_deg"],
        star.get("pm_ra_mas_yr", 0.0), star.get("pm_dec_mas_yr", 0.0),
        years_from_j2000
    )
    ecliptic = to_ecliptic_of_date(corrected["ra_hours"], corrected["dec_deg"], jd)

    return {
        "ra_hours": corrected["ra_hours"],
        "dec_deg": corrected["dec_deg"],
        "lon_deg": ecliptic["lon_deg"],
        "lat_deg": ecliptic["lat_deg"]
    }
