"""
SPICE-based position provider.

Computes apparent geocentric ecliptic-of-date coordinates, J2000 RA/Dec
and topocentric altitude/azimuth for the supported bodies using NASA's
SPICE toolkit (spiceypy). The kernels come from a bundle directory
supplied by the deployment; Sirius comes from the bundled star catalog.
"""

import logging
import math
import os
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import spiceypy as spice
from spiceypy.utils.exceptions import SpiceyError

from .bodies import OBSERVER_BODY
from .kernels import KernelBundle
from .provider import BodyPosition
from ..errors import ProviderError, provider_error_from
from ..obs.logging import StructuredLogger
from ..obs.metrics import metrics
from ..stars.catalog import find_star, get_catalog_path, load_catalog
from ..stars.compute import star_position

logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)

AU_KM = 149597870.7

# Planet centers for the inner bodies, barycenters from Mars outwards
# (DE44x ships barycenters only for the outer systems).
SPICE_TARGETS = {
    "sun": "SUN",
    "moon": "MOON",
    "mercury": "MERCURY",
    "venus": "VENUS",
    "mars": "MARS BARYCENTER",
    "jupiter": "JUPITER BARYCENTER",
    "saturn": "SATURN BARYCENTER",
    "uranus": "URANUS BARYCENTER",
    "neptune": "NEPTUNE BARYCENTER",
    "pluto": "PLUTO BARYCENTER",
}

# 2060 Chiron under the old and new small-body numbering schemes
CHIRON_NAIF_IDS = (2002060, 20002060)

STAR_BODIES = {
    "sirius": "Sirius",
}

# WGS-84, used when the kernels carry no EARTH RADII
WGS84_RADII_KM = (6378.137, 6378.137, 6356.752314245)


def _observer_position(latitude: float, longitude: float, radii: Tuple[float, float, float]) -> np.ndarray:
    """Observer position (km) in the Earth body-fixed frame, at sea level."""
    re, rp = radii[0], radii[2]
    f = (re - rp) / re
    return np.array(spice.georec(math.radians(longitude), math.radians(latitude), 0.0, re, f))


def _horizon_basis(latitude: float, longitude: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """East, north and up unit vectors of the local horizon in the body-fixed frame."""
    lat = math.radians(latitude)
    lon = math.radians(longitude)
    east = np.array([-math.sin(lon), math.cos(lon), 0.0])
    north = np.array([-math.sin(lat) * math.cos(lon), -math.sin(lat) * math.sin(lon), math.cos(lat)])
    up = np.array([math.cos(lat) * math.cos(lon), math.cos(lat) * math.sin(lon), math.sin(lat)])
    return east, north, up


def altitude_azimuth(vector: np.ndarray, latitude: float, longitude: float) -> Tuple[float, float]:
    """
    Altitude and azimuth (degrees, azimuth from north through east) of a
    body-fixed direction seen from the given geodetic location.
    """
    east, north, up = _horizon_basis(latitude, longitude)
    v = vector / np.linalg.norm(vector)
    altitude = math.degrees(math.asin(max(-1.0, min(1.0, float(np.dot(v, up))))))
    azimuth = math.degrees(math.atan2(float(np.dot(v, east)), float(np.dot(v, north)))) % 360.0
    return altitude, azimuth


class SpicePositionProvider:
    """
    Position provider backed by a SPICE kernel bundle.

    The SPICE kernel pool is process-global and not thread-safe, so every
    call into spiceypy happens under one lock.
    """

    def __init__(self, kernel_path: str, bundle: str, checksums_file: Optional[str] = None,
                 verify_checksums: bool = False, star_catalog: str = "bright_stars",
                 star_mag_limit: float = 2.5):
        self.bundle = KernelBundle(kernel_path, bundle, checksums_file)
        self.verify_checksums = verify_checksums
        self.star_catalog = star_catalog
        self.star_mag_limit = star_mag_limit

        self._lock = threading.RLock()
        self._loaded: List[str] = []
        self._radii = WGS84_RADII_KM
        self._chiron: Optional[Tuple[int, Any]] = None
        self._stars: Dict[str, Dict] = {}

    @classmethod
    def from_config(cls, config) -> "SpicePositionProvider":
        """Provider described by an AppConfig; call load() before use."""
        return cls(
            kernel_path=config.kernels.path,
            bundle=config.kernels.bundle,
            checksums_file=config.kernels.checksums_file,
            verify_checksums=config.kernels.verify_checksums,
            star_catalog=config.stars.catalog,
            star_mag_limit=config.stars.mag_limit
        )

    @property
    def is_loaded(self) -> bool:
        return bool(self._loaded)

    def load(self) -> None:
        """
        Furnish every kernel in the bundle and prepare the star catalog.

        Raises:
            ProviderError: bundle missing, incomplete or failing checksum verification
        """
        start = time.perf_counter()
        bundle_name = self.bundle.bundle

        errors = self.bundle.validate_structure()
        if errors:
            metrics.record_kernel_operation(bundle_name, "load", success=False)
            structured_logger.kernel_operation("error", self.bundle.bundle_dir, bundle_name)
            raise ProviderError(
                "; ".join(errors),
                code="KERNELS.NOT_AVAILABLE",
                title="Ephemeris kernels not available",
                tip="Check kernels.path and kernels.bundle configuration."
            )

        if self.verify_checksums:
            valid = self.bundle.verify()
            metrics.record_kernel_operation(bundle_name, "verify", success=valid)
            structured_logger.kernel_operation(
                "verified" if valid else "error", self.bundle.bundle_dir, bundle_name,
                checksum_valid=valid
            )
            if not valid:
                raise ProviderError(
                    f"Kernel checksum verification failed for bundle {bundle_name}",
                    code="KERNELS.CHECKSUM_MISMATCH",
                    title="Kernel verification failed",
                    tip="Re-download the kernel bundle or update the checksums manifest."
                )

        with self._lock:
            try:
                for name in self.bundle.list_kernels():
                    path = os.path.join(self.bundle.bundle_dir, name)
                    spice.furnsh(path)
                    self._loaded.append(path)
                    logger.debug(f"Loaded SPICE kernel: {path}")
                self._radii = self._earth_radii()
                self._chiron = self._find_chiron()
            except SpiceyError as e:
                metrics.record_kernel_operation(bundle_name, "load", success=False)
                structured_logger.kernel_operation("error", self.bundle.bundle_dir, bundle_name)
                raise provider_error_from(e, "kernel loading") from e

        self._stars = self._load_stars()

        duration_ms = (time.perf_counter() - start) * 1000
        metrics.record_kernel_operation(bundle_name, "load", success=True)
        structured_logger.kernel_operation(
            "loaded", self.bundle.bundle_dir, bundle_name,
            checksum_valid=self.bundle.is_verified if self.verify_checksums else None,
            duration_ms=duration_ms
        )

    def unload(self) -> None:
        with self._lock:
            for path in self._loaded:
                spice.unload(path)
            self._loaded = []
            self._chiron = None

    def _earth_radii(self) -> Tuple[float, float, float]:
        try:
            _, radii = spice.bodvrd("EARTH", "RADII", 3)
            return float(radii[0]), float(radii[1]), float(radii[2])
        except SpiceyError:
            logger.warning("EARTH RADII not in kernel pool, using WGS-84")
            return WGS84_RADII_KM

    def _find_chiron(self) -> Optional[Tuple[int, Any]]:
        """NAIF ID and coverage window of Chiron, if any loaded SPK has it."""
        for path in self.bundle.ephemeris_files():
            ids = spice.spkobj(path)
            covered = {ids[i] for i in range(spice.card(ids))}
            for naif_id in CHIRON_NAIF_IDS:
                if naif_id in covered:
                    logger.info(f"Chiron ({naif_id}) covered by {path}")
                    return naif_id, spice.spkcov(path, naif_id)
        logger.info("No loaded SPK covers Chiron; it will be reported absent")
        return None

    def _load_stars(self) -> Dict[str, Dict]:
        stars = load_catalog(get_catalog_path(self.star_catalog), self.star_mag_limit)
        found = {}
        for body, name in STAR_BODIES.items():
            star = find_star(stars, name)
            if star is None:
                logger.warning(f"Star {name} not in catalog {self.star_catalog}; {body} will be reported absent")
            else:
                found[body] = star
        return found

    def positions_at(
        self,
        instant: datetime,
        latitude: float,
        longitude: float,
        bodies: Sequence[str]
    ) -> Mapping[str, Optional[BodyPosition]]:
        if not self.is_loaded:
            raise ProviderError(
                "Kernels not loaded",
                code="KERNELS.NOT_AVAILABLE",
                title="Ephemeris kernels not available",
                tip="Service warming; retry shortly."
            )

        with self._lock:
            try:
                et = spice.str2et(instant.strftime("%Y-%m-%dT%H:%M:%S"))
                frame = self._observer_frame(et)
                obs_pos = _observer_position(latitude, longitude, self._radii)

                results: Dict[str, Optional[BodyPosition]] = {}
                for body in bodies:
                    if body == OBSERVER_BODY:
                        results[body] = None
                    elif body in STAR_BODIES:
                        results[body] = self._star(body, instant, et, frame, latitude, longitude)
                    elif body == "chiron":
                        target = self._chiron_target(et)
                        results[body] = self._body(target, et, frame, obs_pos, latitude, longitude) if target else None
                    else:
                        results[body] = self._body(SPICE_TARGETS[body], et, frame, obs_pos, latitude, longitude)
                return results
            except SpiceyError as e:
                raise provider_error_from(e, f"positions_at {instant.isoformat()}") from e

    def _observer_frame(self, et: float) -> str:
        """ITRF93 when Earth orientation data covers ``et``, else IAU_EARTH."""
        try:
            spice.pxform("ITRF93", "J2000", et)
            return "ITRF93"
        except SpiceyError:
            return "IAU_EARTH"

    def _chiron_target(self, et: float) -> Optional[str]:
        if self._chiron is None:
            return None
        naif_id, coverage = self._chiron
        if not spice.wnelmd(et, coverage):
            return None
        return str(naif_id)

    def _body(self, target: str, et: float, frame: str, obs_pos: np.ndarray,
              latitude: float, longitude: float) -> BodyPosition:
        state, _ = spice.spkezr(target, et, "ECLIPDATE", "LT+S", "EARTH")
        distance_km, lon, lat = spice.reclat(state[:3])

        eq_state, _ = spice.spkezr(target, et, "J2000", "LT+S", "EARTH")
        _, ra, dec = spice.recrad(eq_state[:3])

        topo_state, _ = spice.spkcpo(target, et, frame, "OBSERVER", "LT+S", obs_pos, "EARTH", frame)
        altitude, azimuth = altitude_azimuth(np.array(topo_state[:3]), latitude, longitude)

        return BodyPosition(
            apparent_longitude=math.degrees(lon) % 360.0,
            apparent_latitude=math.degrees(lat),
            distance_au=distance_km / AU_KM,
            ra_hours=math.degrees(ra) / 15.0,
            dec_deg=math.degrees(dec),
            altitude=altitude,
            azimuth=azimuth,
        )

    def _star(self, body: str, instant: datetime, et: float, frame: str,
              latitude: float, longitude: float) -> Optional[BodyPosition]:
        star = self._stars.get(body)
        if star is None:
            return None

        position = star_position(star, instant)
        direction = spice.radrec(1.0, math.radians(position["ra_hours"] * 15.0), math.radians(position["dec_deg"]))
        rotation = np.array(spice.pxform("J2000", frame, et))
        altitude, azimuth = altitude_azimuth(rotation @ np.array(direction), latitude, longitude)

        return BodyPosition(
            apparent_longitude=position["lon_deg"],
            apparent_latitude=position["lat_deg"],
            distance_au=None,
            ra_hours=position["ra_hours"],
            dec_deg=position["dec_deg"],
            altitude=altitude,
            azimuth=azimuth,
        )

    def describe(self) -> Dict[str, Any]:
        info = self.bundle.get_info()
        return {
            "provider": "spice",
            "bundle": info["bundle"],
            "path": info["path"],
            "loaded": self.is_loaded,
            "kernel_count": len(self._loaded),
            "checksums_verified": info["verified"],
            "chiron_available": self._chiron is not None,
            "stars": sorted(self._stars),
            "spice_version": spice.tkvrsn("TOOLKIT"),
        }
