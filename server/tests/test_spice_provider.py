"""
Tests for the SPICE position provider.

Geometry helpers and load failures run everywhere. Tests that need real
kernels only run when SPICE_KERNELS_DIR points at a directory holding a
kernel bundle (SPICE_BUNDLE, default de440-modern).
"""

import os
from datetime import datetime, timezone

import numpy as np
import pytest

from ephemeris_server.config import AppConfig
from ephemeris_server.ephemeris.provider import BodyPosition
from ephemeris_server.ephemeris.spice_provider import SpicePositionProvider, altitude_azimuth
from ephemeris_server.errors import ProviderError

KERNELS_DIR = os.getenv("SPICE_KERNELS_DIR")
BUNDLE = os.getenv("SPICE_BUNDLE", "de440-modern")

requires_kernels = pytest.mark.skipif(
    not KERNELS_DIR or not os.path.isdir(os.path.join(KERNELS_DIR or "", BUNDLE)),
    reason="SPICE_KERNELS_DIR not set or bundle missing"
)

EQUINOX = datetime(2024, 3, 20, 3, 6, tzinfo=timezone.utc)


class TestAltitudeAzimuth:
    """Tests for the horizon-frame conversion."""

    def test_zenith(self):
        altitude, _ = altitude_azimuth(np.array([1.0, 0.0, 0.0]), 0.0, 0.0)
        assert altitude == pytest.approx(90.0)

    def test_north_horizon(self):
        altitude, azimuth = altitude_azimuth(np.array([0.0, 0.0, 1.0]), 0.0, 0.0)
        assert altitude == pytest.approx(0.0, abs=1e-9)
        assert azimuth == pytest.approx(0.0, abs=1e-9)

    def test_east_horizon(self):
        altitude, azimuth = altitude_azimuth(np.array([0.0, 1.0, 0.0]), 0.0, 0.0)
        assert altitude == pytest.approx(0.0, abs=1e-9)
        assert azimuth == pytest.approx(90.0)

    def test_celestial_pole_altitude_equals_latitude(self):
        altitude, azimuth = altitude_azimuth(np.array([0.0, 0.0, 5.0]), 51.5, -0.1)
        assert altitude == pytest.approx(51.5)
        assert azimuth == pytest.approx(0.0, abs=1e-9)


class TestLoadFailures:
    def test_missing_bundle(self, tmp_path):
        provider = SpicePositionProvider(str(tmp_path), "nope")

        with pytest.raises(ProviderError) as exc_info:
            provider.load()

        assert exc_info.value.code == "KERNELS.NOT_AVAILABLE"
        assert provider.is_loaded is False

    def test_checksum_mismatch(self, tmp_path):
        bundle = tmp_path / "fake"
        bundle.mkdir()
        for name in ("a.bsp", "b.tls", "c.tpc"):
            (bundle / name).write_text("x")
        (bundle / "checksums.json").write_text('{"files": {"a.bsp": "deadbeef"}}')

        provider = SpicePositionProvider(str(tmp_path), "fake", verify_checksums=True)
        with pytest.raises(ProviderError) as exc_info:
            provider.load()
        assert exc_info.value.code == "KERNELS.CHECKSUM_MISMATCH"

    def test_unreadable_kernel(self, tmp_path):
        bundle = tmp_path / "fake"
        bundle.mkdir()
        for name in ("b.bsp", "a.tls", "c.tpc"):
            (bundle / name).write_text("x")
        (bundle / "a.bsp").mkdir()
        (bundle / "checksums.json").write_text('{"files": {"a.bsp": "deadbeef"}}')

        provider = SpicePositionProvider(str(tmp_path), "fake", verify_checksums=True)
        with pytest.raises(ProviderError) as exc_info:
            provider.load()
        assert exc_info.value.code == "KERNELS.CHECKSUM_MISMATCH"

    def test_positions_before_load(self, tmp_path):
        provider = SpicePositionProvider(str(tmp_path), "nope")
        with pytest.raises(ProviderError, match="Kernels not loaded"):
            provider.positions_at(EQUINOX, 0.0, 0.0, ["sun"])

    def test_from_config(self):
        config = AppConfig(kernels={"path": "/srv/kernels", "bundle": "de440-1900"})
        provider = SpicePositionProvider.from_config(config)
        assert provider.bundle.bundle_dir == os.path.join("/srv/kernels", "de440-1900")


@requires_kernels
class TestWithKernels:
    """Tests against a real kernel bundle."""

    @pytest.fixture(scope="class")
    def provider(self):
        provider = SpicePositionProvider(KERNELS_DIR, BUNDLE)
        provider.load()
        yield provider
        provider.unload()

    def test_sun_at_equinox(self, provider):
        """Test the Sun sits at 0 degrees Aries at the March 2024 equinox."""
        sun = provider.positions_at(EQUINOX, 0.0, 0.0, ["sun"])["sun"]

        assert isinstance(sun, BodyPosition)
        lon = sun.apparent_longitude
        assert min(lon, 360.0 - lon) < 0.05
        assert sun.distance_au == pytest.approx(0.996, abs=0.01)

    def test_earth_is_none(self, provider):
        assert provider.positions_at(EQUINOX, 0.0, 0.0, ["earth"])["earth"] is None

    def test_all_major_bodies(self, provider):
        bodies = ["sun", "moon", "mercury", "venus", "mars", "jupiter",
                  "saturn", "uranus", "neptune", "pluto", "sirius"]
        result = provider.positions_at(EQUINOX, 40.0, -74.0, bodies)

        for body in bodies:
            position = result[body]
            assert 0.0 <= position.apparent_longitude < 360.0
            assert -90.0 <= position.altitude <= 90.0
            assert 0.0 <= position.azimuth < 360.0

    def test_sun_below_horizon_at_local_midnight(self, provider):
        """Test 05:00 UTC is night in New York."""
        at = datetime(2024, 3, 20, 5, 0, tzinfo=timezone.utc)
        sun = provider.positions_at(at, 40.7, -74.0, ["sun"])["sun"]
        assert sun.altitude < -30.0

    def test_describe(self, provider):
        info = provider.describe()
        assert info["loaded"] is True
        assert info["kernel_count"] > 0
        assert info["stars"] == ["sirius"]
