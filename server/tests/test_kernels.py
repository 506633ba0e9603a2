"""
Tests for kernel bundle discovery, load order and checksum verification.
"""

import json
import os

import pytest

from ephemeris_server.ephemeris.kernels import (
    KernelBundle, create_checksums_manifest, get_kernel_type, list_kernel_files,
    main, sha256, validate_bundle_structure, verify_kernels
)


@pytest.fixture
def bundle_dir(tmp_path):
    """A fake bundle with one kernel of every required type plus extras."""
    bundle = tmp_path / "de440-test"
    bundle.mkdir()
    (bundle / "de440s.bsp").write_bytes(b"spk data")
    (bundle / "naif0012.tls").write_text("leapseconds")
    (bundle / "pck00011.tpc").write_text("constants")
    (bundle / "earth_latest_high_prec.bpc").write_bytes(b"binary pck")
    (bundle / "extra").mkdir()
    (bundle / "extra" / "chiron.bsp").write_bytes(b"chiron spk")
    (bundle / "README.txt").write_text("not a kernel")
    return bundle


class TestKernelFiles:
    """Tests for kernel file classification."""

    @pytest.mark.parametrize("name,kind", [
        ("de440.bsp", "ephemeris"),
        ("NAIF0012.TLS", "leapseconds"),
        ("pck00011.tpc", "planetary_constants"),
        ("earth.bpc", "binary_pck"),
        ("earth_assoc_itrf93.tf", "text_kernel"),
        ("checksums.json", "unknown"),
    ])
    def test_kernel_type(self, name, kind):
        assert get_kernel_type(name) == kind

    def test_list_skips_non_kernels(self, bundle_dir):
        files = list_kernel_files(str(bundle_dir))
        assert "README.txt" not in files
        assert os.path.join("extra", "chiron.bsp") in files
        assert files == sorted(files)

    def test_list_missing_dir(self, tmp_path):
        assert list_kernel_files(str(tmp_path / "missing")) == []


class TestBundleStructure:
    def test_complete_bundle(self, bundle_dir):
        assert validate_bundle_structure(str(bundle_dir)) == []

    def test_missing_directory(self, tmp_path):
        errors = validate_bundle_structure(str(tmp_path / "nowhere"))
        assert len(errors) == 1
        assert "does not exist" in errors[0]

    def test_missing_leapseconds(self, bundle_dir):
        (bundle_dir / "naif0012.tls").unlink()
        errors = validate_bundle_structure(str(bundle_dir))
        assert any("leapseconds" in error for error in errors)


class TestChecksums:
    """Tests for manifest creation and verification."""

    def test_manifest_roundtrip(self, bundle_dir, tmp_path):
        manifest_path = tmp_path / "checksums.json"
        manifest = create_checksums_manifest(str(bundle_dir), str(manifest_path))

        assert manifest["bundle"] == "de440-test"
        assert manifest["files"]["de440s.bsp"] == sha256(str(bundle_dir / "de440s.bsp"))
        assert json.loads(manifest_path.read_text())["files"] == manifest["files"]
        assert verify_kernels(str(bundle_dir), str(manifest_path)) is True

    def test_tampered_file_fails(self, bundle_dir, tmp_path):
        manifest_path = tmp_path / "checksums.json"
        create_checksums_manifest(str(bundle_dir), str(manifest_path))
        (bundle_dir / "de440s.bsp").write_bytes(b"tampered")

        assert verify_kernels(str(bundle_dir), str(manifest_path)) is False

    def test_missing_file_fails(self, bundle_dir, tmp_path):
        manifest_path = tmp_path / "checksums.json"
        manifest_path.write_text(json.dumps({"files": {"gone.bsp": "00"}}))
        assert verify_kernels(str(bundle_dir), str(manifest_path)) is False

    def test_empty_or_unreadable_manifest_fails(self, bundle_dir, tmp_path):
        empty = tmp_path / "empty.json"
        empty.write_text(json.dumps({"files": {}}))
        broken = tmp_path / "broken.json"
        broken.write_text("{not json")

        assert verify_kernels(str(bundle_dir), str(empty)) is False
        assert verify_kernels(str(bundle_dir), str(broken)) is False

    def test_unreadable_kernel_fails(self, bundle_dir, tmp_path):
        """Test a kernel that cannot be read fails verification instead of raising."""
        (bundle_dir / "locked.bsp").mkdir()
        manifest_path = tmp_path / "checksums.json"
        manifest_path.write_text(json.dumps({"files": {"locked.bsp": "00"}}))

        assert verify_kernels(str(bundle_dir), str(manifest_path)) is False

    def test_manifest_for_missing_bundle(self, tmp_path):
        with pytest.raises(ValueError):
            create_checksums_manifest(str(tmp_path / "missing"), str(tmp_path / "out.json"))


class TestKernelBundle:
    """Tests for the bundle object used by the SPICE provider."""

    def test_paths(self, bundle_dir):
        bundle = KernelBundle(str(bundle_dir.parent), "de440-test")
        assert bundle.bundle_dir == str(bundle_dir)
        assert bundle.checksums_file == os.path.join(str(bundle_dir), "checksums.json")

    def test_load_order(self, bundle_dir):
        """Test text kernels are furnished before binary ones and SPKs come last."""
        kernels = KernelBundle(str(bundle_dir.parent), "de440-test").list_kernels()
        kinds = [get_kernel_type(name) for name in kernels]

        assert kinds == [
            "leapseconds", "planetary_constants", "binary_pck", "ephemeris", "ephemeris"
        ]

    def test_ephemeris_files(self, bundle_dir):
        files = KernelBundle(str(bundle_dir.parent), "de440-test").ephemeris_files()
        assert all(os.path.isabs(path) and path.endswith(".bsp") for path in files)
        assert len(files) == 2

    def test_verify_without_manifest(self, bundle_dir):
        bundle = KernelBundle(str(bundle_dir.parent), "de440-test")
        assert bundle.verify() is False
        assert bundle.is_verified is False

    def test_verify_with_default_manifest(self, bundle_dir):
        create_checksums_manifest(str(bundle_dir), str(bundle_dir / "checksums.json"))
        bundle = KernelBundle(str(bundle_dir.parent), "de440-test")

        assert bundle.verify() is True
        assert bundle.get_info()["verified"] is True
        assert bundle.get_info()["exists"] is True


class TestChecksumsCommand:
    """Tests for the ephemeris-checksums command."""

    def test_writes_default_manifest(self, bundle_dir):
        assert main([str(bundle_dir)]) == 0

        manifest = json.loads((bundle_dir / "checksums.json").read_text())
        assert sorted(manifest["files"]) == list_kernel_files(str(bundle_dir))

    def test_verify(self, bundle_dir, tmp_path):
        manifest_path = tmp_path / "sums.json"
        assert main([str(bundle_dir), "--output", str(manifest_path)]) == 0
        assert main([str(bundle_dir), "--output", str(manifest_path), "--verify"]) == 0

        (bundle_dir / "naif0012.tls").write_text("changed")
        assert main([str(bundle_dir), "--output", str(manifest_path), "--verify"]) == 1

    def test_missing_bundle(self, tmp_path):
        assert main([str(tmp_path / "missing")]) == 1
