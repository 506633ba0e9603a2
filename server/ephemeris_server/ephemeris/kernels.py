import argparse
import json
import os
import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, List
from pathlib import Path

logger = logging.getLogger(__name__)

KERNEL_TYPES = {
    ".bsp": "ephemeris",
    ".tls": "leapseconds",
    ".tpc": "planetary_constants",
    ".bpc": "binary_pck",
    ".tf": "text_kernel",
}

REQUIRED_TYPES = {
    "ephemeris": "*.bsp files for planetary positions",
    "leapseconds": "*.tls files for time conversions",
    "planetary_constants": "*.tpc files for planetary data",
}

# Furnish order: text kernels first so body-fixed frames resolve
_LOAD_ORDER = ["leapseconds", "planetary_constants", "text_kernel", "binary_pck", "ephemeris"]


def sha256(path: str) -> str:
    """Calculate SHA256 hash of a file."""
    h = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1 << 20), b""):  # 1MB chunks
                h.update(chunk)
        return h.hexdigest()
    except (IOError, OSError) as e:
        logger.error(f"Failed to hash file {path}: {e}")
        raise


def get_kernel_type(filename: str) -> str:
    """
    Determine kernel type from filename extension.

    Args:
        filename: Kernel filename

    Returns:
        Kernel type string, "unknown" for anything that is not a kernel
    """
    return KERNEL_TYPES.get(Path(filename).suffix.lower(), "unknown")


def verify_kernels(bundle_dir: str, checksums_file: str) -> bool:
    """
    Verify kernel files against their expected checksums.

    Args:
        bundle_dir: Directory containing kernel files
        checksums_file: JSON file with expected checksums ({"files": {rel_path: sha256}})

    Returns:
        True if all files pass verification, False otherwise
    """
    try:
        with open(checksums_file, "r") as f:
            manifest = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load checksums manifest {checksums_file}: {e}")
        return False

    files_to_check = manifest.get("files", {})
    if not files_to_check:
        logger.warning(f"No files listed in checksums manifest {checksums_file}")
        return False

    all_ok = True
    for rel_path, expected_hash in files_to_check.items():
        full_path = os.path.join(bundle_dir, rel_path)

        if not os.path.exists(full_path):
            logger.error(f"Kernel file missing: {full_path}")
            all_ok = False
            continue

        try:
            actual_hash = sha256(full_path)
        except OSError:
            all_ok = False
            continue

        if actual_hash != expected_hash:
            logger.error(f"Checksum mismatch for {rel_path}: "
                         f"expected {expected_hash}, got {actual_hash}")
            all_ok = False
        else:
            logger.debug(f"Checksum verified for {rel_path}")

    if all_ok:
        logger.info(f"All kernel files verified successfully in {bundle_dir}")
    else:
        logger.error(f"Kernel verification failed for bundle {bundle_dir}")

    return all_ok


def create_checksums_manifest(bundle_dir: str, output_file: str) -> Dict[str, Any]:
    """
    Write a checksums manifest for every kernel file in a bundle.

    Args:
        bundle_dir: Directory containing kernel files
        output_file: Output JSON file path

    Returns:
        The manifest that was written
    """
    if not os.path.exists(bundle_dir):
        raise ValueError(f"Bundle directory does not exist: {bundle_dir}")

    manifest = {
        "bundle": os.path.basename(os.path.normpath(bundle_dir)),
        "created": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "files": {}
    }

    for rel_path in list_kernel_files(bundle_dir):
        manifest["files"][rel_path] = sha256(os.path.join(bundle_dir, rel_path))
        logger.debug(f"Added to manifest: {rel_path}")

    with open(output_file, "w") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)

    logger.info(f"Created checksums manifest with {len(manifest['files'])} files: {output_file}")
    return manifest


def list_kernel_files(bundle_dir: str) -> List[str]:
    """List kernel files (relative paths) under a bundle directory, sorted."""
    kernels = []
    if os.path.exists(bundle_dir):
        for root, dirs, files in os.walk(bundle_dir):
            for file in files:
                if get_kernel_type(file) != "unknown":
                    rel_path = os.path.relpath(os.path.join(root, file), bundle_dir)
                    kernels.append(rel_path)
    return sorted(kernels)


def validate_bundle_structure(bundle_dir: str) -> List[str]:
    """
    Validate that a bundle contains the kernel types positions depend on.

    Args:
        bundle_dir: Directory containing kernel bundle

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not os.path.exists(bundle_dir):
        errors.append(f"Bundle directory does not exist: {bundle_dir}")
        return errors

    found_types = {get_kernel_type(name) for name in list_kernel_files(bundle_dir)}

    for req_type, description in REQUIRED_TYPES.items():
        if req_type not in found_types:
            errors.append(f"Missing required kernel type '{req_type}': {description}")

    return errors


class KernelBundle:
    """A directory of SPICE kernels selected by name under the kernel path."""

    def __init__(self, kernel_path: str, bundle: str, checksums_file: Optional[str] = None):
        self.bundle = bundle
        self.bundle_dir = os.path.join(kernel_path, bundle)
        self.checksums_file = checksums_file or os.path.join(self.bundle_dir, "checksums.json")
        self._verified = False

    @property
    def is_verified(self) -> bool:
        """Check if bundle has been verified."""
        return self._verified

    def verify(self) -> bool:
        """Verify the bundle against checksums."""
        if not os.path.exists(self.checksums_file):
            logger.error(f"Checksums file not found: {self.checksums_file}")
            return False

        self._verified = verify_kernels(self.bundle_dir, self.checksums_file)
        return self._verified

    def validate_structure(self) -> List[str]:
        """Validate bundle structure."""
        return validate_bundle_structure(self.bundle_dir)

    def list_kernels(self) -> List[str]:
        """All kernel files in the bundle, in the order they should be furnished."""
        kernels = list_kernel_files(self.bundle_dir)
        return sorted(kernels, key=lambda name: (_LOAD_ORDER.index(get_kernel_type(name)), name))

    def ephemeris_files(self) -> List[str]:
        """Absolute paths of the SPK files in the bundle."""
        return [
            os.path.join(self.bundle_dir, name)
            for name in self.list_kernels()
            if get_kernel_type(name) == "ephemeris"
        ]

    def get_info(self) -> Dict[str, Any]:
        """Get bundle information."""
        return {
            "bundle": self.bundle,
            "path": self.bundle_dir,
            "exists": os.path.exists(self.bundle_dir),
            "kernels": self.list_kernels(),
            "verified": self._verified
        }


def main(argv: Optional[List[str]] = None) -> int:
    """Write or check the checksums manifest of a kernel bundle."""
    parser = argparse.ArgumentParser(description="Manage kernel bundle checksums")
    parser.add_argument("bundle_dir", help="Directory containing the kernel bundle")
    parser.add_argument("--output", help="Manifest path (default: <bundle_dir>/checksums.json)")
    parser.add_argument("--verify", action="store_true",
                        help="Verify the bundle against an existing manifest instead of writing one")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    manifest_file = args.output or os.path.join(args.bundle_dir, "checksums.json")

    if args.verify:
        return 0 if verify_kernels(args.bundle_dir, manifest_file) else 1

    errors = validate_bundle_structure(args.bundle_dir)
    for error in errors:
        logger.warning(error)
    try:
        create_checksums_manifest(args.bundle_dir, manifest_file)
    except ValueError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
