"""
Star catalog loading and lookup.

Handles loading J2000 star coordinates from CSV files with magnitude
filtering and data validation.
"""

import csv
import os
import logging
from typing import List, Dict, Optional

logger = logging.getLogger(__name__)

CATALOG_FILES = {
    "bright_stars": "bright_stars.csv",
}


def load_catalog(path: str, mag_limit: float = 6.0) -> List[Dict]:
    """
    Load star catalog from CSV file with magnitude filtering.

    Args:
        path: Path to CSV catalog file
        mag_limit: Maximum visual magnitude to include

    Returns:
        List of star dictionaries with standardized fields

    Raises:
        FileNotFoundError: If catalog file doesn't exist
        ValueError: If catalog format is invalid
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Star catalog not found: {path}")

    stars = []

    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)

        required_cols = ["RAh", "RAm", "RAs", "DEd", "DEm", "DEs"]
        missing_cols = [col for col in required_cols if col not in (reader.fieldnames or [])]
        if missing_cols:
            raise ValueError(f"Missing required columns in catalog {path}: {missing_cols}")

        for line_count, row in enumerate(reader, 1):
            try:
                vmag = _safe_float(row.get("Vmag"), default=99.0)
                if vmag > mag_limit:
                    continue

                ra_hours = float(row["RAh"]) + float(row["RAm"]) / 60.0 + float(row["RAs"]) / 3600.0

                de_d = float(row["DEd"])
                dec_deg = abs(de_d) + float(row["DEm"]) / 60.0 + float(row["DEs"]) / 3600.0
                if row.get("DEsign", "+") == "-" or de_d < 0:
                    dec_deg = -dec_deg

                star = {
                    "id": row.get("ID") or f"star_{line_count}",
                    "name": (row.get("Name") or "").strip(),
                    "ra_hours": ra_hours,
                    "dec_deg": dec_deg,
                    "pm_ra_mas_yr": _safe_float(row.get("pmRA")),    # includes cos(dec)
                    "pm_dec_mas_yr": _safe_float(row.get("pmDE")),
                    "vmag": vmag,
                }

                if not (0 <= ra_hours < 24):
                    logger.warning(f"Invalid RA for star {star['id']}: {ra_hours} hours")
                    continue

                if not (-90 <= dec_deg <= 90):
                    logger.warning(f"Invalid Dec for star {star['id']}: {dec_deg} degrees")
                    continue

                stars.append(star)

            except (ValueError, KeyError) as e:
                logger.warning(f"Skipping malformed star record at line {line_count}: {e}")
                continue

    logger.info(f"Loaded {len(stars)} stars from {path} (mag ≤ {mag_limit})")
    return stars


def _safe_float(value: Optional[str], default: float = 0.0) -> float:
    """Safely parse float with fallback to default."""
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_catalog_path(catalog_name: str) -> str:
    """
    Get full path for a named catalog shipped with the package.

    Raises:
        ValueError: If catalog name is not supported
    """
    if catalog_name not in CATALOG_FILES:
        available = list(CATALOG_FILES.keys())
        raise ValueError(f"Unsupported catalog '{catalog_name}'. Available: {available}")

    module_dir = os.path.dirname(__file__)
    return os.path.join(module_dir, "data", CATALOG_FILES[catalog_name])


def find_star(stars: List[Dict], name: str) -> Optional[Dict]:
    """Look up a star by proper name, case-insensitively."""
    wanted = name.strip().lower()
    for star in stars:
        if star["name"].lower() == wanted:
            return star
    return None
