from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from typing import List, Optional
import yaml
import os
import sys

from .ephemeris.bodies import ALL_BODIES

DEFAULT_CONFIG_PATH = "config.yaml"


class APIConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cors_origins: List[str] = []
    workers: int = 4

    @field_validator('workers')
    @classmethod
    def validate_workers(cls, v):
        if v < 1:
            raise ValueError("Workers must be positive")
        return v


class KernelConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bundle: str = "de440-modern"
    path: str = "/opt/kernels"
    checksums_file: Optional[str] = None
    verify_checksums: bool = False

    @field_validator('bundle')
    @classmethod
    def validate_bundle(cls, v):
        if not v or "/" in v or v.startswith("."):
            raise ValueError(f"Invalid kernel bundle: {v}. Must be a directory name under the kernel path")
        return v


class BodiesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: List[str] = list(ALL_BODIES)

    @field_validator('enabled')
    @classmethod
    def validate_enabled(cls, v):
        unknown = [name for name in v if name not in ALL_BODIES]
        if unknown:
            raise ValueError(f"Unknown bodies: {unknown}. Must be among {list(ALL_BODIES)}")
        if not v:
            raise ValueError("At least one body must be enabled")
        # Keep the canonical order regardless of how the list was written
        return [name for name in ALL_BODIES if name in v]


class AspectsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_orb: float = 8.0
    min_orb: float = 0.1
    max_orb: float = 15.0

    @model_validator(mode='after')
    def validate_orb_range(self):
        if not (0 < self.min_orb <= self.default_orb <= self.max_orb):
            raise ValueError("Orb settings must satisfy 0 < min_orb <= default_orb <= max_orb")
        return self


class ScannerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    step_minutes: int = 15
    max_events: int = 6

    @field_validator('step_minutes')
    @classmethod
    def validate_step(cls, v):
        if v < 1 or 1440 % v != 0:
            raise ValueError("Scanner step must be a positive divisor of 1440 minutes")
        return v

    @field_validator('max_events')
    @classmethod
    def validate_max_events(cls, v):
        if v < 1:
            raise ValueError("max_events must be positive")
        return v


class StarsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog: str = "bright_stars"
    mag_limit: float = 2.5

    @field_validator('mag_limit')
    @classmethod
    def validate_mag_limit(cls, v):
        if v < -2.0 or v > 10.0:
            raise ValueError("Magnitude limit must be between -2.0 and 10.0")
        return v


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    json_format: bool = True

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Invalid log level: {v}. Must be one of {allowed}")
        return v.upper()


class MCPConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "ephemeris-server"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")  # Prevent unexpected config keys

    api: APIConfig = APIConfig()
    kernels: KernelConfig = KernelConfig()
    bodies: BodiesConfig = BodiesConfig()
    aspects: AspectsConfig = AspectsConfig()
    scanner: ScannerConfig = ScannerConfig()
    stars: StarsConfig = StarsConfig()
    logging: LoggingConfig = LoggingConfig()
    mcp: MCPConfig = MCPConfig()


def _env_flag(name: str) -> bool:
    return os.environ[name].strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from YAML file with environment variable overrides."""
    path = path or os.environ.get("EPHEMERIS_CONFIG", DEFAULT_CONFIG_PATH)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        print(f"Warning: Config file {path} not found, using defaults", file=sys.stderr)
        data = {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file {path}: {e}")

    env_overrides = {}

    # API overrides
    if "CORS_ORIGINS" in os.environ:
        env_overrides.setdefault("api", {})["cors_origins"] = [
            origin.strip() for origin in os.environ["CORS_ORIGINS"].split(",") if origin.strip()
        ]
    if "WORKERS" in os.environ:
        env_overrides.setdefault("api", {})["workers"] = int(os.environ["WORKERS"])

    # Kernel overrides
    if "KERNEL_BUNDLE" in os.environ:
        env_overrides.setdefault("kernels", {})["bundle"] = os.environ["KERNEL_BUNDLE"]
    if "KERNEL_PATH" in os.environ:
        env_overrides.setdefault("kernels", {})["path"] = os.environ["KERNEL_PATH"]
    if "KERNEL_VERIFY_CHECKSUMS" in os.environ:
        env_overrides.setdefault("kernels", {})["verify_checksums"] = _env_flag("KERNEL_VERIFY_CHECKSUMS")

    # Body overrides
    if "ENABLED_BODIES" in os.environ:
        env_overrides.setdefault("bodies", {})["enabled"] = [
            name.strip().lower() for name in os.environ["ENABLED_BODIES"].split(",") if name.strip()
        ]

    # Scanner overrides
    if "SCANNER_STEP_MINUTES" in os.environ:
        env_overrides.setdefault("scanner", {})["step_minutes"] = int(os.environ["SCANNER_STEP_MINUTES"])

    # Logging overrides
    if "LOG_LEVEL" in os.environ:
        env_overrides.setdefault("logging", {})["level"] = os.environ["LOG_LEVEL"]
    if "LOG_JSON" in os.environ:
        env_overrides.setdefault("logging", {})["json_format"] = _env_flag("LOG_JSON")

    # MCP overrides
    if "MCP_NAME" in os.environ:
        env_overrides.setdefault("mcp", {})["name"] = os.environ["MCP_NAME"]

    # Merge environment overrides into config data
    def merge_dict(base, override):
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                merge_dict(base[key], value)
            else:
                base[key] = value

    merge_dict(data, env_overrides)

    try:
        return AppConfig(**data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def print_config(config: AppConfig) -> None:
    """Print effective configuration on startup."""
    print("=== Ephemeris Server Configuration ===")
    print(f"API Workers: {config.api.workers}")
    print(f"CORS Origins: {config.api.cors_origins}")
    print(f"Kernel Bundle: {config.kernels.bundle}")
    print(f"Kernel Path: {config.kernels.path}")
    print(f"Kernel Checksums: {'verified' if config.kernels.verify_checksums else 'not verified'} ({config.kernels.checksums_file})")
    print(f"Enabled Bodies: {', '.join(config.bodies.enabled)}")
    print(f"Aspect Orb: default {config.aspects.default_orb} (range {config.aspects.min_orb}-{config.aspects.max_orb})")
    print(f"Event Scanner: every {config.scanner.step_minutes} min, max {config.scanner.max_events} events")
    print(f"Star Catalog: {config.stars.catalog} (mag ≤ {config.stars.mag_limit})")
    print(f"Logging: {config.logging.level} ({'json' if config.logging.json_format else 'text'})")
    print(f"MCP Server Name: {config.mcp.name}")
    print("=" * 38)
