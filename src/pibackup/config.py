"""Configuration models for pibackup."""

import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pibackup.errors import ConfigurationError

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB

DEFAULT_CONFIG_PATH = Path("/etc/pibackup.yaml")

_SIZE_RE = re.compile(r"^(\d+)\s*([kmgt]?)(i?b)?$")


def parse_size(size: str | int) -> int:
    """Parse size to bytes. Supports: 4096, 512K, 500M, 16G, 1T (binary units)."""
    if isinstance(size, bool):
        raise ValueError(f"Invalid size: {size!r}")
    if isinstance(size, int):
        if size < 0:
            raise ValueError(f"Size must be non-negative: {size}")
        return size

    size_str = size.strip().lower()
    if not size_str:
        raise ValueError("Empty size string")

    match = _SIZE_RE.match(size_str)
    if not match:
        raise ValueError(f"Invalid size: {size}. Use a number with optional K, M, G or T suffix.")

    value, unit, _ = match.groups()
    multipliers = {"": 1, "k": KIB, "m": MIB, "g": GIB, "t": GIB * 1024}
    return int(value) * multipliers[unit]


class BackupConfig(BaseModel):
    """Settings for one backup run. Built once at startup, never mutated."""

    model_config = ConfigDict(frozen=True)

    destination_path: Path = Path("/mnt/backup")
    retention_days: int = Field(default=3, ge=0)
    resize_enabled: bool = True

    min_artifact_size: int = 500 * MIB
    safety_floor: int = Field(default=1, ge=1)
    min_expected_backups: int = Field(default=0, ge=0)

    source_device: Path = Path("/dev/mmcblk0")
    default_device_size: int = 16 * GIB
    fsck_marker: Path = Path("/boot/forcefsck")
    chunk_size: int = 1 * MIB
    copy_method: Literal["dd", "python"] = "dd"

    probe_timeout: float = Field(default=10.0, gt=0)
    settle_seconds: float = Field(default=2.0, ge=0)

    hostname: str | None = None
    shrink_tool: str = "pishrink"
    required_tools: list[str] = ["dd", "sync", "blockdev", "mountpoint"]

    staged_write: bool = True
    lock_enabled: bool = True
    lock_dir: Path = Path("/run/lock")

    @field_validator("min_artifact_size", "default_device_size", "chunk_size", mode="before")
    @classmethod
    def validate_size(cls, v):
        return parse_size(v)

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("chunk_size must be positive")
        return v


def load_config(path: Path | None = None, **overrides) -> BackupConfig:
    """Load configuration from YAML, then apply non-None overrides.

    When path is None the system-wide file is used if present, otherwise
    defaults apply.
    """
    data: dict = {}
    if path is None and DEFAULT_CONFIG_PATH.exists():
        path = DEFAULT_CONFIG_PATH

    if path is not None:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return BackupConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def get_config_template() -> str:
    """Get the default configuration template."""
    return """# pibackup configuration

# Mounted filesystem (NAS, USB disk) that receives the images.
# Must be a mount point; the run aborts if it is not mounted.
destination_path: /mnt/backup

# Images older than this many days are deleted after a good backup.
# At least one image is always kept.
retention_days: 3

# Shrink the finished image with pishrink (skipped if not installed).
resize_enabled: true

source_device: /dev/mmcblk0
# Assumed device size when it cannot be queried
default_device_size: 16G

# Images smaller than this are treated as truncated copies.
min_artifact_size: 500M

# Warn when fewer images than this exist before the run.
min_expected_backups: 0

# Forces a filesystem check on next boot while the copy is running.
# Newer Raspberry Pi OS releases use /boot/firmware/forcefsck.
fsck_marker: /boot/forcefsck

chunk_size: 1M
# "dd" runs dd conv=fsync; "python" copies in-process and fsyncs at the end
copy_method: dd
probe_timeout: 10
settle_seconds: 2

# hostname: raspberrypi  # Defaults to $HOSTNAME or the system hostname
shrink_tool: pishrink

# Write to a hidden .partial file and rename it once the copy succeeds.
staged_write: true

# Refuse to start while another run for this host is active.
lock_enabled: true
lock_dir: /run/lock
"""
