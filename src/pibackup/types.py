"""Core type definitions for pibackup."""

import fnmatch
import re
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from pibackup.errors import FailureKind

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
SECONDS_PER_DAY = 86400

_STAMP_RE = re.compile(r"\.(\d{8}_\d{6})\.img")


def artifact_name(hostname: str, timestamp: datetime) -> str:
    """Build the image file name for a host and timestamp."""
    return f"{hostname}.{timestamp.strftime(TIMESTAMP_FORMAT)}.img"


def matches_host(name: str, hostname: str) -> bool:
    """Check a file name against the `{hostname}.*.img*` pattern."""
    prefix = f"{hostname}."
    if not name.startswith(prefix):
        return False
    return fnmatch.fnmatchcase(name[len(prefix):], "*.img*")


def parse_timestamp(name: str) -> datetime | None:
    """Extract the timestamp embedded in an image name, if it has one."""
    match = _STAMP_RE.search(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None


class BackupArtifact(BaseModel):
    """One image file on the destination."""

    path: Path
    hostname: str
    timestamp: datetime | None = None
    size_bytes: int
    modified_at: datetime

    @property
    def name(self) -> str:
        return self.path.name

    def age_seconds(self, now: datetime) -> float:
        return (now - self.modified_at).total_seconds()

    def age_days(self, now: datetime) -> int:
        """Age in whole days, rounded down (as `find -mtime` counts it)."""
        return int(self.age_seconds(now) // SECONDS_PER_DAY)


class PreflightReport(BaseModel):
    """What preflight learned about the host and destination."""

    hostname: str
    destination: Path
    existing: list[BackupArtifact] = []
    device_size: int
    device_size_known: bool = True
    free_space: int
    space_warning: bool = False
    resize_enabled: bool = False
    warnings: list[str] = []

    @property
    def existing_count(self) -> int:
        return len(self.existing)


class SnapshotResult(BaseModel):
    """A finished device copy."""

    path: Path
    started_at: datetime
    duration_seconds: float
    bytes_copied: int | None = None


class PruneResult(BaseModel):
    """Outcome of a retention pass."""

    candidates: list[Path] = []
    deleted: list[Path] = []
    failed: list[Path] = []
    aborted: bool = False
    remaining_after: int | None = None


class ShrinkResult(BaseModel):
    """Outcome of the optional shrink step."""

    skipped: bool = False
    succeeded: bool = False
    size_before: int | None = None
    size_after: int | None = None
    error: str | None = None


class RunSummary(BaseModel):
    """Everything a run did, including the fatal failure if there was one."""

    hostname: str | None = None
    destination: Path
    started_at: datetime
    ended_at: datetime | None = None
    failure: FailureKind | None = None
    error_message: str | None = None
    preflight: PreflightReport | None = None
    snapshot: SnapshotResult | None = None
    prune: PruneResult | None = None
    shrink: ShrinkResult | None = None
    artifacts: list[BackupArtifact] = []

    @property
    def succeeded(self) -> bool:
        return self.failure is None

    @property
    def exit_code(self) -> int:
        return 0 if self.failure is None else 1
