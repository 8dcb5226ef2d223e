"""Capability protocols for the system tools a backup run depends on."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass
class CommandResult:
    """Result of an external command."""

    exit_code: int
    failed: bool
    error_message: str | None = None


class HostInfo(Protocol):
    """Facts about the machine being backed up."""

    def is_privileged(self) -> bool:
        """Check for root-equivalent privileges."""
        ...

    def hostname(self) -> str:
        """System hostname lookup."""
        ...

    def has_tool(self, name: str) -> bool:
        """Check if an executable is on PATH."""
        ...

    def sync(self) -> None:
        """Flush filesystem buffers to storage."""
        ...


class BlockDeviceInfo(Protocol):
    """Block device size query."""

    def size_bytes(self, device: Path) -> int | None:
        """Device capacity in bytes, or None if it cannot be determined."""
        ...


class MountChecker(Protocol):
    """Mount point and responsiveness checks."""

    def is_mount_point(self, path: Path) -> bool:
        """Check that path is a mounted filesystem other than root."""
        ...

    def is_responsive(self, path: Path, timeout: float) -> bool:
        """Check that a directory listing returns within timeout seconds."""
        ...


class SpaceQuery(Protocol):
    """Filesystem free space query."""

    def free_bytes(self, path: Path) -> int:
        """Bytes available to the caller on the filesystem holding path."""
        ...


class BlockCopier(Protocol):
    """Raw device-to-file copy."""

    def copy(self, source: Path, target: Path, chunk_size: int) -> CommandResult:
        """Copy source byte for byte into target and flush it to storage."""
        ...


class ImageShrinker(Protocol):
    """In-place image shrinking."""

    def shrink(self, image: Path) -> CommandResult:
        """Shrink image in place. A failed result leaves the image intact."""
        ...
