"""Local implementations of the system capabilities."""

import logging
import os
import shutil
import socket
import subprocess
from pathlib import Path

from pibackup.system.base import CommandResult

logger = logging.getLogger(__name__)


def _run(cmd: list[str], timeout: float | None = None) -> subprocess.CompletedProcess:
    """Run a command, capturing output."""
    logger.debug(f"Running: {' '.join(cmd)}")
    return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)


class LocalHost:
    """The machine this process runs on."""

    def is_privileged(self) -> bool:
        return os.geteuid() == 0

    def hostname(self) -> str:
        return socket.gethostname()

    def has_tool(self, name: str) -> bool:
        return shutil.which(name) is not None

    def sync(self) -> None:
        result = _run(["sync"])
        if result.returncode != 0:
            logger.warning(f"sync exited with {result.returncode}: {result.stderr.strip()}")


class BlockdevInfo:
    """Device size via `blockdev --getsize64`."""

    def size_bytes(self, device: Path) -> int | None:
        if not device.is_block_device():
            return None
        try:
            result = _run(["blockdev", "--getsize64", str(device)])
        except OSError as e:
            logger.debug(f"blockdev unavailable: {e}")
            return None
        if result.returncode != 0:
            return None
        try:
            size = int(result.stdout.strip())
        except ValueError:
            return None
        return size if size > 0 else None


class MountpointChecker:
    """Mount checks via `mountpoint -q` and a timed `ls`."""

    def is_mount_point(self, path: Path) -> bool:
        try:
            result = _run(["mountpoint", "-q", str(path)])
        except OSError:
            return False
        if result.returncode != 0:
            return False
        # The root filesystem is a mount point too, but never a valid target
        return path.resolve() != Path("/")

    def is_responsive(self, path: Path, timeout: float) -> bool:
        try:
            result = _run(["ls", "-la", str(path)], timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        except OSError:
            return False
        return result.returncode == 0


class DiskUsageQuery:
    """Free space from the filesystem statistics."""

    def free_bytes(self, path: Path) -> int:
        return shutil.disk_usage(path).free


class DdCopier:
    """Device copy with `dd bs=... conv=fsync`."""

    def copy(self, source: Path, target: Path, chunk_size: int) -> CommandResult:
        cmd = [
            "dd",
            f"if={source}",
            f"of={target}",
            f"bs={chunk_size}",
            "conv=fsync",
            "status=progress",
        ]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            # Let dd's progress reach the terminal
            result = subprocess.run(cmd, stdout=subprocess.PIPE, text=True)
        except OSError as e:
            return CommandResult(exit_code=-1, failed=True, error_message=str(e))
        if result.returncode != 0:
            return CommandResult(
                exit_code=result.returncode,
                failed=True,
                error_message=f"dd exited with code {result.returncode}",
            )
        return CommandResult(exit_code=0, failed=False)


class StreamCopier:
    """Chunked copy in Python with a final fsync."""

    def copy(self, source: Path, target: Path, chunk_size: int) -> CommandResult:
        try:
            with open(source, "rb") as src, open(target, "wb") as dst:
                while chunk := src.read(chunk_size):
                    dst.write(chunk)
                dst.flush()
                os.fsync(dst.fileno())
        except OSError as e:
            return CommandResult(exit_code=1, failed=True, error_message=str(e))
        return CommandResult(exit_code=0, failed=False)


class PiShrinkShrinker:
    """Image shrinking with `pishrink -v`."""

    def __init__(self, tool: str = "pishrink"):
        self.tool = tool

    def shrink(self, image: Path) -> CommandResult:
        cmd = [self.tool, "-v", str(image)]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd)
        except OSError as e:
            return CommandResult(exit_code=-1, failed=True, error_message=str(e))
        if result.returncode != 0:
            return CommandResult(
                exit_code=result.returncode,
                failed=True,
                error_message=f"{self.tool} exited with code {result.returncode}",
            )
        return CommandResult(exit_code=0, failed=False)
