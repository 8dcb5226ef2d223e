"""Shared fixtures and fake system tools."""

import os
import time
from pathlib import Path

import pytest

from pibackup.config import BackupConfig
from pibackup.system import CommandResult, SystemTools

DAY = 86400


class FakeHost:
    def __init__(self, privileged=True, hostname="pi", tools=None):
        self.privileged = privileged
        self._hostname = hostname
        self.tools = set(tools if tools is not None else ["dd", "sync", "blockdev", "mountpoint", "pishrink"])
        self.sync_calls = 0

    def is_privileged(self):
        return self.privileged

    def hostname(self):
        return self._hostname

    def has_tool(self, name):
        return name in self.tools

    def sync(self):
        self.sync_calls += 1


class FakeDevices:
    def __init__(self, size=8 * 1024**3):
        self.size = size

    def size_bytes(self, device):
        return self.size


class FakeMounts:
    def __init__(self, mounted=True, responsive=True):
        self.mounted = mounted
        self.responsive = responsive
        self.checked = []

    def is_mount_point(self, path):
        self.checked.append(path)
        return self.mounted

    def is_responsive(self, path, timeout):
        return self.responsive


class FakeSpace:
    def __init__(self, free=64 * 1024**3):
        self.free = free

    def free_bytes(self, path):
        return self.free


class FakeCopier:
    """Writes `size` bytes to the target, or fails after writing `partial` bytes."""

    def __init__(self, size=4096, fail=False, partial=100, marker=None):
        self.size = size
        self.fail = fail
        self.partial = partial
        self.marker = marker
        self.calls = []
        self.marker_seen = None

    def copy(self, source, target, chunk_size):
        self.calls.append((source, target, chunk_size))
        if self.marker is not None:
            self.marker_seen = self.marker.exists()
        if self.fail:
            target.write_bytes(b"\0" * self.partial)
            return CommandResult(exit_code=1, failed=True, error_message="dd: read error")
        target.write_bytes(b"\0" * self.size)
        return CommandResult(exit_code=0, failed=False)


class FakeShrinker:
    def __init__(self, fail=False, shrink_to=None, raises=None):
        self.fail = fail
        self.shrink_to = shrink_to
        self.raises = raises
        self.calls = []

    def shrink(self, image):
        self.calls.append(image)
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return CommandResult(exit_code=1, failed=True, error_message="pishrink exited with code 1")
        if self.shrink_to is not None:
            with open(image, "r+b") as f:
                f.truncate(self.shrink_to)
        return CommandResult(exit_code=0, failed=False)


@pytest.fixture
def dest(tmp_path) -> Path:
    path = tmp_path / "backup"
    path.mkdir()
    return path


@pytest.fixture
def marker(tmp_path) -> Path:
    boot = tmp_path / "boot"
    boot.mkdir()
    return boot / "forcefsck"


@pytest.fixture
def make_config(tmp_path, dest, marker):
    """Build a BackupConfig pointed at temporary paths."""
    lock_dir = tmp_path / "lock"
    lock_dir.mkdir()

    def _make(**overrides) -> BackupConfig:
        values = dict(
            destination_path=dest,
            hostname="pi",
            fsck_marker=marker,
            lock_dir=lock_dir,
            source_device=tmp_path / "mmcblk0",
            settle_seconds=0,
            min_artifact_size=1024,
        )
        values.update(overrides)
        return BackupConfig(**values)

    return _make


@pytest.fixture
def config(make_config) -> BackupConfig:
    return make_config()


@pytest.fixture
def tools(marker) -> SystemTools:
    return SystemTools(
        host=FakeHost(),
        devices=FakeDevices(),
        mounts=FakeMounts(),
        space=FakeSpace(),
        copier=FakeCopier(marker=marker),
        shrinker=FakeShrinker(),
    )


def make_artifact(directory: Path, name: str, age_days: float = 0, size: int = 2048) -> Path:
    """Create an image file whose mtime is age_days (plus an hour) in the past."""
    path = directory / name
    path.write_bytes(b"\0" * size)
    if age_days:
        mtime = time.time() - age_days * DAY - 3600
        os.utime(path, (mtime, mtime))
    return path


def snapshot_dir(directory: Path) -> set[str]:
    return {p.name for p in directory.iterdir()}
