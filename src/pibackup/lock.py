"""Exclusive per-host run lock."""

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pibackup.errors import FailureKind, LockError, PreflightError

logger = logging.getLogger(__name__)


def lock_path(lock_dir: Path, hostname: str) -> Path:
    return lock_dir / f"pibackup-{hostname}.lock"


@contextmanager
def run_lock(lock_dir: Path, hostname: str) -> Iterator[Path]:
    """Hold an exclusive, non-blocking flock for the block.

    Raises:
        LockError: If another process holds the lock
        PreflightError: If the lock file cannot be created (CONFIGURATION_ERROR)
    """
    path = lock_path(lock_dir, hostname)
    try:
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise PreflightError(
            FailureKind.CONFIGURATION_ERROR,
            f"Cannot create lock file {path}: {e}. Check lock_dir in the configuration.",
        )

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise LockError(f"Another backup for {hostname} is already running (lock: {path})")
        except OSError as e:
            raise LockError(f"Cannot lock {path}: {e}")

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug(f"Acquired lock {path}")
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
