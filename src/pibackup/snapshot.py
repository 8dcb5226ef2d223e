"""Full-device copy to a timestamped image file."""

import logging
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from pibackup.config import BackupConfig
from pibackup.destination import BackupDestination
from pibackup.errors import FailureKind, SnapshotError
from pibackup.formatting import format_duration
from pibackup.system import SystemTools
from pibackup.types import SnapshotResult

logger = logging.getLogger(__name__)


def remove_marker(marker: Path) -> None:
    """Remove the forced-check marker if present."""
    try:
        marker.unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Failed to remove fsck marker {marker}: {e}")


@contextmanager
def forced_fsck_marker(marker: Path) -> Iterator[Path]:
    """Hold the forced-check marker for the duration of the block.

    The source is copied while mounted and live, so its filesystem is
    checked on the next boot. The marker is removed on every exit path.
    """
    try:
        marker.touch()
    except OSError as e:
        # Not fatal: the copy is still usable, the next boot just skips fsck
        logger.warning(f"Could not create fsck marker {marker}: {e}")
    try:
        yield marker
    finally:
        remove_marker(marker)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Failed to remove partial image {path}: {e}")


def produce_snapshot(
    config: BackupConfig,
    tools: SystemTools,
    destination: BackupDestination,
    now: datetime | None = None,
) -> SnapshotResult:
    """Copy the source device to `{hostname}.{timestamp}.img`.

    Produces exactly one new image, or leaves the destination as it was.

    Raises:
        SnapshotError: If the copy fails (kind COPY_FAILED)
    """
    started_at = now or datetime.now()
    final_path = destination.artifact_path(started_at)
    if final_path.exists():
        raise SnapshotError(
            FailureKind.COPY_FAILED,
            f"Backup file {final_path} already exists",
        )

    target = destination.staging_path(final_path) if config.staged_write else final_path

    logger.info(f"Backup file: {final_path}")
    logger.info(f"Source: {config.source_device}")
    logger.info("Starting device copy (this will take several minutes)...")

    with forced_fsck_marker(config.fsck_marker):
        start = time.monotonic()
        try:
            result = tools.copier.copy(config.source_device, target, config.chunk_size)
        except BaseException:
            _discard(target)
            raise
        duration = time.monotonic() - start

        if result.failed:
            _discard(target)
            raise SnapshotError(
                FailureKind.COPY_FAILED,
                f"Device copy failed: {result.error_message or f'exit code {result.exit_code}'}",
            )

    if target != final_path:
        try:
            target.rename(final_path)
        except OSError as e:
            _discard(target)
            raise SnapshotError(
                FailureKind.COPY_FAILED,
                f"Failed to move {target.name} into place: {e}",
            )

    logger.info(f"Copy completed in {format_duration(int(duration))}")

    bytes_copied = None
    if final_path.exists():
        bytes_copied = final_path.stat().st_size

    return SnapshotResult(
        path=final_path,
        started_at=started_at,
        duration_seconds=duration,
        bytes_copied=bytes_copied,
    )
