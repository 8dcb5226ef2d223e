"""Plausibility check on a new image before older ones may be deleted."""

import logging
import time
from pathlib import Path

from pibackup.config import MIB, BackupConfig
from pibackup.destination import BackupDestination
from pibackup.errors import FailureKind, IntegrityError, StorageError
from pibackup.formatting import format_size
from pibackup.system import SystemTools
from pibackup.types import BackupArtifact

logger = logging.getLogger(__name__)


def verify_artifact(
    config: BackupConfig,
    tools: SystemTools,
    destination: BackupDestination,
    path: Path,
) -> BackupArtifact:
    """Confirm the image exists and is at least min_artifact_size.

    On success, syncs and waits settle_seconds. A failed image is left on
    disk for inspection.

    Raises:
        IntegrityError: ARTIFACT_MISSING or ARTIFACT_TOO_SMALL
    """
    logger.info("Verifying backup integrity...")

    try:
        artifact = destination.stat_artifact(path)
    except StorageError as e:
        raise IntegrityError(FailureKind.ARTIFACT_MISSING, f"Backup file {path} is unreadable: {e}")
    if artifact is None:
        raise IntegrityError(FailureKind.ARTIFACT_MISSING, f"Backup file {path} was not created")

    logger.info(f"Backup size: {artifact.size_bytes // MIB}MB")

    if artifact.size_bytes < config.min_artifact_size:
        raise IntegrityError(
            FailureKind.ARTIFACT_TOO_SMALL,
            f"Backup file is suspiciously small "
            f"({artifact.size_bytes // MIB}MB < {config.min_artifact_size // MIB}MB). "
            "Backup might be corrupted; NOT deleting old backups",
        )

    logger.info("Syncing filesystem...")
    tools.host.sync()
    if config.settle_seconds:
        time.sleep(config.settle_seconds)

    logger.info(f"Backup created successfully: {format_size(artifact.size_bytes)}")
    return artifact
