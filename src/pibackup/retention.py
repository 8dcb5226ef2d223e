"""Retention enforcement: delete old images, never all of them."""

import logging
from datetime import datetime
from pathlib import Path

from pibackup.config import BackupConfig
from pibackup.destination import BackupDestination
from pibackup.errors import StorageError
from pibackup.formatting import format_size
from pibackup.types import BackupArtifact, PruneResult

logger = logging.getLogger(__name__)


def find_expired(
    artifacts: list[BackupArtifact],
    retention_days: int,
    now: datetime,
    exclude: Path | None = None,
) -> list[BackupArtifact]:
    """Images whose age in whole days is strictly greater than retention_days."""
    return [
        a for a in artifacts
        if a.path != exclude and a.age_days(now) > retention_days
    ]


def remaining_after(existing_count: int, delete_count: int) -> int:
    """Images left after pruning: those before the run, plus the new one, minus deletions."""
    return existing_count + 1 - delete_count


class RetentionPruner:
    """Deletes expired images for one host at one destination.

    The safety floor is all-or-nothing: if deleting every candidate would
    leave fewer than safety_floor images the whole pass is skipped. Once
    deletion starts, individual failures are logged and the pass continues.
    """

    def __init__(self, config: BackupConfig, destination: BackupDestination):
        self.config = config
        self.destination = destination

    def prune(
        self,
        existing_count: int,
        new_artifact: Path | None = None,
        now: datetime | None = None,
    ) -> PruneResult:
        """Run one retention pass.

        Args:
            existing_count: Number of host images found before this run's backup
            new_artifact: The image just created, never deleted
            now: Reference time for ages (defaults to now)
        """
        now = now or datetime.now()
        retention_days = self.config.retention_days
        logger.info(f"Looking for backups older than {retention_days} days...")

        try:
            artifacts = self.destination.list_artifacts()
        except StorageError as e:
            logger.error(f"Failed to list backups, skipping cleanup: {e}")
            return PruneResult(aborted=True)

        expired = find_expired(artifacts, retention_days, now, exclude=new_artifact)
        if not expired:
            logger.info("No old backups to delete.")
            return PruneResult(remaining_after=len(artifacts))

        logger.info(f"Found {len(expired)} backup(s) to delete:")
        for artifact in expired:
            logger.info(
                f"  - {artifact.name} ({format_size(artifact.size_bytes)}, "
                f"{artifact.age_days(now)} days old)"
            )

        result = PruneResult(candidates=[a.path for a in expired])
        post_count = remaining_after(existing_count, len(expired))

        if post_count < self.config.safety_floor:
            logger.warning(
                f"SAFETY ABORT: deletion would leave {post_count} backup(s) "
                f"(minimum {self.config.safety_floor}). Keeping old backups."
            )
            result.aborted = True
            result.remaining_after = len(artifacts)
            return result

        logger.info(f"After deletion, there will be {post_count} backup(s) remaining.")

        for artifact in expired:
            logger.info(f"Deleting: {artifact.name}")
            try:
                self.destination.delete(artifact.path)
                result.deleted.append(artifact.path)
            except StorageError as e:
                logger.error(f"  Failed to delete {artifact.name}: {e}")
                result.failed.append(artifact.path)

        result.remaining_after = len(artifacts) - len(result.deleted)
        logger.info(
            f"Old backup deletion completed: {len(result.deleted)} deleted, "
            f"{len(result.failed)} failed."
        )
        return result
