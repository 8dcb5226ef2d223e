"""Backup destination directory: listing, probing and deleting images."""

import logging
import os
import uuid
from datetime import datetime
from pathlib import Path

from pibackup.errors import StorageError
from pibackup.types import BackupArtifact, artifact_name, matches_host, parse_timestamp

logger = logging.getLogger(__name__)

PROBE_PREFIX = ".backup_write_test_"


class BackupDestination:
    """A mounted directory holding `{hostname}.{timestamp}.img` files.

    Only the top level is ever scanned; subdirectories are left alone.
    """

    def __init__(self, path: Path, hostname: str):
        self.path = Path(path)
        self.hostname = hostname

    def artifact_path(self, timestamp: datetime) -> Path:
        """Final path for an image taken at timestamp."""
        return self.path / artifact_name(self.hostname, timestamp)

    def staging_path(self, final_path: Path) -> Path:
        """Hidden path an image is written to before it is renamed into place."""
        return final_path.with_name(f".{final_path.name}.partial")

    def list_artifacts(self) -> list[BackupArtifact]:
        """List this host's images, oldest first.

        Raises:
            StorageError: If the directory cannot be read
        """
        artifacts = []
        try:
            with os.scandir(self.path) as entries:
                for entry in entries:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    if not matches_host(entry.name, self.hostname):
                        continue
                    stat = entry.stat(follow_symlinks=False)
                    artifacts.append(
                        BackupArtifact(
                            path=Path(entry.path),
                            hostname=self.hostname,
                            timestamp=parse_timestamp(entry.name),
                            size_bytes=stat.st_size,
                            modified_at=datetime.fromtimestamp(stat.st_mtime),
                        )
                    )
        except OSError as e:
            raise StorageError(f"Failed to list {self.path}: {e}")

        artifacts.sort(key=lambda a: (a.modified_at, a.name))
        return artifacts

    def stat_artifact(self, path: Path) -> BackupArtifact | None:
        """Metadata for one image, or None if it does not exist."""
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to stat {path}: {e}")
        if not path.is_file():
            return None
        return BackupArtifact(
            path=path,
            hostname=self.hostname,
            timestamp=parse_timestamp(path.name),
            size_bytes=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime),
        )

    def probe_write(self) -> bool:
        """Create and remove a uniquely named file to test write access."""
        probe = self.path / f"{PROBE_PREFIX}{os.getpid()}_{uuid.uuid4().hex[:8]}"
        try:
            probe.touch(exist_ok=False)
        except OSError as e:
            logger.debug(f"Write probe failed: {e}")
            return False
        try:
            probe.unlink()
        except OSError as e:
            logger.warning(f"Could not remove write probe {probe}: {e}")
        return True

    def delete(self, path: Path) -> None:
        """Delete one image.

        Raises:
            StorageError: If deletion fails
        """
        if path.parent != self.path:
            raise StorageError(f"Refusing to delete {path}: outside {self.path}")
        try:
            path.unlink(missing_ok=True)
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}")
