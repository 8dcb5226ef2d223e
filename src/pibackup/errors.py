"""Failure taxonomy for backup runs."""

from enum import Enum


class FailureKind(str, Enum):
    """Reasons a backup run (or one of its steps) can fail."""

    PERMISSION_DENIED = "permission_denied"
    CONFIGURATION_ERROR = "configuration_error"
    DESTINATION_MISSING = "destination_missing"
    NOT_MOUNTED = "not_mounted"
    READ_ONLY_OR_DENIED = "read_only_or_denied"
    UNRESPONSIVE = "unresponsive"
    INSUFFICIENT_SPACE = "insufficient_space"
    MISSING_DEPENDENCY = "missing_dependency"
    ALREADY_RUNNING = "already_running"
    COPY_FAILED = "copy_failed"
    ARTIFACT_MISSING = "artifact_missing"
    ARTIFACT_TOO_SMALL = "artifact_too_small"
    # Non-fatal, recorded but never raised out of their stage
    DELETION_FAILED = "deletion_failed"
    SHRINK_FAILED = "shrink_failed"


class BackupError(Exception):
    """A fatal failure that ends the run."""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.message} ({self.kind.value})"


class ConfigurationError(BackupError):
    """Configuration could not be loaded or resolved."""

    def __init__(self, message: str):
        super().__init__(FailureKind.CONFIGURATION_ERROR, message)


class PreflightError(BackupError):
    """A preflight check failed before anything was written."""


class LockError(BackupError):
    """Another run holds the lock."""

    def __init__(self, message: str):
        super().__init__(FailureKind.ALREADY_RUNNING, message)


class SnapshotError(BackupError):
    """The device copy failed."""


class IntegrityError(BackupError):
    """The produced image is not plausible."""


class StorageError(Exception):
    """A destination filesystem operation failed."""
