"""Preflight checks run before anything is written to the device or destination."""

import logging
import os
from typing import Callable

from pibackup.config import GIB, BackupConfig
from pibackup.destination import BackupDestination
from pibackup.errors import ConfigurationError, FailureKind, PreflightError, StorageError
from pibackup.formatting import format_size
from pibackup.system import SystemTools
from pibackup.types import PreflightReport

logger = logging.getLogger(__name__)


def resolve_hostname(config: BackupConfig, tools: SystemTools) -> str:
    """Hostname from config, then $HOSTNAME, then the system lookup."""
    if config.hostname:
        return config.hostname

    hostname = os.environ.get("HOSTNAME", "").strip()
    if not hostname:
        hostname = (tools.host.hostname() or "").strip()
        if hostname:
            logger.info(f"HOSTNAME was not set, using: {hostname}")

    if not hostname:
        raise ConfigurationError("Unable to determine hostname")
    return hostname


def run_preflight(
    config: BackupConfig,
    tools: SystemTools,
    on_hostname: Callable[[str], object] | None = None,
) -> PreflightReport:
    """Validate privileges, destination, space and tools.

    Checks run in a fixed order and stop at the first failure. The only
    side effect is a probe file that is removed again. on_hostname is
    called once the hostname is known, before the destination is scanned
    (the driver takes its run lock there).

    Raises:
        PreflightError: With the kind of the first failed check
    """
    dest_path = config.destination_path
    warnings: list[str] = []

    def warn(message: str) -> None:
        logger.warning(message)
        warnings.append(message)

    if not tools.host.is_privileged():
        raise PreflightError(
            FailureKind.PERMISSION_DENIED,
            "This program must be run as root (use sudo)",
        )

    hostname = resolve_hostname(config, tools)
    if on_hostname is not None:
        on_hostname(hostname)

    if not dest_path.is_dir():
        raise PreflightError(
            FailureKind.DESTINATION_MISSING,
            f"Backup path '{dest_path}' does not exist",
        )

    if not tools.mounts.is_mount_point(dest_path):
        raise PreflightError(
            FailureKind.NOT_MOUNTED,
            f"'{dest_path}' is NOT a mount point. The NAS or disk may not be mounted; "
            f"check with: mount | grep {dest_path.name or dest_path}",
        )

    destination = BackupDestination(dest_path, hostname)

    logger.info("Testing write access to backup path...")
    if not destination.probe_write():
        raise PreflightError(
            FailureKind.READ_ONLY_OR_DENIED,
            f"Cannot write to '{dest_path}'. Mount might be read-only or permissions insufficient.",
        )

    logger.info("Testing mount responsiveness...")
    if not tools.mounts.is_responsive(dest_path, config.probe_timeout):
        raise PreflightError(
            FailureKind.UNRESPONSIVE,
            f"Backup path did not respond within {config.probe_timeout:g}s (possible network issue)",
        )

    logger.info("Scanning for existing backups...")
    try:
        existing = destination.list_artifacts()
    except StorageError as e:
        raise PreflightError(FailureKind.UNRESPONSIVE, str(e))

    if existing:
        logger.info(f"Found {len(existing)} existing backup(s):")
        for artifact in existing:
            logger.info(f"  - {artifact.name} ({format_size(artifact.size_bytes)})")
    else:
        logger.info("No existing backups found (this might be the first backup)")

    if len(existing) < config.min_expected_backups:
        warn(
            f"Expected at least {config.min_expected_backups} backup(s), "
            f"found {len(existing)}. Continuing anyway."
        )

    logger.info("Checking available disk space...")
    device_size = tools.devices.size_bytes(config.source_device)
    device_size_known = device_size is not None
    if device_size is None:
        device_size = config.default_device_size
        warn(
            f"Cannot detect size of {config.source_device}, "
            f"assuming {device_size // GIB}GB"
        )
    else:
        logger.info(f"Source device size: {format_size(device_size)}")

    try:
        free_space = tools.space.free_bytes(dest_path)
    except OSError as e:
        raise PreflightError(
            FailureKind.UNRESPONSIVE,
            f"Cannot query free space on '{dest_path}': {e}",
        )
    logger.info(f"Destination available space: {format_size(free_space)}")

    if free_space < device_size:
        raise PreflightError(
            FailureKind.INSUFFICIENT_SPACE,
            f"Not enough space on destination: device {format_size(device_size)}, "
            f"available {format_size(free_space)}",
        )

    recommended = device_size * 2
    space_warning = free_space < recommended
    if space_warning:
        warn(
            f"Limited space: {format_size(free_space)} available, "
            f"{format_size(recommended)} (2x device size) recommended for retention. "
            "Consider freeing up space or reducing retention."
        )
    else:
        logger.info(
            f"Space check OK: {format_size(free_space)} available "
            f"({format_size(recommended)} recommended)"
        )

    logger.info("Verifying required tools...")
    missing = [tool for tool in config.required_tools if not tools.host.has_tool(tool)]
    if missing:
        raise PreflightError(
            FailureKind.MISSING_DEPENDENCY,
            f"Required tool(s) not found: {', '.join(missing)}",
        )

    resize_enabled = config.resize_enabled
    if resize_enabled and not tools.host.has_tool(config.shrink_tool):
        warn(f"{config.shrink_tool} not found, resize will be skipped")
        resize_enabled = False

    return PreflightReport(
        hostname=hostname,
        destination=dest_path,
        existing=existing,
        device_size=device_size,
        device_size_known=device_size_known,
        free_space=free_space,
        space_warning=space_warning,
        resize_enabled=resize_enabled,
        warnings=warnings,
    )
