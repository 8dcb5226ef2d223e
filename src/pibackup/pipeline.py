"""Backup run driver: preflight, copy, verify, prune, shrink, summarize."""

import logging
from contextlib import ExitStack
from datetime import datetime

from pibackup.config import GIB, BackupConfig
from pibackup.destination import BackupDestination
from pibackup.errors import BackupError, StorageError
from pibackup.integrity import verify_artifact
from pibackup.lock import run_lock
from pibackup.preflight import run_preflight
from pibackup.retention import RetentionPruner
from pibackup.shrink import shrink_image
from pibackup.snapshot import produce_snapshot, remove_marker
from pibackup.system import SystemTools
from pibackup.types import RunSummary

logger = logging.getLogger(__name__)

RULE = "=" * 42


def _section(title: str) -> None:
    logger.info(RULE)
    logger.info(title)
    logger.info(RULE)


def _log_configuration(config: BackupConfig, hostname: str, device_size: int, resize: bool) -> None:
    size_gb = device_size // GIB
    logger.info("Configuration:")
    logger.info(f"  Hostname: {hostname}")
    logger.info(f"  Source device: {config.source_device} ({size_gb}GB)")
    logger.info(f"  Space required: {size_gb}GB (minimum)")
    logger.info(f"  Space recommended: {size_gb * 2}GB (for retention)")
    logger.info(f"  Backup path: {config.destination_path}")
    logger.info(f"  Retention: {config.retention_days} days")
    logger.info(f"  Resize enabled: {resize}")


def run_backup(config: BackupConfig, tools: SystemTools | None = None) -> RunSummary:
    """Run one backup and return what happened.

    Stops at the first fatal failure and records it in the summary instead
    of raising. The fsck marker is gone on every return path.
    """
    tools = tools or SystemTools.local(config.shrink_tool, config.copy_method)
    summary = RunSummary(destination=config.destination_path, started_at=datetime.now())

    _section("Raspberry Pi System Backup Starting")

    try:
        with ExitStack() as stack:
            def acquire_lock(hostname: str) -> None:
                summary.hostname = hostname
                if config.lock_enabled:
                    stack.enter_context(run_lock(config.lock_dir, hostname))

            report = run_preflight(config, tools, on_hostname=acquire_lock)
            summary.preflight = report
            summary.hostname = report.hostname
            _log_configuration(config, report.hostname, report.device_size, report.resize_enabled)

            destination = BackupDestination(config.destination_path, report.hostname)

            _section("Creating Backup")
            snapshot = produce_snapshot(config, tools, destination)
            summary.snapshot = snapshot

            verify_artifact(config, tools, destination, snapshot.path)

            _section("Checking Old Backups")
            pruner = RetentionPruner(config, destination)
            summary.prune = pruner.prune(report.existing_count, new_artifact=snapshot.path)

            if report.resize_enabled:
                _section("Resizing Image")
            summary.shrink = shrink_image(tools, snapshot.path, enabled=report.resize_enabled)

            try:
                summary.artifacts = destination.list_artifacts()
            except StorageError as e:
                logger.warning(f"Could not list final backups: {e}")
    except BackupError as e:
        logger.error(e.message)
        summary.failure = e.kind
        summary.error_message = e.message
    finally:
        remove_marker(config.fsck_marker)
        summary.ended_at = datetime.now()

    return summary
