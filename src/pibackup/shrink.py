"""Optional in-place image shrinking. Never fails the run."""

import logging
from pathlib import Path

from pibackup.formatting import format_size
from pibackup.system import SystemTools
from pibackup.types import ShrinkResult

logger = logging.getLogger(__name__)


def _size(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except OSError:
        return None


def shrink_image(tools: SystemTools, image: Path, enabled: bool = True) -> ShrinkResult:
    """Shrink image with the external tool, keeping the original on failure."""
    if not enabled:
        logger.debug("Resize disabled, skipping")
        return ShrinkResult(skipped=True)

    size_before = _size(image)
    if size_before is not None:
        logger.info(f"Original size: {format_size(size_before)}")
    logger.info("Shrinking image (this may take a while)...")

    try:
        result = tools.shrinker.shrink(image)
    except Exception as e:
        logger.warning(f"Shrink failed ({e}), but backup is still valid at original size")
        return ShrinkResult(size_before=size_before, error=str(e))

    if result.failed:
        logger.warning(
            f"Shrink failed ({result.error_message}), but backup is still valid at original size"
        )
        return ShrinkResult(size_before=size_before, error=result.error_message)

    size_after = _size(image)
    logger.info("Resize successful!")
    if size_after is not None:
        logger.info(f"New size: {format_size(size_after)}")

    return ShrinkResult(succeeded=True, size_before=size_before, size_after=size_after)
