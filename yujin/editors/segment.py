"""Segment editor — splits a condensed file into fixed-length chunks."""

import logging
from pathlib import Path

from yujin import ffutil
from yujin.config import CondenseConfig
from yujin.fsutil import ensure_dir, touch_placeholder

logger = logging.getLogger(__name__)


class SegmentError(RuntimeError):
    def __init__(self, message: str, missing_input: bool = False, exit_code: int | None = None):
        self.missing_input = missing_input
        self.exit_code = exit_code
        super().__init__(message)


def segment_file(
    condensed_path: Path,
    output_dir: Path,
    base_name: str,
    segment_seconds: int,
    config: CondenseConfig,
) -> Path:
    """Split *condensed_path* into ``{base_name}_NNN.{format}`` chunks without re-encoding."""
    if not config.dry_run and not condensed_path.is_file():
        raise SegmentError(
            f"Input file '{condensed_path}' for segmentation does not exist",
            missing_input=True,
        )

    ensure_dir(output_dir, dry_run=config.dry_run)
    cmd = ffutil.build_segment_command(
        condensed_path, output_dir, base_name, segment_seconds, config
    )

    if config.dry_run:
        logger.info("DRY RUN: %s", ffutil.render_command(cmd))
        touch_placeholder(output_dir / f"{base_name}_000.{config.output_format}")
        return output_dir

    logger.info(
        "Segmenting '%s' into %d-second chunks -> '%s'",
        condensed_path.name, segment_seconds, output_dir,
    )
    result = ffutil.run_engine(cmd, config)
    if result.returncode != 0:
        detail = ffutil.stderr_tail(result)
        raise SegmentError(
            f"Segmentation failed for '{condensed_path}' (FFmpeg exit code: {result.returncode})"
            + (f": {detail}" if detail else ""),
            exit_code=result.returncode,
        )

    logger.info("Segmented: %s/%s_*.%s", output_dir, base_name, config.output_format)
    return output_dir
