"""Condense editor — removes silence and re-encodes one file."""

import logging
from pathlib import Path

from yujin import ffutil
from yujin.config import CondenseConfig
from yujin.filters import FilterChain
from yujin.fsutil import guarded_output, touch_placeholder

logger = logging.getLogger(__name__)


class ProcessError(RuntimeError):
    """ffmpeg failed to produce the condensed file."""

    def __init__(self, input_path: Path, exit_code: int, detail: str = ""):
        self.input_path = input_path
        self.exit_code = exit_code
        message = f"Processing failed for '{input_path.name}' (FFmpeg exit code: {exit_code})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


def process_file(
    input_path: Path,
    output_path: Path,
    config: CondenseConfig,
    filter_chain: FilterChain,
) -> Path:
    """Run *input_path* through the filter chain into *output_path*.

    Raises ProcessError when ffmpeg exits non-zero. Under dry-run the command
    is only logged and an empty placeholder is left at *output_path*.
    """
    cmd = ffutil.build_condense_command(input_path, output_path, filter_chain.render(), config)

    with guarded_output(output_path, dry_run=config.dry_run):
        if config.dry_run:
            logger.info("DRY RUN: %s", ffutil.render_command(cmd))
            touch_placeholder(output_path)
            return output_path

        logger.info(
            "Processing '%s' -> '%s' (Tempo: %sx)",
            input_path.name, output_path.name, config.tempo_rate,
        )
        result = ffutil.run_engine(cmd, config)
        if result.returncode != 0:
            raise ProcessError(input_path, result.returncode, ffutil.stderr_tail(result))

    logger.info("Processed: %s", output_path)
    return output_path
