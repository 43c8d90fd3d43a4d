"""FFmpeg/ffprobe subprocess helpers."""

import logging
import re
import shlex
import shutil
import subprocess
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from yujin.config import CondenseConfig

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 10.0

CODECS = {
    "mp3": "libmp3lame",
    "opus": "libopus",
    "ogg": "libvorbis",
    "wav": "pcm_s16le",
}

_DURATION_RE = re.compile(r"^[0-9]+(\.[0-9]*)?$")


class FFmpegNotFoundError(RuntimeError):
    pass


class ProbeErrorKind(str, Enum):
    TOOL_MISSING = "tool-missing"
    TIMEOUT = "timeout"
    INVALID_OUTPUT = "invalid-output"
    NON_ZERO_EXIT = "non-zero-exit"


class ProbeError(RuntimeError):
    """Raised when the duration of a media file cannot be determined."""

    def __init__(self, kind: ProbeErrorKind, path: Path, detail: str = ""):
        self.kind = kind
        self.path = path
        message = f"Could not get duration for '{path}' ({kind.value})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def render_command(cmd: list[str]) -> str:
    """Shell-quoted rendering of an argument list, for display only."""
    return shlex.join(cmd)


def probe_duration(input_path: Path, timeout: float | None = PROBE_TIMEOUT) -> float:
    """Return the duration of *input_path* in seconds via ffprobe.

    ``timeout=None`` waits indefinitely. Every failure is raised as a
    ProbeError whose ``kind`` tells the caller what went wrong.
    """
    cmd = [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(input_path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        raise ProbeError(ProbeErrorKind.TOOL_MISSING, input_path, "ffprobe not found on PATH")
    except subprocess.TimeoutExpired:
        raise ProbeError(ProbeErrorKind.TIMEOUT, input_path, f"ffprobe timed out ({timeout:g}s)")

    output = (result.stdout or "").strip()
    if result.returncode != 0:
        raise ProbeError(
            ProbeErrorKind.NON_ZERO_EXIT, input_path, f"ffprobe exited with {result.returncode}"
        )
    if not _DURATION_RE.match(output):
        raise ProbeError(ProbeErrorKind.INVALID_OUTPUT, input_path, f"output {output!r}")
    return float(output)


def _log_args(config: CondenseConfig) -> list[str]:
    # A log file receives ffmpeg's default (info) verbosity.
    if config.log_file is not None:
        return []
    return ["-loglevel", config.log_level]


def build_condense_command(
    input_path: Path, output_path: Path, filter_chain: str, config: CondenseConfig
) -> list[str]:
    """ffmpeg invocation that filters and re-encodes the audio track, dropping video."""
    return [
        "ffmpeg",
        *_log_args(config),
        "-i", str(input_path),
        "-c:a", CODECS[config.output_format],
        "-b:a", config.bitrate,
        "-ac", str(config.channels),
        "-ar", str(config.sample_rate),
        "-af", filter_chain,
        "-vn", "-y",
        str(output_path),
    ]


def build_segment_command(
    input_path: Path,
    output_dir: Path,
    base_name: str,
    segment_seconds: int,
    config: CondenseConfig,
) -> list[str]:
    """ffmpeg stream-copy invocation that splits a file into numbered chunks."""
    pattern = output_dir / f"{base_name}_%03d.{config.output_format}"
    return [
        "ffmpeg",
        *_log_args(config),
        "-i", str(input_path),
        "-f", "segment",
        "-segment_time", str(segment_seconds),
        "-reset_timestamps", "1",
        "-c", "copy",
        str(pattern),
    ]


@contextmanager
def _stderr_target(config: CondenseConfig):
    if config.log_file is None:
        yield subprocess.PIPE
        return
    with open(config.log_file, "a", encoding="utf-8") as fh:
        yield fh


def run_engine(cmd: list[str], config: CondenseConfig) -> subprocess.CompletedProcess:
    """Run an ffmpeg command to completion.

    stderr is appended to the configured log file, or captured otherwise.
    A missing executable is reported as exit code 127, like a shell would.
    """
    logger.debug("Running: %s", render_command(cmd))
    with _stderr_target(config) as stderr:
        try:
            return subprocess.run(
                cmd, stdout=subprocess.DEVNULL, stderr=stderr, text=True
            )
        except FileNotFoundError as e:
            return subprocess.CompletedProcess(cmd, 127, stderr=str(e))


def stderr_tail(result: subprocess.CompletedProcess, limit: int = 500) -> str:
    stderr = result.stderr if isinstance(result.stderr, str) else ""
    return stderr.strip()[-limit:]
