"""Shared data types used across yujin."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

# Elementary atempo multipliers, each within [0.5, 2.0].
TempoPlan = list[float]


class ProcessStatus(str, Enum):
    PENDING = "pending"
    OK = "ok"
    ERROR = "error"


class SegmentStatus(str, Enum):
    SKIPPED = "skipped"
    OK = "ok"
    ERROR = "error"


class TranscribeStatus(str, Enum):
    SKIPPED = "skipped"
    OK = "ok"
    SOFT_SKIP = "soft-skip"
    ERROR = "error"


@dataclass(frozen=True)
class MediaFile:
    """A discovered input file.

    ``relative_dir`` is the file's parent directory relative to the scan root;
    files directly under the root carry ``Path(".")``.
    """

    path: Path
    relative_dir: Path = Path(".")

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def base_name(self) -> str:
        return self.path.stem


@dataclass
class FileResult:
    """Per-file outcome, filled in as the file moves through the pipeline."""

    media: MediaFile
    output_path: Path
    original_duration: float | None = None
    condensed_duration: float | None = None
    process_status: ProcessStatus = ProcessStatus.PENDING
    segment_status: SegmentStatus = SegmentStatus.SKIPPED
    transcribe_status: TranscribeStatus = TranscribeStatus.SKIPPED
    transcript_path: Path | None = None

    @property
    def measured(self) -> bool:
        return self.original_duration is not None and self.condensed_duration is not None
