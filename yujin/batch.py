"""Batch planning — discover media under a root and mirror its tree in the output."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path

from yujin.models import MediaFile

MEDIA_EXTENSIONS = frozenset(
    {".mp3", ".mp4", ".m4a", ".avi", ".mov", ".mkv", ".wav", ".flac", ".ogg", ".opus"}
)

DEFAULT_OUTPUT_DIR = "condensed_audio"
TRANSCRIPTS_DIR = "transcripts"
SEGMENTS_DIR = "segmented"


@dataclass
class Discovery:
    files: list[MediaFile] = field(default_factory=list)
    filtered_out: list[MediaFile] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.files) + len(self.filtered_out)


def is_media_file(path: Path) -> bool:
    return path.suffix.lower() in MEDIA_EXTENSIONS


def matches_filter(name: str, pattern: str | None) -> bool:
    """Shell-glob match against a bare file name (case-sensitive)."""
    if not pattern:
        return True
    return fnmatch.fnmatchcase(name, pattern)


def _walk(root: Path, recursive: bool):
    if not recursive:
        yield from (p for p in root.iterdir() if p.is_file())
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in filenames:
            yield Path(dirpath) / name


def discover(
    root: Path,
    recursive: bool = True,
    pattern: str | None = None,
    exclude: tuple[Path, ...] = (),
) -> Discovery:
    """Find media files under *root*.

    ``exclude`` entries may be files (skipped exactly) or directories
    (everything beneath them is skipped). Files whose name does not match
    *pattern* are returned separately in ``filtered_out``.
    """
    root = root.resolve()
    excluded = [e.resolve() for e in exclude]
    discovery = Discovery()

    for path in sorted(_walk(root, recursive)):
        if not path.is_file() or not is_media_file(path):
            continue
        resolved = path.resolve()
        if any(resolved.is_relative_to(e) for e in excluded):
            continue
        media = MediaFile(path=path, relative_dir=path.parent.relative_to(root))
        if matches_filter(media.name, pattern):
            discovery.files.append(media)
        else:
            discovery.filtered_out.append(media)
    return discovery


@dataclass(frozen=True)
class OutputLayout:
    """Where one file's artifacts go."""

    condensed: Path
    segments_dir: Path
    transcripts_dir: Path


def _mirror(base: Path, relative_dir: Path) -> Path:
    if relative_dir == Path("."):
        return base
    return base / relative_dir


def batch_layout(media: MediaFile, output_root: Path, output_format: str) -> OutputLayout:
    """Mirror *media*'s directory under the output and transcripts roots.

    ``root/Sub/Ep1.mp3`` → ``out/Sub/Ep1.<fmt>``, ``out/Sub/segmented/``,
    ``out/transcripts/Sub/``.
    """
    output_dir = _mirror(output_root, media.relative_dir)
    return OutputLayout(
        condensed=output_dir / f"{media.base_name}.{output_format}",
        segments_dir=output_dir / SEGMENTS_DIR,
        transcripts_dir=_mirror(output_root / TRANSCRIPTS_DIR, media.relative_dir),
    )


def single_layout(output_path: Path) -> OutputLayout:
    """Artifacts for single-file mode sit next to the explicit output file."""
    output_dir = output_path.parent
    return OutputLayout(
        condensed=output_path,
        segments_dir=output_dir / SEGMENTS_DIR,
        transcripts_dir=output_dir / TRANSCRIPTS_DIR,
    )


def default_single_output(input_path: Path, output_format: str, cwd: Path | None = None) -> Path:
    cwd = cwd or Path.cwd()
    return cwd / f"{input_path.stem}_condensed.{output_format}"
