"""Output-directory handling shared by every stage that writes files."""

import logging
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


def ensure_dir(path: Path, dry_run: bool = False) -> list[Path]:
    """Create *path* and any missing parents.

    Idempotent. Returns the directories that were actually created, outermost
    first, so a caller can undo them. Under dry-run nothing is created.
    """
    missing = [p for p in (path, *path.parents) if not p.exists()]
    missing.reverse()
    if not missing:
        return []
    if dry_run:
        logger.info("DRY RUN: Would create directory '%s'", path)
        return []
    path.mkdir(parents=True, exist_ok=True)
    return missing


def touch_placeholder(path: Path) -> bool:
    """Create an empty dry-run placeholder if its directory exists."""
    if not path.parent.is_dir():
        logger.debug("Skipping placeholder %s (directory does not exist)", path)
        return False
    path.touch()
    return True


@contextmanager
def guarded_output(output_path: Path, dry_run: bool = False):
    """Prepare the parent directory of *output_path* for writing.

    If the body raises, the partial output is removed along with any
    directories this call created that are left empty.
    """
    created = ensure_dir(output_path.parent, dry_run=dry_run)
    try:
        yield output_path
    except BaseException:
        if not dry_run:
            output_path.unlink(missing_ok=True)
            for directory in reversed(created):
                try:
                    directory.rmdir()
                except OSError:
                    break
        raise
