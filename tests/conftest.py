"""Shared test fixtures."""

from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"

MEDIA_TREE = (
    "Intro.mp3",
    "notes.txt",
    "Sub/Ep1.mp3",
    "Sub/Ep2.MKV",
    "Sub/Ep4.mkv",
    "Sub/Lecture.mkv",
    "Sub/ep3.mkv",
)


@pytest.fixture
def sample_config_path() -> Path:
    return FIXTURES_DIR / "sample_config.json"


@pytest.fixture
def media_tree(tmp_path: Path) -> Path:
    """A small input tree under ``tmp_path/root`` (see MEDIA_TREE)."""
    root = tmp_path / "root"
    (root / "Sub").mkdir(parents=True)
    for rel in MEDIA_TREE:
        (root / rel).write_bytes(b"fake media")
    return root
