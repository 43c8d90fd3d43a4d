"""Speech-to-text analyzer — local Whisper CLI or the OpenAI Whisper API.

The original (pre-condensing) input is always the file that gets
transcribed; silence removal and tempo changes only hurt recognition.
"""

import glob
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

import requests

from yujin import ffutil
from yujin.fsutil import touch_placeholder

logger = logging.getLogger(__name__)

API_URL = "https://api.openai.com/v1/audio/transcriptions"
API_MODEL = "whisper-1"
API_TIMEOUT = 600


@dataclass(frozen=True)
class Success:
    path: Path


@dataclass(frozen=True)
class SoftSkip:
    """Expected operational gap: missing tool, missing key, remote error."""

    reason: str


@dataclass(frozen=True)
class HardError:
    """Unexpected local failure after the transcript was obtained."""

    cause: str


TranscribeOutcome = Success | SoftSkip | HardError


def is_whisper_installed() -> bool:
    return shutil.which("whisper") is not None


def transcript_path(input_path: Path, output_dir: Path) -> Path:
    return output_dir / f"{input_path.stem}.txt"


def transcribe(
    input_path: Path,
    output_dir: Path,
    backend: str,
    model: str = "medium",
    language: str | None = None,
    api_key: str | None = None,
    dry_run: bool = False,
) -> TranscribeOutcome:
    """Transcribe *input_path* into ``output_dir/<base>.txt`` with the chosen backend."""
    if backend == "api":
        return transcribe_api(input_path, output_dir, language, api_key, dry_run=dry_run)
    if backend == "local":
        return transcribe_local(input_path, output_dir, model, language, dry_run=dry_run)
    raise ValueError(f"Unknown transcription backend {backend!r}")


# ---------------------------------------------------------------------------
# Local Whisper CLI
# ---------------------------------------------------------------------------

def build_whisper_command(
    input_path: Path, output_dir: Path, model: str, language: str | None
) -> list[str]:
    cmd = ["whisper", str(input_path), "--model", model]
    if language:
        cmd += ["--language", language]
    cmd += ["--output_dir", str(output_dir), "--output_format", "txt"]
    return cmd


def _normalize_whisper_output(input_path: Path, output_dir: Path) -> TranscribeOutcome:
    """Make sure whisper's transcript ends up at ``<base>.txt``.

    Some whisper versions keep the media extension (``<base>.mp3.txt``).
    Exactly one such candidate is renamed; anything else is reported.
    """
    expected = transcript_path(input_path, output_dir)
    if expected.is_file():
        return Success(expected)

    pattern = f"{glob.escape(input_path.stem)}.*.txt"
    candidates = sorted(output_dir.glob(pattern))
    if not candidates:
        return HardError(
            f"whisper finished but no transcript named '{expected.name}' "
            f"or matching '{pattern}' was found in '{output_dir}'"
        )
    if len(candidates) > 1:
        names = ", ".join(c.name for c in candidates)
        return HardError(
            f"whisper finished but several transcripts match '{pattern}' "
            f"in '{output_dir}' ({names}); refusing to guess"
        )

    logger.info("Renaming whisper output '%s' to '%s'", candidates[0].name, expected.name)
    try:
        candidates[0].rename(expected)
    except OSError as e:
        return HardError(f"could not rename '{candidates[0]}' to '{expected}': {e}")
    return Success(expected)


def transcribe_local(
    input_path: Path,
    output_dir: Path,
    model: str,
    language: str | None = None,
    dry_run: bool = False,
) -> TranscribeOutcome:
    if not is_whisper_installed():
        return SoftSkip("local Whisper not available")

    cmd = build_whisper_command(input_path, output_dir, model, language)
    if dry_run:
        logger.info("DRY RUN: %s", ffutil.render_command(cmd))
        expected = transcript_path(input_path, output_dir)
        touch_placeholder(expected)
        return Success(expected)

    logger.info("Transcribing with local Whisper: %s (model: %s)", input_path.stem, model)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        return SoftSkip("local Whisper not available")
    if result.returncode != 0:
        return SoftSkip(f"local Whisper failed (exit code: {result.returncode})")

    return _normalize_whisper_output(input_path, output_dir)


# ---------------------------------------------------------------------------
# OpenAI Whisper API
# ---------------------------------------------------------------------------

def _is_error_response(text: str) -> bool:
    return not text or text.startswith("{") or '"error":' in text


def render_api_request(input_path: Path, language: str | None) -> str:
    """Human-readable equivalent of the API call, with the key masked."""
    parts = [
        "POST", API_URL,
        "Authorization: Bearer {API_KEY}",
        f"file=@{input_path}",
        f"model={API_MODEL}",
        "response_format=text",
    ]
    if language:
        parts.append(f"language={language}")
    return " ".join(parts)


def transcribe_api(
    input_path: Path,
    output_dir: Path,
    language: str | None = None,
    api_key: str | None = None,
    dry_run: bool = False,
) -> TranscribeOutcome:
    """Upload the file to the transcription endpoint and save the plain-text reply.

    The locally configured model size is irrelevant here; the API only
    serves ``whisper-1``.
    """
    if not api_key:
        return SoftSkip("no OpenAI API key provided")

    output_path = transcript_path(input_path, output_dir)
    if dry_run:
        logger.info("DRY RUN: %s > %s", render_api_request(input_path, language), output_path)
        touch_placeholder(output_path)
        return Success(output_path)

    data = {"model": API_MODEL, "response_format": "text"}
    if language:
        data["language"] = language

    logger.info("Transcribing with Whisper API: %s (model: %s)", input_path.stem, API_MODEL)
    try:
        with open(input_path, "rb") as fh:
            response = requests.post(
                API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                files={"file": (input_path.name, fh)},
                data=data,
                timeout=API_TIMEOUT,
            )
    except (requests.RequestException, OSError) as e:
        return SoftSkip(f"API request failed: {e}")

    text = response.text
    if not response.ok or _is_error_response(text):
        return SoftSkip(
            f"API returned an error or empty response (HTTP {response.status_code}): "
            f"{text[:300]}"
        )

    try:
        output_path.write_text(text, encoding="utf-8")
    except OSError as e:
        return HardError(f"failed to write transcript to '{output_path}': {e}")
    return Success(output_path)
