"""Run configuration — the single immutable value every component receives."""

import json
import math
import os
import re
from dataclasses import dataclass, fields
from pathlib import Path

OUTPUT_FORMATS = ("mp3", "opus", "ogg", "wav")
TRANSCRIPTION_MODES = ("none", "local", "api")

API_KEY_ENV = "OPENAI_API_KEY"

_BITRATE_RE = re.compile(r"^(\d+|.*[kK])$")
_MODEL_RE = re.compile(r"^[a-zA-Z0-9._-]+$")
_LANGUAGE_RE = re.compile(r"^[a-z]{2,3}(-[A-Z][a-z]{3})?(-[A-Z]{2})?$")


class ConfigError(ValueError):
    """Raised for a configuration value that makes the run impossible."""
    pass


@dataclass(frozen=True)
class CondenseConfig:
    """Settings shared by every file in a run."""

    silence_threshold: float = -30.0
    min_silence: float = 0.5
    tempo_rate: float = 1.0
    normalize: bool = False
    denoise: bool = False
    output_format: str = "mp3"
    bitrate: str = "128k"
    channels: int = 2
    sample_rate: int = 44100
    log_level: str = "error"
    log_file: Path | None = None
    segment_seconds: int | None = None
    transcription: str = "none"
    whisper_model: str = "medium"
    language: str | None = None
    api_key: str | None = None
    batch_filter: str | None = None
    dry_run: bool = False

    def validate(self) -> list[str]:
        """Raise ConfigError for fatal problems; return non-fatal warnings."""
        if not math.isfinite(self.tempo_rate) or self.tempo_rate <= 0:
            raise ConfigError(f"Invalid tempo rate {self.tempo_rate!r}; must be > 0")
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"Invalid audio format {self.output_format!r}. "
                f"Supported: {', '.join(OUTPUT_FORMATS)}"
            )
        if self.min_silence < 0:
            raise ConfigError(f"Minimum silence duration must be >= 0, got {self.min_silence}")
        if self.segment_seconds is not None and self.segment_seconds <= 0:
            raise ConfigError(f"Segment length must be positive, got {self.segment_seconds}")
        if self.channels <= 0 or self.sample_rate <= 0:
            raise ConfigError("Channel count and sample rate must be positive")
        if self.transcription not in TRANSCRIPTION_MODES:
            raise ConfigError(
                f"Unknown transcription mode {self.transcription!r}; "
                f"expected one of {', '.join(TRANSCRIPTION_MODES)}"
            )

        warnings: list[str] = []
        if not _BITRATE_RE.match(self.bitrate):
            warnings.append(
                f"Bitrate format '{self.bitrate}' might be invalid. "
                "Ensure it's like '128k' or a raw number."
            )
        if self.whisper_model and not _MODEL_RE.match(self.whisper_model):
            warnings.append(f"Whisper model name '{self.whisper_model}' seems invalid.")
        if self.language and not _LANGUAGE_RE.match(self.language):
            warnings.append(
                f"Whisper language code '{self.language}' might be invalid "
                "(should be like 'en', 'es', 'ja')."
            )
        return warnings


def resolve_api_key(explicit: str | None = None) -> str | None:
    """Return the explicit key, else the one from the environment."""
    if explicit:
        return explicit
    return os.environ.get(API_KEY_ENV) or None


def load_config(path: str | Path) -> dict:
    """Load config overrides from a JSON file.

    Returns a dict of CondenseConfig field values so callers can layer
    command-line flags on top before building the frozen config.
    """
    path = Path(path)
    data = json.loads(path.read_text())
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    known = {f.name for f in fields(CondenseConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    if data.get("log_file") is not None:
        data["log_file"] = Path(data["log_file"])
    if "output_format" in data:
        data["output_format"] = str(data["output_format"]).lower()
    return data
