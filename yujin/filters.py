"""Audio filter-chain construction: silence removal, tempo, loudness, denoise."""

import math
import warnings
from dataclasses import dataclass, field

from yujin.config import CondenseConfig
from yujin.models import TempoPlan

ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0
MAX_TEMPO_STEPS = 10
_TOLERANCE = 1e-9

LOUDNORM = "loudnorm=I=-16:TP=-1.5:LRA=11:print_format=summary"
DENOISE = "anlmdn=s=0.001:p=0.01:r=0.01"


class TempoWarning(UserWarning):
    """Issued when a tempo rate is invalid or cannot be reached exactly."""
    pass


def format_decimal(value: float) -> str:
    """Plain decimal with insignificant trailing zeros stripped (2.0 -> "2")."""
    text = f"{value:.10f}".rstrip("0").rstrip(".")
    if text in ("", "-", "-0"):
        return "0"
    return text


def plan_tempo(rate: float) -> TempoPlan:
    """Decompose *rate* into atempo steps that each lie in [0.5, 2.0].

    ffmpeg's atempo filter only accepts that range, so e.g. 3x becomes
    ``[2.0, 1.5]`` and 0.3x becomes ``[0.5, 0.6]``.
    """
    if not math.isfinite(rate) or rate <= 0:
        warnings.warn(f"Invalid tempo rate {rate!r}; using 1.0", TempoWarning, stacklevel=2)
        return [1.0]
    if rate == 1.0:
        return [1.0]

    steps: TempoPlan = []
    current = 1.0
    while not math.isclose(current, rate, rel_tol=_TOLERANCE, abs_tol=_TOLERANCE):
        if len(steps) == MAX_TEMPO_STEPS:
            warnings.warn(
                f"Could not reach exact tempo rate {rate} in {MAX_TEMPO_STEPS} steps; "
                f"approx {current:.3f}",
                TempoWarning,
                stacklevel=2,
            )
            break
        step = round(min(max(rate / current, ATEMPO_MIN), ATEMPO_MAX), 10)
        steps.append(step)
        current *= step
    return steps


def is_identity(plan: TempoPlan) -> bool:
    return plan == [1.0]


@dataclass
class FilterChain:
    """Ordered ffmpeg audio filter stages."""

    stages: list[str] = field(default_factory=list)

    def render(self) -> str:
        return ",".join(self.stages)

    def __str__(self) -> str:
        return self.render()


def build_filter_chain(config: CondenseConfig, tempo_plan: TempoPlan) -> FilterChain:
    """Compose silenceremove → atempo… → loudnorm → anlmdn.

    Silence removal runs first so it sees the original timing; the tempo
    stages are omitted entirely for the identity plan.
    """
    stages = [
        "silenceremove=stop_periods=-1"
        f":stop_duration={format_decimal(config.min_silence)}"
        f":stop_threshold={format_decimal(config.silence_threshold)}dB"
    ]
    if not is_identity(tempo_plan):
        stages.extend(f"atempo={format_decimal(step)}" for step in tempo_plan)
    if config.normalize:
        stages.append(LOUDNORM)
    if config.denoise:
        stages.append(DENOISE)
    return FilterChain(stages=stages)
