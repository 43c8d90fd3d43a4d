"""Duration accounting — how much listening time silence removal saved."""

from dataclasses import dataclass, field
from typing import Hashable

_MIN_ORIGINAL = 0.001


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS, rounding to the nearest second.

    Negative values clamp to zero.
    """
    total = int(round(max(seconds, 0.0)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass
class LedgerReport:
    original_total: float
    condensed_total: float
    saved_total: float
    saved_percent: float | None
    measured_count: int


@dataclass
class DurationLedger:
    """Per-file original/condensed durations.

    Only files with both measurements count towards the totals, so the
    saved percentage is always computed over a consistent subset.
    """

    _entries: dict[Hashable, list[float | None]] = field(default_factory=dict)

    def record_original(self, key: Hashable, duration: float) -> None:
        self._entries.setdefault(key, [None, None])[0] = duration

    def record_condensed(self, key: Hashable, duration: float) -> None:
        self._entries.setdefault(key, [None, None])[1] = duration

    def report(self) -> LedgerReport:
        pairs = [
            (orig, cond)
            for orig, cond in self._entries.values()
            if orig is not None and cond is not None
        ]
        original_total = sum(orig for orig, _ in pairs)
        condensed_total = sum(cond for _, cond in pairs)
        saved_total = original_total - condensed_total
        saved_percent = None
        if original_total > _MIN_ORIGINAL:
            saved_percent = 100.0 * saved_total / original_total
        return LedgerReport(
            original_total=original_total,
            condensed_total=condensed_total,
            saved_total=saved_total,
            saved_percent=saved_percent,
            measured_count=len(pairs),
        )


def summary_lines(
    report: LedgerReport | None, processed_count: int, dry_run: bool = False
) -> list[str]:
    """Text of the time-saving summary printed at the end of a run."""
    if dry_run:
        return [
            "--- Time Saving Summary (DRY RUN) ---",
            "Duration calculation skipped in dry run mode.",
        ]
    if report is None or report.measured_count == 0:
        if processed_count == 0:
            return []
        return [
            "--- Time Saving Summary ---",
            "Could not calculate time savings "
            "(failed to measure duration for processed files).",
        ]

    if report.saved_percent is None:
        reduction = "N/A (Original duration too short)"
    else:
        reduction = f"{report.saved_percent:.2f}%"
    return [
        "--- Time Saving Summary ---",
        f"Total original duration:  {format_duration(report.original_total)}",
        f"Total condensed duration: {format_duration(report.condensed_total)} "
        f"(for {report.measured_count} successfully processed files)",
        f"Total time saved:         {format_duration(report.saved_total)}",
        f"Reduction:                {reduction}",
    ]
