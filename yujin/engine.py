"""Orchestrator — runs every file through measure → condense → measure → segment,
then transcribes the originals in a second pass."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from yujin import ffutil
from yujin.analyzers.transcribe import SoftSkip, Success, transcribe
from yujin.batch import OutputLayout
from yujin.config import CondenseConfig
from yujin.editors.condense import ProcessError, process_file
from yujin.editors.segment import SegmentError, segment_file
from yujin.filters import build_filter_chain, plan_tempo
from yujin.fsutil import ensure_dir
from yujin.ledger import DurationLedger, LedgerReport
from yujin.models import (
    FileResult,
    MediaFile,
    ProcessStatus,
    SegmentStatus,
    TranscribeStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Job:
    media: MediaFile
    layout: OutputLayout


@dataclass
class RunStats:
    processed: int = 0
    filtered_out: int = 0
    errors: int = 0
    segment_errors: int = 0
    transcribed: int = 0
    transcribe_skipped: int = 0
    transcribe_errors: int = 0


@dataclass
class RunResult:
    results: list[FileResult] = field(default_factory=list)
    stats: RunStats = field(default_factory=RunStats)
    report: LedgerReport | None = None
    transcription_ran: bool = False


def _measure(path: Path, what: str) -> float | None:
    try:
        return ffutil.probe_duration(path)
    except ffutil.ProbeError as e:
        logger.warning("Could not measure %s duration: %s", what, e)
        return None


def run(
    jobs: list[Job],
    config: CondenseConfig,
    filtered_out: Iterable[MediaFile] = (),
    on_progress: Callable[[str, float], None] | None = None,
) -> RunResult:
    """Execute the full pipeline over *jobs*, one file at a time.

    A processing failure ends that file's run but never the batch. All
    condensing finishes before the first transcription starts, so a broken
    transcription backend cannot interfere with the audio output.

    Args:
        jobs: Files to process together with their output layout.
        config: Run configuration.
        filtered_out: Files rejected by the name filter, counted only.
        on_progress: Optional callback(stage_name, fraction_complete).
    """
    run_result = RunResult()
    stats = run_result.stats
    ledger = DurationLedger()

    transcribing = config.transcription != "none"
    total_steps = max(len(jobs) * (2 if transcribing else 1), 1)
    done_steps = 0

    def _progress(stage: str) -> None:
        if on_progress:
            on_progress(stage, done_steps / total_steps)

    for media in filtered_out:
        logger.info("Skipping '%s' (doesn't match filter '%s')", media.name, config.batch_filter)
        stats.filtered_out += 1

    filter_chain = build_filter_chain(config, plan_tempo(config.tempo_rate))
    logger.debug("Filter chain: %s", filter_chain)

    # --- Pass 1: condense + segment ---
    for job in jobs:
        media, layout = job.media, job.layout
        result = FileResult(media=media, output_path=layout.condensed)
        run_result.results.append(result)
        _progress(f"Condensing {media.name}")

        if config.dry_run:
            logger.info("DRY RUN: Skipping duration measurement for '%s'.", media.name)
        else:
            result.original_duration = _measure(media.path, "original")
            if result.original_duration is not None:
                ledger.record_original(media.path, result.original_duration)

        try:
            process_file(media.path, layout.condensed, config, filter_chain)
        except (ProcessError, OSError) as e:
            logger.error("%s. Skipping subsequent steps for this file.", e)
            result.process_status = ProcessStatus.ERROR
            stats.errors += 1
            done_steps += 1
            continue
        result.process_status = ProcessStatus.OK

        if not config.dry_run:
            result.condensed_duration = _measure(layout.condensed, "condensed")
            if result.condensed_duration is not None:
                ledger.record_condensed(media.path, result.condensed_duration)
        stats.processed += 1

        if config.segment_seconds:
            try:
                segment_file(
                    layout.condensed,
                    layout.segments_dir,
                    layout.condensed.stem,
                    config.segment_seconds,
                    config,
                )
                result.segment_status = SegmentStatus.OK
            except (SegmentError, OSError) as e:
                logger.warning("Segmentation failed for '%s': %s", layout.condensed, e)
                result.segment_status = SegmentStatus.ERROR
                stats.segment_errors += 1
        done_steps += 1

    logger.info(
        "Main processing complete. Processed: %d, Skipped by filter: %d, Errors: %d",
        stats.processed, stats.filtered_out, stats.errors,
    )

    # --- Pass 2: transcription of the original inputs ---
    if transcribing:
        run_result.transcription_ran = True
        for job, result in zip(jobs, run_result.results):
            if result.process_status != ProcessStatus.OK:
                continue
            _progress(f"Transcribing {result.media.name}")
            _transcribe_one(result, job.layout, config, stats)
            done_steps += 1
        logger.info(
            "Transcription complete. Transcribed: %d, Skipped/Warnings: %d, Errors: %d",
            stats.transcribed, stats.transcribe_skipped, stats.transcribe_errors,
        )

    if not config.dry_run:
        run_result.report = ledger.report()

    done_steps = total_steps
    _progress("Done")
    return run_result


def _transcribe_one(
    result: FileResult, layout: OutputLayout, config: CondenseConfig, stats: RunStats
) -> None:
    name = result.media.name
    try:
        ensure_dir(layout.transcripts_dir, dry_run=config.dry_run)
    except OSError as e:
        logger.error("Could not create transcript directory '%s': %s", layout.transcripts_dir, e)
        result.transcribe_status = TranscribeStatus.ERROR
        stats.transcribe_errors += 1
        return

    outcome = transcribe(
        result.media.path,
        layout.transcripts_dir,
        backend=config.transcription,
        model=config.whisper_model,
        language=config.language,
        api_key=config.api_key,
        dry_run=config.dry_run,
    )
    if isinstance(outcome, Success):
        logger.info("Transcribed: %s", outcome.path)
        result.transcribe_status = TranscribeStatus.OK
        result.transcript_path = outcome.path
        stats.transcribed += 1
    elif isinstance(outcome, SoftSkip):
        logger.warning(
            "Skipping transcription for '%s': %s. Other audio processing continues.",
            name, outcome.reason,
        )
        result.transcribe_status = TranscribeStatus.SOFT_SKIP
        stats.transcribe_skipped += 1
    else:
        logger.error("Transcription failed for '%s': %s", name, outcome.cause)
        result.transcribe_status = TranscribeStatus.ERROR
        stats.transcribe_errors += 1
