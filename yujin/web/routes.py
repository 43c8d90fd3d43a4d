"""Web job API: upload one file, condense it, follow progress, fetch the results."""

import json
import logging
import queue
import threading
from dataclasses import asdict
from pathlib import Path
from typing import get_args, get_type_hints

from flask import Blueprint, Response, current_app, jsonify, request, send_file
from werkzeug.utils import secure_filename

from yujin import engine, ffutil
from yujin.batch import single_layout
from yujin.config import CondenseConfig, ConfigError, resolve_api_key
from yujin.ledger import summary_lines
from yujin.models import MediaFile, ProcessStatus
from yujin.web.jobs import JobError, JobStatus, JobStore, UploadJob

logger = logging.getLogger(__name__)

bp = Blueprint("web", __name__)

EVENT_TIMEOUT = 120

_FIELD_TYPES = get_type_hints(CondenseConfig)
# Paths and filters stay server-side.
_JOB_OPTIONS = set(_FIELD_TYPES) - {"log_file", "batch_filter"}


def _accepts(hint, value) -> bool:
    allowed = get_args(hint) or (hint,)
    if value is None:
        return type(None) in allowed
    if isinstance(value, bool):
        return bool in allowed
    if isinstance(value, int) and float in allowed:
        return True
    return isinstance(value, tuple(t for t in allowed if t is not type(None)))


def job_config(options) -> CondenseConfig:
    """Build a run config from client JSON; bad names, types or values raise ConfigError."""
    if not isinstance(options, dict):
        raise ConfigError("Options must be a JSON object")
    unknown = sorted(set(options) - _JOB_OPTIONS)
    if unknown:
        raise ConfigError(f"Unknown options: {', '.join(unknown)}")
    for name, value in options.items():
        if not _accepts(_FIELD_TYPES[name], value):
            raise ConfigError(f"Option '{name}' has the wrong type ({type(value).__name__})")

    values = dict(options)
    if "output_format" in values:
        values["output_format"] = values["output_format"].lower()
    values["api_key"] = resolve_api_key(values.get("api_key"))
    config = CondenseConfig(**values)
    config.validate()
    return config


def _store() -> JobStore:
    return current_app.extensions["yujin"]


def _run_summary(outcome: engine.RunResult, config: CondenseConfig) -> dict:
    file_result = outcome.results[0]
    report = outcome.report
    return {
        "output_path": str(file_result.output_path),
        "original_duration": file_result.original_duration,
        "condensed_duration": file_result.condensed_duration,
        "segmentation": file_result.segment_status.value,
        "transcription": file_result.transcribe_status.value,
        "transcript_path": str(file_result.transcript_path) if file_result.transcript_path else None,
        "stats": asdict(outcome.stats),
        "ledger": asdict(report) if report else None,
        "summary": summary_lines(report, outcome.stats.processed, dry_run=config.dry_run),
    }


def _run_job(store: JobStore, job: UploadJob, config: CondenseConfig) -> None:
    output_path = job.job_dir / f"{job.input_path.stem}.{config.output_format}"
    pipeline_job = engine.Job(MediaFile(path=job.input_path), single_layout(output_path))

    def on_progress(stage: str, fraction: float) -> None:
        job.events.put({"stage": stage, "progress": round(fraction, 3)})

    try:
        with store.pipeline_lock:
            outcome = engine.run([pipeline_job], config, on_progress=on_progress)
    except Exception as e:
        logger.exception("Job %s crashed", job.job_id)
        store.finish(job, error=str(e))
    else:
        if outcome.results[0].process_status == ProcessStatus.OK:
            store.finish(job, result=_run_summary(outcome, config))
        else:
            store.finish(job, error=f"ffmpeg failed to condense {job.input_path.name}")
    finally:
        job.events.put(job.final_event())
        job.events.put(None)


def _sse(event: dict) -> str:
    return f"data: {json.dumps(event)}\n\n"


@bp.post("/api/upload")
def upload():
    f = request.files.get("file")
    if f is None or not f.filename:
        raise JobError("No file provided", 400)
    name = secure_filename(f.filename)
    if not name:
        raise JobError(f"Unusable filename '{f.filename}'", 400)

    job = _store().create(name)
    f.save(job.input_path)
    return jsonify(job.describe())


@bp.post("/api/jobs/<job_id>/process")
def start_process(job_id: str):
    store = _store()
    store.get(job_id)
    try:
        config = job_config(request.get_json(silent=True) or {})
    except ConfigError as e:
        raise JobError(str(e), 400)
    try:
        ffutil.check_ffmpeg()
    except ffutil.FFmpegNotFoundError as e:
        raise JobError(str(e), 503)

    job = store.start(job_id)
    threading.Thread(target=_run_job, args=(store, job, config), daemon=True).start()
    return jsonify(job.describe()), 202


@bp.get("/api/jobs/<job_id>/progress")
def progress_stream(job_id: str):
    job = _store().get(job_id)
    if job.events is None:
        raise JobError("Job has not been started", 409)
    events = job.events

    def generate():
        while True:
            # A finished job whose events were already drained replays its outcome.
            if job.status != JobStatus.RUNNING and events.empty():
                yield _sse(job.final_event())
                return
            try:
                event = events.get(timeout=EVENT_TIMEOUT)
            except queue.Empty:
                yield _sse({"stage": "timeout", "error": f"No progress for {EVENT_TIMEOUT}s"})
                return
            if event is None:
                return
            yield _sse(event)

    return Response(generate(), mimetype="text/event-stream")


@bp.get("/api/jobs/<job_id>/status")
def job_status(job_id: str):
    return jsonify(_store().get(job_id).describe())


@bp.get("/api/jobs/<job_id>/result")
def download_result(job_id: str):
    job = _store().get(job_id, JobStatus.DONE)
    return send_file(Path(job.result["output_path"]), as_attachment=True)


@bp.get("/api/jobs/<job_id>/transcript")
def download_transcript(job_id: str):
    job = _store().get(job_id, JobStatus.DONE)
    transcript = job.result["transcript_path"]
    if not transcript or not Path(transcript).is_file():
        raise JobError("No transcript for this job", 404)
    return send_file(Path(transcript), mimetype="text/plain")
