"""Per-app bookkeeping for uploaded files and their condensing runs."""

import queue
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class JobStatus(str, Enum):
    UPLOADED = "uploaded"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class JobError(Exception):
    """A request the job cannot serve in its current state."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class UploadJob:
    job_id: str
    input_path: Path
    status: JobStatus = JobStatus.UPLOADED
    error: str | None = None
    result: dict | None = None
    events: queue.Queue | None = None

    @property
    def job_dir(self) -> Path:
        return self.input_path.parent.parent

    def final_event(self) -> dict:
        if self.status == JobStatus.DONE:
            return {"stage": "complete", "progress": 1.0, "result": self.result}
        return {"stage": "failed", "error": self.error}

    def describe(self) -> dict:
        info = {
            "job_id": self.job_id,
            "filename": self.input_path.name,
            "status": self.status.value,
        }
        if self.status == JobStatus.DONE:
            info["result"] = self.result
        elif self.status == JobStatus.FAILED:
            info["error"] = self.error
        return info


class JobStore:
    """Jobs of one app instance.

    ``pipeline_lock`` keeps engine runs sequential even when several jobs
    are started at once.
    """

    def __init__(self, work_dir: Path):
        self.work_dir = Path(work_dir)
        self.pipeline_lock = threading.Lock()
        self._jobs: dict[str, UploadJob] = {}
        self._lock = threading.Lock()

    def create(self, filename: str) -> UploadJob:
        job_id = uuid.uuid4().hex[:12]
        input_path = self.work_dir / job_id / "input" / filename
        input_path.parent.mkdir(parents=True)
        job = UploadJob(job_id=job_id, input_path=input_path)
        with self._lock:
            self._jobs[job_id] = job
        return job

    def get(self, job_id: str, status: JobStatus | None = None) -> UploadJob:
        """Look a job up, optionally requiring it to be in *status*."""
        job = self._jobs.get(job_id)
        if job is None:
            raise JobError(f"Unknown job '{job_id}'", 404)
        if status is not None and job.status != status:
            raise JobError(f"Job is {job.status.value}, not {status.value}", 409)
        return job

    def start(self, job_id: str) -> UploadJob:
        """Move a job to RUNNING; a job never has two runs in flight."""
        with self._lock:
            job = self.get(job_id)
            if job.status == JobStatus.RUNNING:
                raise JobError("Job is already running", 409)
            job.status = JobStatus.RUNNING
            job.error = None
            job.result = None
            job.events = queue.Queue()
        return job

    def finish(self, job: UploadJob, result: dict | None = None, error: str | None = None) -> None:
        with self._lock:
            job.result = result
            job.error = error
            job.status = JobStatus.FAILED if error else JobStatus.DONE
