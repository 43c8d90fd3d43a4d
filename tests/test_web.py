"""Unit tests for the yujin web job API."""

import io
import json
from unittest.mock import patch

import pytest

from yujin import engine
from yujin.config import ConfigError
from yujin.ffutil import FFmpegNotFoundError
from yujin.ledger import LedgerReport
from yujin.models import FileResult, ProcessStatus, TranscribeStatus
from yujin.web import create_app
from yujin.web.jobs import JobError, JobStatus, JobStore
from yujin.web.routes import job_config


@pytest.fixture
def app(tmp_path):
    app = create_app(work_dir=tmp_path)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _upload(client, filename="lesson.mp4", content=b"fake video data"):
    return client.post(
        "/api/upload",
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
    )


def _events(resp):
    return [
        json.loads(line[len("data: "):])
        for line in resp.get_data(as_text=True).splitlines()
        if line.startswith("data: ")
    ]


def _fake_run(transcript=False):
    def run(jobs, config, on_progress=None, **kwargs):
        (job,) = jobs
        job.layout.condensed.write_bytes(b"condensed audio")
        if on_progress:
            on_progress(f"Condensing {job.media.name}", 0.0)
        result = FileResult(
            media=job.media,
            output_path=job.layout.condensed,
            original_duration=22.0,
            condensed_duration=15.0,
            process_status=ProcessStatus.OK,
        )
        if transcript:
            job.layout.transcripts_dir.mkdir()
            result.transcript_path = job.layout.transcripts_dir / f"{job.media.base_name}.txt"
            result.transcript_path.write_text("hello")
            result.transcribe_status = TranscribeStatus.OK
        report = LedgerReport(22.0, 15.0, 7.0, 100 * 7 / 22, 1)
        return engine.RunResult(results=[result], report=report)

    return run


def _failed_run(jobs, config, on_progress=None, **kwargs):
    (job,) = jobs
    result = FileResult(media=job.media, output_path=job.layout.condensed,
                        process_status=ProcessStatus.ERROR)
    return engine.RunResult(results=[result])


class TestJobConfig:
    def test_defaults(self):
        assert job_config({}).tempo_rate == 1.0

    def test_options(self):
        config = job_config({"tempo_rate": 0.8, "output_format": "OPUS", "normalize": True})
        assert config.tempo_rate == 0.8
        assert config.output_format == "opus"
        assert config.normalize is True

    def test_server_side_options_rejected(self):
        with pytest.raises(ConfigError, match="log_file"):
            job_config({"log_file": "/etc/passwd"})

    def test_invalid_value(self):
        with pytest.raises(ConfigError):
            job_config({"tempo_rate": -1})

    @pytest.mark.parametrize("options", [
        {"tempo_rate": "fast"},
        {"channels": "2"},
        {"channels": 1.5},
        {"normalize": "yes"},
        {"tempo_rate": True},
        {"output_format": 3},
        {"bitrate": None},
    ])
    def test_wrong_type_rejected(self, options):
        (name,) = options
        with pytest.raises(ConfigError, match=name):
            job_config(options)

    def test_int_accepted_for_float(self):
        assert job_config({"silence_threshold": -35}).silence_threshold == -35

    def test_null_allowed_for_optional(self):
        assert job_config({"segment_seconds": None, "language": None}).segment_seconds is None

    def test_non_object_rejected(self):
        with pytest.raises(ConfigError, match="JSON object"):
            job_config(["tempo_rate", 2])


class TestJobStore:
    def test_start_is_exclusive(self, tmp_path):
        store = JobStore(tmp_path)
        job = store.create("lesson.mp3")

        assert store.start(job.job_id).status == JobStatus.RUNNING
        with pytest.raises(JobError) as exc:
            store.start(job.job_id)
        assert exc.value.status_code == 409

    def test_restart_after_finish(self, tmp_path):
        store = JobStore(tmp_path)
        job = store.create("lesson.mp3")
        store.start(job.job_id)
        store.finish(job, error="ffmpeg failed")
        assert job.status == JobStatus.FAILED

        store.start(job.job_id)
        assert job.status == JobStatus.RUNNING
        assert job.error is None

    def test_get_requires_status(self, tmp_path):
        store = JobStore(tmp_path)
        job = store.create("lesson.mp3")
        with pytest.raises(JobError) as exc:
            store.get(job.job_id, JobStatus.DONE)
        assert exc.value.status_code == 409
        with pytest.raises(JobError) as exc:
            store.get("missing")
        assert exc.value.status_code == 404


class TestUpload:
    def test_upload_success(self, client):
        resp = _upload(client)
        assert resp.status_code == 200
        data = resp.get_json()
        assert "job_id" in data
        assert data["filename"] == "lesson.mp4"

    def test_upload_no_file(self, client):
        resp = client.post("/api/upload")
        assert resp.status_code == 400

    def test_upload_creates_file(self, client, tmp_path):
        resp = _upload(client, content=b"CONTENT")
        job_id = resp.get_json()["job_id"]
        input_file = tmp_path / job_id / "input" / "lesson.mp4"
        assert input_file.exists()
        assert input_file.read_bytes() == b"CONTENT"

    def test_upload_sanitizes_name(self, client):
        resp = _upload(client, filename="../../etc/lesson one.mp3")
        assert resp.get_json()["filename"] == "etc_lesson_one.mp3"

    def test_upload_unusable_name(self, client):
        resp = _upload(client, filename="../..")
        assert resp.status_code == 400


class TestProcess:
    def test_process_unknown_job(self, client):
        resp = client.post("/api/jobs/nonexistent/process", json={})
        assert resp.status_code == 404

    def test_bad_options(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/process", json={"tempo": 2})
        assert resp.status_code == 400
        assert "tempo" in resp.get_json()["error"]

    def test_mistyped_options(self, client):
        job_id = _upload(client).get_json()["job_id"]
        for options in ({"tempo_rate": "fast"}, {"channels": "2"}):
            resp = client.post(f"/api/jobs/{job_id}/process", json=options)
            assert resp.status_code == 400
        assert client.get(f"/api/jobs/{job_id}/status").get_json()["status"] == "uploaded"

    @patch("yujin.web.routes.threading.Thread")
    @patch("yujin.web.routes.ffutil.check_ffmpeg")
    def test_second_start_while_running(self, _, mock_thread, client):
        job_id = _upload(client).get_json()["job_id"]
        assert client.post(f"/api/jobs/{job_id}/process", json={}).status_code == 202

        resp = client.post(f"/api/jobs/{job_id}/process", json={})
        assert resp.status_code == 409
        assert mock_thread.call_count == 1

    @patch("yujin.web.routes.ffutil.check_ffmpeg",
           side_effect=FFmpegNotFoundError("ffmpeg not found on PATH"))
    def test_ffmpeg_missing(self, _, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/process", json={})
        assert resp.status_code == 503
        assert client.get(f"/api/jobs/{job_id}/status").get_json()["status"] == "uploaded"

    @patch("yujin.web.routes.ffutil.check_ffmpeg")
    @patch("yujin.web.routes.engine.run")
    def test_process_completes(self, mock_run, _, client, tmp_path):
        mock_run.side_effect = _fake_run()
        job_id = _upload(client).get_json()["job_id"]

        resp = client.post(f"/api/jobs/{job_id}/process", json={"tempo_rate": 0.9})
        assert resp.status_code == 202
        assert resp.get_json()["status"] == "running"

        events = _events(client.get(f"/api/jobs/{job_id}/progress"))
        assert events[0] == {"stage": "Condensing lesson.mp4", "progress": 0.0}
        assert events[-1]["stage"] == "complete"
        result = events[-1]["result"]
        assert result["ledger"]["saved_percent"] == pytest.approx(31.818, abs=1e-3)
        assert result["ledger"]["measured_count"] == 1
        assert result["stats"]["errors"] == 0
        assert "transcribed" in result["stats"]
        assert any("Reduction" in line for line in result["summary"])

        (pipeline_job,), config = mock_run.call_args[0]
        assert config.tempo_rate == 0.9
        assert pipeline_job.layout.condensed == tmp_path / job_id / "lesson.mp3"

        status = client.get(f"/api/jobs/{job_id}/status").get_json()
        assert status["status"] == "done"
        assert status["result"]["transcription"] == "skipped"

        download = client.get(f"/api/jobs/{job_id}/result")
        assert download.status_code == 200
        assert download.data == b"condensed audio"

        assert client.get(f"/api/jobs/{job_id}/transcript").status_code == 404

    @patch("yujin.web.routes.ffutil.check_ffmpeg")
    @patch("yujin.web.routes.engine.run")
    def test_transcript_download(self, mock_run, _, client):
        mock_run.side_effect = _fake_run(transcript=True)
        job_id = _upload(client).get_json()["job_id"]

        client.post(f"/api/jobs/{job_id}/process", json={"transcription": "api", "api_key": "k"})
        _events(client.get(f"/api/jobs/{job_id}/progress"))

        resp = client.get(f"/api/jobs/{job_id}/transcript")
        assert resp.status_code == 200
        assert resp.data == b"hello"

    @patch("yujin.web.routes.ffutil.check_ffmpeg")
    @patch("yujin.web.routes.engine.run", side_effect=_failed_run)
    def test_process_failure(self, mock_run, _, client):
        job_id = _upload(client).get_json()["job_id"]
        client.post(f"/api/jobs/{job_id}/process", json={})

        events = _events(client.get(f"/api/jobs/{job_id}/progress"))
        assert events[-1]["stage"] == "failed"
        assert "ffmpeg failed" in events[-1]["error"]

        status = client.get(f"/api/jobs/{job_id}/status").get_json()
        assert status["status"] == "failed"
        assert client.get(f"/api/jobs/{job_id}/result").status_code == 409

    @patch("yujin.web.routes.ffutil.check_ffmpeg")
    @patch("yujin.web.routes.engine.run", side_effect=_failed_run)
    def test_progress_replays_outcome(self, mock_run, _, client):
        job_id = _upload(client).get_json()["job_id"]
        client.post(f"/api/jobs/{job_id}/process", json={})
        _events(client.get(f"/api/jobs/{job_id}/progress"))

        events = _events(client.get(f"/api/jobs/{job_id}/progress"))
        assert events == [{"stage": "failed", "error": "ffmpeg failed to condense lesson.mp4"}]


class TestProgress:
    def test_progress_unknown_job(self, client):
        assert client.get("/api/jobs/nonexistent/progress").status_code == 404

    def test_progress_before_processing(self, client):
        job_id = _upload(client).get_json()["job_id"]
        assert client.get(f"/api/jobs/{job_id}/progress").status_code == 409


class TestStatus:
    def test_status_after_upload(self, client):
        upload_resp = _upload(client)
        job_id = upload_resp.get_json()["job_id"]

        resp = client.get(f"/api/jobs/{job_id}/status")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "uploaded"

    def test_status_unknown_job(self, client):
        resp = client.get("/api/jobs/nonexistent/status")
        assert resp.status_code == 404

    def test_apps_do_not_share_jobs(self, client, tmp_path):
        job_id = _upload(client).get_json()["job_id"]
        other = create_app(work_dir=tmp_path / "other").test_client()
        assert other.get(f"/api/jobs/{job_id}/status").status_code == 404


class TestDownload:
    def test_download_not_complete(self, client):
        upload_resp = _upload(client)
        job_id = upload_resp.get_json()["job_id"]

        resp = client.get(f"/api/jobs/{job_id}/result")
        assert resp.status_code == 409

    def test_download_unknown_job(self, client):
        resp = client.get("/api/jobs/nonexistent/result")
        assert resp.status_code == 404

    def test_transcript_not_complete(self, client):
        job_id = _upload(client).get_json()["job_id"]
        assert client.get(f"/api/jobs/{job_id}/transcript").status_code == 409
