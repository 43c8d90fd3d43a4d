"""Flask application factory for the yujin web job API."""

import tempfile
from pathlib import Path

from flask import Flask, jsonify

from yujin.web.jobs import JobError, JobStore
from yujin.web.routes import bp

MAX_UPLOAD_GB = 10


def create_app(work_dir: Path | None = None) -> Flask:
    """Build an app with its own job store, so separate instances never share jobs."""
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_GB * 1024 ** 3
    app.extensions["yujin"] = JobStore(work_dir or Path(tempfile.mkdtemp(prefix="yujin_")))
    app.register_blueprint(bp)

    @app.errorhandler(JobError)
    def job_error(error: JobError):
        return jsonify({"error": str(error)}), error.status_code

    @app.errorhandler(413)
    def upload_too_large(error):
        return jsonify({"error": f"Upload exceeds {MAX_UPLOAD_GB} GB"}), 413

    return app
