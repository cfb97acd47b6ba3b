"""
HTTP Microservice
=================
Flask-based HTTP API for the document analyzer.

Endpoints:
    GET    /api/health                 → Health check
    GET    /api/info                   → Analyzer version info
    POST   /api/credentials/check      → API key shape check
    POST   /api/analyze                → Start analysis job (async)
    POST   /api/analyze/sync           → Analyze and return the result
    GET    /api/status/<id>            → Analysis job status
    GET    /api/result/<id>            → Analysis job result
    DELETE /api/jobs/<id>              → Remove a finished job from memory
    GET    /api/history                → Stored questions by level
    GET    /api/documents              → Analyzed documents
    GET    /api/question-bank          → Question bank (optional ?level=)
    POST   /api/question-bank          → Add a question
    GET    /api/question-bank/<id>     → One question
    PUT    /api/question-bank/<id>     → Update a question
    DELETE /api/question-bank/<id>     → Delete a question
    POST   /api/question-paper         → Assemble a paper from bank questions
"""

from __future__ import annotations

import logging
import threading
import time
import uuid

from flask import Flask, jsonify, request
from flask_cors import CORS

from . import __version__
from . import crud
from . import database as db
from . import storage as fs_storage
from .analyzer import (
    AnalysisError,
    AnalyzerConfig,
    UnsupportedDocumentError,
)
from .credentials import CredentialError, check_api_key
from .models import AnalysisMode, dump_categorized
from .normalizer import count_questions
from .taxonomy import LEVELS

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

# ─── In-memory job store ──────────────────────────────────────────────────────

jobs: dict[str, dict] = {}
jobs_lock = threading.Lock()


def create_app(config: dict = None) -> Flask:
    """Create and configure the Flask app."""
    if config:
        app.config.update(config)

    app.config.setdefault("MAX_CONTENT_LENGTH", 50 * 1024 * 1024)  # 50MB
    app.config.setdefault("BATCH_SIZE", 3)
    app.config.setdefault("BATCH_DELAY", 1.0)

    # Initialize persistence layer
    fs_storage.init_storage()
    db.init_db()

    return app


# ─── Health Check ─────────────────────────────────────────────────────────────


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    with jobs_lock:
        active = sum(1 for j in jobs.values()
                     if j["status"] in ("queued", "processing"))
        total = len(jobs)
    return jsonify({
        "status": "healthy",
        "service": "bloombuddy-analyzer",
        "version": __version__,
        "active_jobs": active,
        "total_jobs": total,
    })


@app.route("/api/info", methods=["GET"])
def info():
    """Analyzer version and capability info."""
    return jsonify({
        "version": __version__,
        "engine": "PyMuPDF",
        "modes": [m.value for m in AnalysisMode],
        "bloom_levels": [level.value for level in LEVELS],
        "supported_formats": ["pdf", "txt", "md", "csv"],
    })


@app.route("/api/credentials/check", methods=["POST"])
def check_credentials():
    """Check an API key's shape. The key itself is never echoed back."""
    data = request.get_json(silent=True) or {}
    key = data.get("api_key") or request.headers.get("X-API-Key")
    result = check_api_key(key)
    return jsonify({"valid": result.valid, "reason": result.reason})


# ─── Analyze Endpoints ────────────────────────────────────────────────────────


@app.route("/api/analyze", methods=["POST"])
def analyze_document():
    """
    Start analyzing an uploaded document (multipart/form-data).

    Returns a job ID for status polling.
    """
    try:
        temp_path, filename, config = _prepare_upload()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    job_id = str(uuid.uuid4())
    with jobs_lock:
        jobs[job_id] = {
            "id": job_id,
            "status": "queued",
            "filename": filename,
            "created_at": time.time(),
            "started_at": None,
            "completed_at": None,
            "result": None,
            "document_id": None,
            "error": None,
            "progress": 0,
        }

    thread = threading.Thread(
        target=_run_analysis_job,
        args=(job_id, temp_path, filename, config),
        daemon=True,
    )
    thread.start()

    return jsonify({
        "job_id": job_id,
        "status": "queued",
        "message": "Analysis job started",
    }), 202


@app.route("/api/analyze/sync", methods=["POST"])
def analyze_document_sync():
    """Analyze an uploaded document and return the result immediately."""
    temp_path = None
    try:
        temp_path, filename, config = _prepare_upload()
        document_id, result = crud.analyze_and_store(
            temp_path, config, original_filename=filename
        )
    except (CredentialError, UnsupportedDocumentError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except AnalysisError as e:
        return jsonify({"error": str(e)}), 502
    except Exception as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500
    finally:
        fs_storage.remove_file(temp_path)

    data = result.model_dump()
    data["document_id"] = document_id
    return jsonify(data), 200


def _prepare_upload() -> tuple[str, str, AnalyzerConfig]:
    """
    Validate the form, write the upload to a temp file and build the
    analyzer config. The caller removes the temp file.
    """
    if "file" not in request.files:
        raise ValueError("No file provided")
    file = request.files["file"]
    if not file.filename:
        raise ValueError("No file selected")

    form = request.form
    pages = None
    if form.get("pages"):
        try:
            pages = [int(p) for p in form["pages"].split(",") if p.strip()]
        except ValueError:
            raise ValueError(f"Invalid page list: {form['pages']!r}")

    mode = form.get("mode", AnalysisMode.VISION.value)
    if mode not in {m.value for m in AnalysisMode}:
        raise ValueError(f"Unknown analysis mode: {mode!r}")

    filename = fs_storage.sanitize_filename(file.filename)
    temp_path = fs_storage.save_uploaded_file(file, filename)

    config = AnalyzerConfig(
        api_key=request.headers.get("X-API-Key") or form.get("api_key"),
        mode=AnalysisMode(mode),
        pages=pages,
        batch_size=app.config.get("BATCH_SIZE", 3),
        batch_delay=app.config.get("BATCH_DELAY", 1.0),
        output_dir=str(fs_storage.output_dir()),
        save_output=True,
    )
    return temp_path, filename, config


# ─── Job Status ───────────────────────────────────────────────────────────────


@app.route("/api/status/<job_id>", methods=["GET"])
def get_status(job_id: str):
    """Get the status of an analysis job."""
    with jobs_lock:
        job = jobs.get(job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        job = dict(job)

    duration = None
    if job["started_at"] and job["completed_at"]:
        duration = round(job["completed_at"] - job["started_at"], 2)

    questions_count = None
    if job["result"]:
        questions_count = count_questions(job["result"]["questions"])

    return jsonify({
        "id": job["id"],
        "status": job["status"],
        "progress": job["progress"],
        "filename": job.get("filename", ""),
        "created_at": job["created_at"],
        "started_at": job["started_at"],
        "completed_at": job["completed_at"],
        "error": job["error"],
        "duration": duration,
        "questions_count": questions_count,
        "document_id": job["document_id"],
    })


@app.route("/api/result/<job_id>", methods=["GET"])
def get_result(job_id: str):
    """Get the full result of a completed analysis job."""
    with jobs_lock:
        job = jobs.get(job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        status, result = job["status"], job["result"]

    if status != "completed":
        return jsonify({
            "error": f"Job not complete, status: {status}",
            "status": status,
        }), 400
    return jsonify(result)


def _update_job(job_id: str, **fields):
    with jobs_lock:
        if job_id in jobs:
            jobs[job_id].update(fields)


def _run_analysis_job(job_id: str, path: str, filename: str, config: AnalyzerConfig):
    """
    Run an analysis job in a background thread. Persists results to SQLite
    and removes the temp upload when done.
    """
    _update_job(job_id, status="processing", started_at=time.time(), progress=10)

    def progress_cb(current, total):
        # Scale 0-100% of the fan-out to 10-95% of total job progress
        _update_job(job_id, progress=round(10 + (current / total) * 85, 1))

    try:
        logger.info(f"Job {job_id}: analyzing {filename}")
        document_id, result = crud.analyze_and_store(
            path, config, original_filename=filename, progress_callback=progress_cb
        )
        result_dict = result.model_dump()
        result_dict["document_id"] = document_id

        _update_job(
            job_id,
            status="completed",
            completed_at=time.time(),
            progress=100,
            result=result_dict,
            document_id=document_id,
        )
        logger.info(f"Job {job_id}: completed ({result.total_questions} questions)")

    except Exception as e:
        logger.error(f"Job {job_id} failed: {e}", exc_info=True)
        _update_job(job_id, status="failed", completed_at=time.time(), error=str(e))
    finally:
        fs_storage.remove_file(path)


@app.route("/api/jobs/<job_id>", methods=["DELETE"])
def delete_job(job_id: str):
    """Remove a finished job (and its stored result) from memory."""
    with jobs_lock:
        job = jobs.get(job_id)
        if not job:
            return jsonify({"error": "Job not found"}), 404
        if job["status"] in ("queued", "processing"):
            return jsonify({"error": f"Job is still {job['status']}"}), 409
        del jobs[job_id]
    return jsonify({"success": True, "message": f"Job {job_id} removed"})


# ─── History & Documents ──────────────────────────────────────────────────────


@app.route("/api/history", methods=["GET"])
def history():
    """Stored analyzed questions grouped by level (?filter=all|latest|<doc>)."""
    history_filter = request.args.get("filter", "all")
    categorized = crud.get_history(history_filter)
    return jsonify({
        "filter": history_filter,
        "total": count_questions(categorized),
        "questions": dump_categorized(categorized),
    })


@app.route("/api/documents", methods=["GET"])
def list_documents():
    """List analyzed documents, newest first."""
    return jsonify([
        {"id": d["id"], "title": d["title"], "file_type": d["file_type"],
         "total_questions": d["total_questions"], "created_at": d["created_at"]}
        for d in db.list_documents()
    ])


# ─── Question Bank ────────────────────────────────────────────────────────────


@app.route("/api/question-bank", methods=["GET"])
def list_bank():
    level = request.args.get("level")
    return jsonify(db.list_bank_questions(bloom_level=level))


@app.route("/api/question-bank", methods=["POST"])
def add_bank_question():
    data = request.get_json(silent=True) or {}
    try:
        question = crud.add_to_question_bank(
            text=data.get("text", ""),
            bloom_level=data.get("bloom_level"),
            marks=data.get("marks"),
            keywords=data.get("keywords"),
            image_url=data.get("image_url"),
            document_id=data.get("document_id"),
        )
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(question), 201


@app.route("/api/question-bank/<int:question_id>", methods=["GET"])
def get_bank_question(question_id: int):
    question = db.get_bank_question(question_id)
    if not question:
        return jsonify({"error": "Question not found"}), 404
    return jsonify(question)


@app.route("/api/question-bank/<int:question_id>", methods=["PUT"])
def update_bank_question(question_id: int):
    data = request.get_json(silent=True) or {}
    fields = {
        k: data[k]
        for k in ("text", "bloom_level", "marks", "keywords", "image_url")
        if k in data
    }
    if not fields:
        return jsonify({"error": "No updatable fields provided"}), 400
    try:
        question = crud.update_bank_question(question_id, **fields)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not question:
        return jsonify({"error": "Question not found"}), 404
    return jsonify(question)


@app.route("/api/question-bank/<int:question_id>", methods=["DELETE"])
def delete_bank_question(question_id: int):
    if not db.delete_bank_question(question_id):
        return jsonify({"error": "Question not found"}), 404
    return jsonify({"success": True})


@app.route("/api/question-paper", methods=["POST"])
def build_question_paper():
    """
    Assemble a question paper from bank questions.
    JSON body: {"question_ids": [1, 2], "title": ..., "subject": ...,
                "duration": ..., "instructions": ...}
    """
    data = request.get_json(silent=True) or {}
    options = {
        k: data[k]
        for k in ("title", "subject", "duration", "instructions")
        if data.get(k) is not None
    }
    question_ids = data.get("question_ids") or []
    if not isinstance(question_ids, list):
        return jsonify({"error": "question_ids must be a list"}), 400
    try:
        paper = crud.build_question_paper(question_ids, **options)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(paper)


# ─── Run Server ──────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the microservice server."""
    create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
