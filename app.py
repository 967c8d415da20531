from __future__ import annotations

from pathlib import Path

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from image_downloader.classifier import classify, rank_for_display, tier_badge, tier_description
from image_downloader.client import DEFAULT_SERVICE_URL, DOWNLOAD_TIMEOUT_SECONDS, ImageServiceClient
from image_downloader.errors import FALLBACK_MESSAGE, FALLBACK_TIP, InvalidTransition, UnknownColumn
from image_downloader.materializer import DEFAULT_DOWNLOAD_ROOT, LocalFileSaver
from image_downloader.session import STEP_ORDER, Step, step_status
from image_downloader.workflow import Workflow

app = Flask(__name__)
app.config.from_mapping(
    SERVICE_URL=DEFAULT_SERVICE_URL,
    DOWNLOAD_ROOT=str(DEFAULT_DOWNLOAD_ROOT),
    DOWNLOAD_TIMEOUT_SECONDS=DOWNLOAD_TIMEOUT_SECONDS,
)
app.config.from_prefixed_env("IMAGE_DOWNLOADER")

EXTENSION_KEY = "image_downloader"


def _json_error(message: str, status_code: int = 400):
    return jsonify(status="error", message=message), status_code


def _workflow() -> Workflow:
    workflow = app.extensions.get(EXTENSION_KEY)
    if workflow is None:
        client = ImageServiceClient(
            app.config["SERVICE_URL"],
            download_timeout=float(app.config["DOWNLOAD_TIMEOUT_SECONDS"]),
        )
        workflow = Workflow(client, LocalFileSaver(Path(app.config["DOWNLOAD_ROOT"]).expanduser()))
        app.extensions[EXTENSION_KEY] = workflow
    return workflow


def _column_payload(session):
    selected = set(session.selected)
    columns = []
    for name in rank_for_display(session.columns):
        tier = classify(name)
        columns.append(
            {
                "name": name,
                "tier": tier.value,
                "badge": tier_badge(tier),
                "description": tier_description(tier),
                "selected": name in selected,
            }
        )
    return columns


def _session_payload(workflow):
    session = workflow.session
    payload = {
        "step": session.step.value,
        "steps": {step.value: step_status(session, step) for step in STEP_ORDER},
        "uploaded_file_name": session.uploaded_file_name,
        "columns": _column_payload(session),
        "selected": list(session.selected),
        "message": session.message,
        "total_images": session.total_images,
        "error": session.error,
        "tip": FALLBACK_TIP if FALLBACK_MESSAGE in session.error else None,
    }
    if session.step is Step.COMPLETE and workflow.last_report is not None:
        payload["download"] = workflow.last_report.summary()
    return payload


def _session_response(workflow, status_code: int = 200):
    return jsonify(status="ok" if status_code < 400 else "error", session=_session_payload(workflow)), status_code


def _get_uploaded_file():
    file_obj = request.files.get("file")
    if not file_obj or not file_obj.filename:
        return None, None, "No file uploaded"
    return file_obj.read(), file_obj.filename, None


@app.errorhandler(InvalidTransition)
def _handle_invalid_transition(exc):
    return _json_error(str(exc), 409)


@app.errorhandler(UnknownColumn)
def _handle_unknown_column(exc):
    return _json_error(str(exc), 400)


@app.errorhandler(Exception)
def _handle_unexpected_error(exc):
    if isinstance(exc, HTTPException):
        return exc
    app.logger.exception("Unhandled image downloader exception")
    return _json_error("Error while processing request: {0}".format(exc), 500)


@app.route("/health")
def health():
    return jsonify(status="ok")


@app.route("/session")
def current_session():
    return _session_response(_workflow())


@app.route("/upload", methods=["POST"])
def upload():
    file_bytes, filename, error = _get_uploaded_file()
    if error:
        return _json_error(error, 400)

    workflow = _workflow()
    session = workflow.upload(filename, file_bytes)
    if session.step is Step.UPLOAD and session.error:
        return _session_response(workflow, 400)
    return _session_response(workflow)


@app.route("/columns/toggle", methods=["POST"])
def toggle_column():
    data = request.get_json(silent=True) or {}
    column = data.get("column")
    if not isinstance(column, str):
        return _json_error("Missing column", 400)

    workflow = _workflow()
    workflow.toggle(column)
    return _session_response(workflow)


@app.route("/columns/select-all", methods=["POST"])
def select_all_columns():
    workflow = _workflow()
    workflow.select_all()
    return _session_response(workflow)


@app.route("/columns/clear", methods=["POST"])
def clear_columns():
    workflow = _workflow()
    workflow.clear_all()
    return _session_response(workflow)


@app.route("/download", methods=["POST"])
def download():
    workflow = _workflow()
    workflow.download()
    return _session_response(workflow)


@app.route("/reset", methods=["POST"])
def reset():
    workflow = _workflow()
    workflow.reset()
    return _session_response(workflow)


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5001, debug=True)
