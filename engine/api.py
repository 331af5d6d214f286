import uuid
import inspect
import asyncio
import logging
from typing import Any

from flask import Flask, request, jsonify
from werkzeug.exceptions import RequestEntityTooLarge

from utils.core.log import setup_logging
from utils.core.warnings_config import configure_warning_filters
from utils.core.errors import (
    DocumentExtractionError,
    DocumentValidationError,
    make_error_payload,
)
from utils.document.doc import detect_kind, extract_text
from tools.doc_summary.config import SummaryConfig
from tools.doc_summary.doc_summary import doc_summary_main

configure_warning_filters()

"""
API for the Document Summary backend

pip install flask
"""


def _request_context(tool_name: str, request_id: str, file_name: str = "-") -> logging.LoggerAdapter:
    context = {
        "tool_name": tool_name,
        "request_id": request_id,
        "ip_address": request.remote_addr,
        "request_type": request.method,
        "file_name": file_name,
    }
    return logging.LoggerAdapter(logging.getLogger("DocSummaryBE"), context)


def handle(tool_func=None, *args, **kwargs):
    """
    Universal wrapper for endpoint tools.

    - The route passes every parameter the tool needs through *args / **kwargs.
    - Runs coroutine tools with asyncio.run.
    - Builds the response envelope: {"success": true, "data": ...} or the
      error payload from make_error_payload().
    """
    request_id = kwargs.pop("request_id", None) or uuid.uuid4().hex[:12]
    file_name = kwargs.get("file_name", "-")
    tool_name = tool_func.__name__ if tool_func else "unknown_tool"
    logger = _request_context(tool_name, request_id, file_name)

    if request.method == "POST":
        logger.info("Process started")

    call_kwargs = dict(kwargs)
    sig = inspect.signature(tool_func) if tool_func else None
    if sig:
        if "remote_ip" in sig.parameters:
            call_kwargs["remote_ip"] = request.remote_addr
        if "request_method" in sig.parameters:
            call_kwargs["request_method"] = request.method
        if "request_id" in sig.parameters:
            call_kwargs["request_id"] = request_id

    try:
        if inspect.iscoroutinefunction(tool_func):
            result = asyncio.run(tool_func(*args, **call_kwargs))
        else:
            result = tool_func(*args, **call_kwargs)
    except DocumentValidationError as exc:
        logger.warning("%s rejected input: %s", tool_name, exc)
        return jsonify(make_error_payload(exc, stage="validation")), 400
    except Exception as exc:
        logger.exception(f"{tool_name} crashed")
        return jsonify(make_error_payload(exc, stage="analysis")), 500

    logger.info("Process finished")
    return jsonify({"success": True, "data": result}), 200


def bad_request(msg: str, stage: str = "validation", status: int = 400):
    return jsonify(make_error_payload(msg, stage=stage)), status


def ping_status_tool(request_method: str | None = None, remote_ip: str | None = None) -> dict:
    logging.getLogger("DocSummaryBE").debug(
        "Ping received from %s via %s", remote_ip, request_method
    )
    return {"status": "pong"}


def create_app(config: SummaryConfig | None = None, **tool_overrides: Any) -> Flask:
    """
    Build the Flask app (also the WSGI entry point: ``api:create_app()``).

    ``tool_overrides`` are forwarded to the summary tool (tests inject an
    ``analyzer`` here).
    """
    setup_logging()
    config = config or SummaryConfig.from_env()
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_bytes
    app.config["SUMMARY_CONFIG"] = config

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(_exc):
        limit_mb = config.max_upload_bytes / (1024 * 1024)
        return bad_request(f"File too large. Maximum size is {limit_mb:g} MB", status=413)

    @app.route("/", methods=["GET"])
    def ROOT():
        return "Document Summary Assistant API running"

    @app.route("/ping", methods=["GET", "POST"])
    def PING():
        return handle(tool_func=ping_status_tool)

    @app.route("/upload", methods=["POST"])
    def UPLOAD():
        """
        Analyse one uploaded PDF / image.
        - multipart field `file` (required)
        - form field `length`: short | medium | long (default medium)
        """
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return bad_request("No file uploaded")

        request_id = uuid.uuid4().hex[:12]
        logger = _request_context("upload", request_id, upload.filename)
        summary_length = request.form.get("length") or "medium"

        try:
            kind = detect_kind(upload.filename)
        except DocumentValidationError as exc:
            return bad_request(str(exc))

        document_bytes = upload.read()
        if len(document_bytes) > config.max_upload_bytes:
            raise RequestEntityTooLarge()

        try:
            text = extract_text(
                document_bytes,
                kind,
                filename=upload.filename,
                ocr_language=config.ocr_language,
            )
        except DocumentValidationError as exc:
            return bad_request(str(exc))
        except DocumentExtractionError as exc:
            logger.exception("Extraction failed")
            return bad_request(str(exc), stage="extraction", status=500)

        return handle(
            tool_func=doc_summary_main,
            request_id=request_id,
            text=text,
            file_name=upload.filename,
            file_size=len(document_bytes),
            mime_type=upload.mimetype,
            summary_length=summary_length,
            config=config,
            **tool_overrides,
        )

    return app


if __name__ == "__main__":
    summary_config = SummaryConfig.from_env()
    create_app(summary_config).run(host="0.0.0.0", port=summary_config.port)
