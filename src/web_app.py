"""
HTTP endpoints used by the receipt review page.

  POST /api/analyze          multipart "file" -> OCR fields for review
  POST /api/records/<kind>   reviewed fields -> bill or expense with the receipt attached
  POST /api/attachments      receipt only, not linked to a record
"""

import logging
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import InternalServerError

from config_loader import load_settings, load_uploader_config
from errors import ReceiptUploadError, ValidationError
from logging_config import setup_logging
from ocr_models import RECORD_KINDS, ReceiptFields
from receipt_uploader import ReceiptUploader, build_uploader
from textract_analyzer import ExpenseAnalyzer


logger = logging.getLogger(__name__)


def create_app(uploader: ReceiptUploader = None, analyzer: ExpenseAnalyzer = None) -> Flask:
    app = Flask(__name__)

    if uploader is None or analyzer is None:
        settings = load_settings()
        if uploader is None:
            uploader = build_uploader(settings, load_uploader_config())
        if analyzer is None:
            analyzer = ExpenseAnalyzer(region=settings.aws_region)

    @app.errorhandler(InternalServerError)
    def internal_error(e):
        original = getattr(e, "original_exception", None) or e
        logger.error("❌ Unhandled error: %s", original)
        return jsonify({"error": str(original) or "Internal error"}), 500

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return jsonify({"status": "ok"})

    @app.route("/api/analyze", methods=["POST"])
    def analyze():
        upload = request.files.get("file")
        if upload is None:
            return jsonify({"error": "No file uploaded"}), 400
        image_bytes = upload.read()
        try:
            fields = analyzer.analyze(image_bytes, file_name=upload.filename, file_type=upload.mimetype)
        except ReceiptUploadError as e:
            return jsonify(e.to_dict()), e.http_status
        return jsonify(fields)

    @app.route("/api/records/<kind>", methods=["POST"])
    def create_record(kind):
        if kind not in RECORD_KINDS:
            return jsonify({"error": f"Unknown record kind: {kind}"}), 404
        try:
            fields = ReceiptFields.from_payload(request.get_json(silent=True) or {})
        except ValidationError as e:
            return jsonify(e.to_dict()), e.http_status
        outcome = uploader.upload(kind, fields)
        body, status = outcome.to_response()
        return jsonify(body), status

    @app.route("/api/attachments", methods=["POST"])
    def upload_attachment():
        try:
            fields = ReceiptFields.from_payload(request.get_json(silent=True) or {})
        except ValidationError as e:
            return jsonify(e.to_dict()), e.http_status
        body, status = uploader.upload_standalone(fields)
        return jsonify(body), status

    return app


if __name__ == "__main__":
    setup_logging()
    port = int(os.getenv("PORT", "3000"))
    create_app().run(host="0.0.0.0", port=port, threaded=True)
