"""Translate ledger and validation errors into JSON responses."""

from __future__ import annotations

from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .errors import LedgerError


def _validation_details(exc: ValidationError):
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        if exc.status_code >= 500:
            app.logger.warning("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify(
            {
                "error": "VALIDATION_ERROR",
                "message": "request payload is invalid",
                "details": _validation_details(exc),
            }
        ), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = int(exc.code or 500)
        return jsonify({"error": (exc.name or "HTTP error").upper().replace(" ", "_"), "message": exc.description}), code

    @app.errorhandler(Exception)
    def handle_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": "INTERNAL_ERROR", "message": str(exc)}), 500
