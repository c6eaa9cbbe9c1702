# Overview: Shared JSON response helpers for API routes.

from flask import current_app, jsonify, request

from ..errors import ServiceError, ServiceResult
from ..extensions import db


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def error_response(err: ServiceError):
    db.session.rollback()
    body = {"error": err.message, "code": err.code}
    if err.details:
        body["details"] = err.details
    return jsonify(body), err.status_code


def internal_error(context: str):
    db.session.rollback()
    current_app.logger.exception("%s failed", context)
    return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


def result_response(result: ServiceResult, *, status: int = 200, serialize=None):
    """Map a document-service result onto a JSON response."""
    if not result.success:
        body = {"error": result.error, "code": result.code}
        if result.details:
            body["details"] = result.details
        return jsonify(body), result.status_code

    data = result.data
    if serialize is not None:
        data = serialize(data)
    elif hasattr(data, "to_dict"):
        data = data.to_dict()
    return jsonify(data), status
