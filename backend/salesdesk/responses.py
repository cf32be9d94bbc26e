# Overview: JSON error response helper shared by routes and decorators.

from flask import jsonify


def error_response(message: str, status: int = 400, **extra):
    """Error body carries both "error" and "message" with the same text."""
    body = {"error": message, "message": message}
    body.update(extra)
    return jsonify(body), status
