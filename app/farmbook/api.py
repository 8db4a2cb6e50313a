from __future__ import annotations

from typing import Any

from flask import jsonify, request

from app.farmbook.errors import ValidationError


def ok(data: Any = None, message: str | None = None, status: int = 200):
    """Success envelope: {"success": true, "data": ..., "message": ...}."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return jsonify(body), status


def json_body() -> dict:
    """Parsed JSON object body; anything else is a validation error."""
    payload = request.get_json(silent=True)
    if payload is None:
        if request.get_data(cache=True):
            raise ValidationError("Request body must be valid JSON.")
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload
