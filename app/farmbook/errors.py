"""
API error taxonomy and the JSON error envelope.

Handlers raise these; `register_error_handlers` turns them into
`{"success": false, "error": ..., "code": ..., "details": [...]}` responses.
"""
from __future__ import annotations

from typing import Any

from flask import Flask, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from app.farmbook.messages import resolve_message


class ApiError(Exception):
    status = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details = details


class AuthenticationError(ApiError):
    status = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required.", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class AuthorizationError(ApiError):
    status = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "You do not have permission to perform this action.", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ValidationError(ApiError):
    status = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Invalid input.", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class BusinessLogicError(ApiError):
    status = 400

    def __init__(self, message: str, code: str, **kwargs: Any) -> None:
        super().__init__(message, code=code, **kwargs)


class NotFoundError(ApiError):
    status = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found.", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ConflictError(ApiError):
    status = 409
    code = "DUPLICATE_RESOURCE"

    def __init__(self, message: str = "Resource already exists.", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


def field_error(field: str, message: str, code: str | None = None) -> dict[str, Any]:
    d: dict[str, Any] = {"field": field, "message": message}
    if code:
        d["code"] = code
    return d


def raise_for_errors(errors: list[dict[str, Any]]) -> None:
    """Raise a ValidationError carrying every field error, if any were collected."""
    if errors:
        raise ValidationError("Invalid input.", details=errors)


_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "BAD_REQUEST",
}


def _locale() -> str | None:
    return request.accept_languages.best_match(("en", "fr"))


def error_response(status: int, code: str, fallback: str, details: list[dict[str, Any]] | None = None):
    body: dict[str, Any] = {
        "success": False,
        "error": resolve_message(code, _locale(), fallback),
        "code": code,
    }
    if details:
        body["details"] = details
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status >= 500:
            current_app.logger.error("API error %s (request_id=%s): %s", e.code, getattr(g, "request_id", None), e.message)
        elif e.status == 403:
            current_app.logger.warning(
                "Forbidden: code=%s path=%s request_id=%s", e.code, request.path, getattr(g, "request_id", None)
            )
        return error_response(e.status, e.code, e.message, e.details)

    @app.errorhandler(IntegrityError)
    def _integrity_error(e: IntegrityError):  # type: ignore[no-redef]
        current_app.logger.warning("Integrity error (request_id=%s): %s", getattr(g, "request_id", None), e.orig)
        return error_response(409, "DUPLICATE_RESOURCE", "Resource already exists.")

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        status = e.code or 500
        code = _HTTP_CODES.get(status, "INTERNAL_ERROR" if status >= 500 else "BAD_REQUEST")
        return error_response(status, code, e.description or e.name)

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred.")
