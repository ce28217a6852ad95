"""Standardised API error responses.

Usage
-----
    from portfolio.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.NOT_FOUND, "Document not found")

Domain exceptions raised by services are translated once, app-wide, by the
handlers ``init_error_handlers`` registers:

    AuthenticationError → 401, NotFoundError → 404, ForbiddenError → 403,
    ConflictError → 409,
    InvalidStateError / ValidationError → 400, anything else → 500.
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from portfolio.core.exceptions import (
    AuthenticationError,
    ConflictError,
    DomainError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error codes for failures detected in blueprints.

    Domain failures carry their own code (``exc.code``).
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.INTERNAL: 500,
}

# Most specific first: DuplicateEntryError is a ConflictError, etc.
_KIND_STATUS: tuple[tuple[type[DomainError], int], ...] = (
    (AuthenticationError, 401),
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (ConflictError, 409),
    (InvalidStateError, 400),
    (ValidationError, 400),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (``E.*`` constant or a domain code).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def status_for(exc: DomainError) -> int:
    """HTTP status for a domain exception, by kind."""
    for kind, status in _KIND_STATUS:
        if isinstance(exc, kind):
            return status
    return 400


def init_error_handlers(app):
    """Register app-wide JSON error handlers."""

    @app.errorhandler(DomainError)
    def _domain_error(exc: DomainError):
        status = status_for(exc)
        logger.info(
            "Domain error %s on %s %s: %s",
            exc.code, request.method, request.path, exc.message,
            extra={"path": request.path, "status": status},
        )
        return api_error(exc.code, exc.message, status=status, details=exc.details)

    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND, "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(413)
    def _too_large(e):
        return {"error": "Request body too large", "code": "ERR_PAYLOAD_TOO_LARGE"}, 413

    @app.errorhandler(429)
    def _rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(Exception)
    def _unexpected(exc):
        from werkzeug.exceptions import HTTPException

        if isinstance(exc, HTTPException):
            return {"error": exc.description, "code": f"ERR_HTTP_{exc.code}"}, exc.code
        logger.error("Unhandled error on %s %s", request.method, request.path, exc_info=exc)
        return api_error(E.INTERNAL, "An unexpected error occurred", status=500)
