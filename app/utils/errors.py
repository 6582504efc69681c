"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Risk not found")
    return api_error(E.VALIDATION_REQUIRED, "project_id is required")
    return api_error(E.FORBIDDEN, "Cannot close risk directly")

``register_error_handlers`` maps the domain exceptions of
``app.core.exceptions`` onto these codes once for the whole app.
"""

from __future__ import annotations

import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StaleVersionError,
    TransitionNotAuthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STALE = "ERR_CONFLICT_STALE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STALE: 409,
    E.CONFLICT_STATE: 409,
    E.FORBIDDEN: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


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
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, current state, etc.).

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


def register_error_handlers(app):
    """Translate service-layer exceptions into API error responses."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        code = E.VALIDATION_REQUIRED if error.required else E.VALIDATION_INVALID
        return api_error(code, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        if isinstance(error, StaleVersionError):
            return api_error(E.CONFLICT_STALE, str(error),
                             details={"expected": error.expected, "actual": error.actual})
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(InvalidStateError)
    def _handle_invalid_state(error: InvalidStateError):
        details = {"current_state": error.current_state} if error.current_state else None
        return api_error(E.CONFLICT_STATE, str(error), details=details)

    @app.errorhandler(TransitionNotAuthorizedError)
    def _handle_forbidden(error: TransitionNotAuthorizedError):
        return api_error(E.FORBIDDEN, str(error), details={"status": error.status})

    @app.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        logger.exception("Database error")
        return api_error(E.DATABASE, "Database error")
