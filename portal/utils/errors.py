"""Standardised API error responses.

Usage
-----
    from portal.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION_REQUIRED, "notes are required")
"""

from __future__ import annotations

import logging

from flask import jsonify

from portal.core.exceptions import (
    AlreadyReviewedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UpstreamFailure,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    ALREADY_REVIEWED = "ERR_ALREADY_REVIEWED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Upstream / multi-step failure – HTTP 502
    UPSTREAM = "ERR_UPSTREAM"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.ALREADY_REVIEWED: 409,
    E.FORBIDDEN: 403,
    E.UPSTREAM: 502,
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
        Extra structured payload (allowed states, failed step, etc.).

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


def register_error_handlers(bp) -> None:
    """Map the portal exception hierarchy onto ``bp``.

    Called once per blueprint so every route shares the same contract.
    """

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(exc):
        logger.info("Not found: %s", exc)
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")

    @bp.errorhandler(ValidationError)
    def _handle_validation(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details or None)

    @bp.errorhandler(InvalidStateError)
    def _handle_invalid_state(exc):
        details = {"current": exc.current}
        if exc.allowed:
            details["allowed"] = exc.allowed
        return api_error(E.CONFLICT_STATE, str(exc), details=details)

    @bp.errorhandler(AlreadyReviewedError)
    def _handle_already_reviewed(exc):
        return api_error(E.ALREADY_REVIEWED, str(exc))

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(exc):
        details = {"required": exc.required} if exc.required else None
        return api_error(E.FORBIDDEN, str(exc), details=details)

    @bp.errorhandler(UpstreamFailure)
    def _handle_upstream(exc):
        logger.error("Upstream failure at step=%s: %s", exc.step, exc)
        details = {"step": exc.step} if exc.step else None
        return api_error(E.UPSTREAM, str(exc), details=details)
