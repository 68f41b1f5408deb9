"""
Badger — Badge & Promotion Tracker
Blueprint registry helpers: caller identity, query parsing and the shared
mapping from engine exceptions to JSON error responses.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from badger.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    ValidationFailedError,
)
from badger.utils.errors import E, api_error

logger = logging.getLogger(__name__)

CALLER_HEADER = "X-User-Id"


def caller_id() -> str | None:
    """Opaque caller identity resolved by the upstream auth layer."""
    value = (request.headers.get(CALLER_HEADER) or "").strip()
    return value or None


def require_caller():
    """Return (caller_id, None) or (None, 401 response)."""
    cid = caller_id()
    if not cid:
        return None, api_error(E.UNAUTHENTICATED, f"{CALLER_HEADER} header is required")
    return cid, None


def query_bool(name: str, default: bool | None) -> bool | None:
    raw = request.args.get(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    if lowered in ("all", ""):
        return None
    return default


def register_error_handlers(bp):
    """Attach one handler per engine exception type to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error), details={
            "resource": error.resource,
            "id": error.resource_id,
        })

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        return api_error(E.FORBIDDEN, str(error), details={"action": error.action})

    @bp.errorhandler(InvalidStateError)
    def _handle_invalid_state(error: InvalidStateError):
        return api_error(E.CONFLICT_STATE, str(error), details={
            "action": error.action,
            "current_status": error.current_status,
        })

    @bp.errorhandler(ValidationFailedError)
    def _handle_eligibility(error: ValidationFailedError):
        return api_error(
            E.ELIGIBILITY_FAILED,
            "Promotion does not meet template requirements",
            details={"missing": error.missing},
        )

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_RESERVATION, str(error), details={
            "badge_application_id": error.value,
            "reason": error.reason,
        })

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return {"error": error.description or error.name}, error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
