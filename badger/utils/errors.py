"""Standardised API error responses.

Every error body has the same shape::

    {"error": "<human message>", "code": "ERR_...", "details": {...}?,
     "request_id": "<id>"?}

``request_id`` matches the ``X-Request-ID`` response header and the
``request_id`` field in the server logs.

Usage
-----
    from badger.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Promotion not found")
    return api_error(E.CONFLICT_STATE, "Only draft promotions can be submitted",
                     details={"current_status": "submitted"})
"""

from __future__ import annotations

from flask import g, has_request_context, jsonify


class E:
    """Machine-readable error codes."""

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # 409: the promotion or a badge is not in a state that allows the call
    CONFLICT_RESERVATION = "ERR_CONFLICT_RESERVATION"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    ELIGIBILITY_FAILED = "ERR_ELIGIBILITY_FAILED"

    # 500
    INTERNAL = "ERR_INTERNAL"


STATUS_FOR_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_RESERVATION: 409,
    E.CONFLICT_STATE: 409,
    E.ELIGIBILITY_FAILED: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Build ``(response, status)`` for a JSON error.

    ``status`` defaults to the code's entry in ``STATUS_FOR_CODE`` (400 for
    unknown codes).  Empty ``details`` are omitted from the body.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    if has_request_context() and getattr(g, "request_id", None):
        body["request_id"] = g.request_id

    return jsonify(body), status or STATUS_FOR_CODE.get(code, 400)
