"""
Promotion Blueprint — reservations, eligibility and lifecycle transitions.

Every route requires the caller identity header (X-User-Id).  Whether the
caller is an administrator is resolved from the users table; nothing about
roles is trusted from the request.

Endpoints:
    GET    /api/v1/promotions                         list (own, or all for admins)
    POST   /api/v1/promotions                         { "template_id" } → draft
    GET    /api/v1/promotions/<pid>                   detail
    DELETE /api/v1/promotions/<pid>                   delete draft → 204
    POST   /api/v1/promotions/<pid>/badges            { "badge_application_ids": [...] }
    DELETE /api/v1/promotions/<pid>/badges            { "badge_application_ids": [...] }
    GET    /api/v1/promotions/<pid>/validation        eligibility breakdown
    POST   /api/v1/promotions/<pid>/submit
    POST   /api/v1/promotions/<pid>/approve           { "note"? }   (admin)
    POST   /api/v1/promotions/<pid>/reject            { "reason" }  (admin)

Layer contract:
    - Blueprint: parse input, resolve caller, call service, render JSON.
    - NO db.session calls here; all writes are owned by the services.
    - Typed service errors are mapped once in register_error_handlers.
"""

import logging

from flask import Blueprint, jsonify, request

from badger.blueprints import register_error_handlers, require_caller
from badger.core.exceptions import ValidationError
from badger.services import (
    eligibility,
    promotion_lifecycle,
    promotion_service,
    reservation_ledger,
)
from badger.services.helpers.promotion_guards import is_admin
from badger.utils.errors import E, api_error

logger = logging.getLogger(__name__)

promotion_bp = Blueprint("promotion", __name__, url_prefix="/api/v1")
register_error_handlers(promotion_bp)


def _json_body() -> dict:
    """Request body as a JSON object; absent body reads as {}."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": "expected object"})
    return data


def _badge_ids_from_body():
    data = _json_body()
    ids = data.get("badge_application_ids")
    if ids is None:
        return None, api_error(E.VALIDATION_REQUIRED, "Field 'badge_application_ids' is required.")
    return ids, None


# ── Queries ────────────────────────────────────────────────────────────────────


@promotion_bp.route("/promotions", methods=["GET"])
def list_promotions():
    """List promotions.  Query params: status, path, template_id,
    created_by (admin only), sort, order, limit, offset."""
    cid, err = require_caller()
    if err:
        return err

    result = promotion_service.list_promotions(
        cid,
        is_admin=is_admin(cid),
        status=request.args.get("status") or None,
        path=request.args.get("path") or None,
        template_id=request.args.get("template_id") or None,
        created_by=request.args.get("created_by") or None,
        sort=request.args.get("sort", "created_at"),
        order=request.args.get("order", "desc"),
        limit=request.args.get("limit", 20, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify(result), 200


@promotion_bp.route("/promotions/<promotion_id>", methods=["GET"])
def get_promotion(promotion_id: str):
    cid, err = require_caller()
    if err:
        return err
    return jsonify(promotion_service.get_promotion(promotion_id, cid, is_admin(cid))), 200


@promotion_bp.route("/promotions/<promotion_id>/validation", methods=["GET"])
def validate_promotion(promotion_id: str):
    """Eligibility breakdown computed from the current reservations."""
    cid, err = require_caller()
    if err:
        return err
    promotion_service.get_visible_promotion(promotion_id, cid, is_admin(cid))
    return jsonify(eligibility.evaluate(promotion_id)), 200


# ── Creation / deletion ────────────────────────────────────────────────────────


@promotion_bp.route("/promotions", methods=["POST"])
def create_promotion():
    cid, err = require_caller()
    if err:
        return err
    template_id = _json_body().get("template_id")
    if template_id is not None and not isinstance(template_id, str):
        return api_error(E.VALIDATION_INVALID, "Field 'template_id' must be a string.",
                         details={"template_id": "expected string"})
    template_id = (template_id or "").strip()
    if not template_id:
        return api_error(E.VALIDATION_REQUIRED, "Field 'template_id' is required.")

    return jsonify(promotion_service.create_promotion(template_id, cid)), 201


@promotion_bp.route("/promotions/<promotion_id>", methods=["DELETE"])
def delete_promotion(promotion_id: str):
    cid, err = require_caller()
    if err:
        return err
    promotion_lifecycle.delete(promotion_id, cid)
    return "", 204


# ── Reservation ledger ─────────────────────────────────────────────────────────


@promotion_bp.route("/promotions/<promotion_id>/badges", methods=["POST"])
def add_badges(promotion_id: str):
    cid, err = require_caller()
    if err:
        return err
    ids, err = _badge_ids_from_body()
    if err:
        return err

    result = reservation_ledger.add_badges(promotion_id, ids, cid)
    return jsonify(result), 200


@promotion_bp.route("/promotions/<promotion_id>/badges", methods=["DELETE"])
def remove_badges(promotion_id: str):
    cid, err = require_caller()
    if err:
        return err
    ids, err = _badge_ids_from_body()
    if err:
        return err

    result = reservation_ledger.remove_badges(promotion_id, ids, cid)
    return jsonify(result), 200


# ── Lifecycle transitions ──────────────────────────────────────────────────────


@promotion_bp.route("/promotions/<promotion_id>/submit", methods=["POST"])
def submit_promotion(promotion_id: str):
    cid, err = require_caller()
    if err:
        return err
    return jsonify(promotion_lifecycle.submit(promotion_id, cid)), 200


@promotion_bp.route("/promotions/<promotion_id>/approve", methods=["POST"])
def approve_promotion(promotion_id: str):
    cid, err = require_caller()
    if err:
        return err
    data = _json_body()
    return jsonify(promotion_lifecycle.approve(promotion_id, cid, note=data.get("note"))), 200


@promotion_bp.route("/promotions/<promotion_id>/reject", methods=["POST"])
def reject_promotion(promotion_id: str):
    cid, err = require_caller()
    if err:
        return err
    data = _json_body()
    return jsonify(promotion_lifecycle.reject(promotion_id, cid, data.get("reason"))), 200
