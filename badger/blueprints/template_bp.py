"""
Promotion Template Blueprint — read-only catalogue of career-step templates.

Endpoints:
    GET /api/v1/promotion-templates
        Query params: path, from_level, to_level, is_active (default true,
                      "all" disables the filter), sort (name|created_at),
                      order (asc|desc), limit (1-100), offset
    GET /api/v1/promotion-templates/<template_id>
"""

import logging

from flask import Blueprint, jsonify, request

from badger.blueprints import query_bool, register_error_handlers
from badger.services import template_service

logger = logging.getLogger(__name__)

template_bp = Blueprint("promotion_template", __name__, url_prefix="/api/v1")
register_error_handlers(template_bp)


@template_bp.route("/promotion-templates", methods=["GET"])
def list_templates():
    result = template_service.list_templates(
        path=request.args.get("path") or None,
        from_level=request.args.get("from_level") or None,
        to_level=request.args.get("to_level") or None,
        is_active=query_bool("is_active", True),
        sort=request.args.get("sort", "name"),
        order=request.args.get("order", "asc"),
        limit=request.args.get("limit", 20, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify(result), 200


@template_bp.route("/promotion-templates/<template_id>", methods=["GET"])
def get_template(template_id: str):
    return jsonify(template_service.get_template(template_id)), 200
