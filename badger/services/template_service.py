"""
Promotion Template Store.

Read-only lookup of promotion templates.  Template authoring belongs to the
admin CRUD layer; the engine only reads rules, and always reads the rules
as they are *now* (no per-promotion snapshot).

Usage:
    from badger.services import template_service

    tpl = template_service.get_template(template_id)
    rules = template_service.load_rules(template_id)
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from badger.core.exceptions import NotFoundError, ValidationError
from badger.models import db
from badger.models.promotion import PROMOTION_PATHS, PromotionTemplate, TemplateRule

logger = logging.getLogger(__name__)

_SORT_FIELDS = {
    "name": PromotionTemplate.name,
    "created_at": PromotionTemplate.created_at,
}


def get_template_or_404(template_id: str, *, active_only: bool = False) -> PromotionTemplate:
    """Load a template row or raise NotFoundError.

    Inactive templates read as missing when ``active_only`` is set, so a new
    promotion cannot be started from a retired template.
    """
    tpl = db.session.get(PromotionTemplate, template_id)
    if tpl is None or (active_only and not tpl.is_active):
        raise NotFoundError(
            "PromotionTemplate",
            template_id,
            reason="inactive" if tpl is not None else None,
        )
    return tpl


def get_template(template_id: str) -> dict:
    return get_template_or_404(template_id).to_dict()


def load_rules(template_id: str) -> list[TemplateRule]:
    """Return the typed rule snapshot for a template."""
    return get_template_or_404(template_id).typed_rules


def list_templates(
    *,
    path: str | None = None,
    from_level: str | None = None,
    to_level: str | None = None,
    is_active: bool | None = True,
    sort: str = "name",
    order: str = "asc",
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """List templates with optional filters and limit/offset pagination.

    Returns:
        {"data": [template_dict, ...],
         "pagination": {"total", "limit", "offset", "has_more"}}
    """
    if path is not None and path not in PROMOTION_PATHS:
        raise ValidationError(
            f"Invalid path {path!r}",
            details={"path": f"must be one of {sorted(PROMOTION_PATHS)}"},
        )
    if sort not in _SORT_FIELDS:
        raise ValidationError(f"Invalid sort field {sort!r}", details={"sort": sorted(_SORT_FIELDS)})
    if order not in ("asc", "desc"):
        raise ValidationError(f"Invalid order {order!r}", details={"order": ["asc", "desc"]})
    if not 1 <= limit <= 100:
        raise ValidationError("limit must be between 1 and 100", details={"limit": limit})
    if offset < 0:
        raise ValidationError("offset must be non-negative", details={"offset": offset})

    stmt = select(PromotionTemplate)
    if path is not None:
        stmt = stmt.where(PromotionTemplate.path == path)
    if from_level is not None:
        stmt = stmt.where(PromotionTemplate.from_level == from_level)
    if to_level is not None:
        stmt = stmt.where(PromotionTemplate.to_level == to_level)
    if is_active is not None:
        stmt = stmt.where(PromotionTemplate.is_active == is_active)

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()

    col = _SORT_FIELDS[sort]
    stmt = stmt.order_by(col.asc() if order == "asc" else col.desc(), PromotionTemplate.id)
    rows = db.session.execute(stmt.limit(limit).offset(offset)).scalars().all()

    return {
        "data": [t.to_dict() for t in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        },
    }
