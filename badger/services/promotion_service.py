"""
Promotion Service — creation and read models.

Creates draft promotions from active templates and serves the list/detail
views.  Status transitions live in ``promotion_lifecycle``; badge
reservations live in ``reservation_ledger``.

Visibility:
    Non-admin callers see only promotions they created.  Someone else's
    promotion reads as NotFoundError, never ForbiddenError, so existence is
    not disclosed.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from badger.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from badger.models import db
from badger.models.audit import write_audit
from badger.models.auth import User
from badger.models.promotion import (
    PROMOTION_PATHS,
    PROMOTION_STATUSES,
    Promotion,
    PromotionBadge,
)
from badger.services.template_service import get_template_or_404

logger = logging.getLogger(__name__)

_SORT_FIELDS = {
    "created_at": Promotion.created_at,
    "submitted_at": Promotion.submitted_at,
}


def create_promotion(template_id: str, caller_id: str) -> dict:
    """Start a draft promotion from an active template.

    path/from_level/to_level are copied from the template at creation time.

    Raises:
        ValidationError: missing caller or template id.
        ForbiddenError:  caller is not a known user.
        NotFoundError:   template missing or inactive.
    """
    if not caller_id:
        raise ValidationError("caller_id is required", details={"caller_id": "required"})
    if not template_id:
        raise ValidationError("template_id is required", details={"template_id": "required"})

    if db.session.get(User, caller_id) is None:
        raise ForbiddenError(caller_id, "create", "unknown user")

    try:
        template = get_template_or_404(template_id, active_only=True)
        promotion = Promotion(
            template_id=template.id,
            created_by=caller_id,
            path=template.path,
            from_level=template.from_level,
            to_level=template.to_level,
            status="draft",
        )
        db.session.add(promotion)
        db.session.flush()

        write_audit(
            event_type="promotion.create",
            entity_id=promotion.id,
            actor_id=caller_id,
            payload={"template_id": template.id},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Promotion created",
        extra={"promotion_id": promotion.id, "actor_id": caller_id,
               "event_type": "promotion.create"},
    )
    return promotion.to_dict()


def get_visible_promotion(promotion_id: str, caller_id: str | None, is_admin: bool = False) -> Promotion:
    """Load a promotion the caller is allowed to read, or raise NotFoundError."""
    promotion = db.session.get(Promotion, promotion_id)
    if promotion is None or (not is_admin and promotion.created_by != caller_id):
        raise NotFoundError("Promotion", promotion_id)
    return promotion


def get_promotion(promotion_id: str, caller_id: str | None, is_admin: bool = False) -> dict:
    """Return promotion detail with template rules and reserved badges."""
    promotion = get_visible_promotion(promotion_id, caller_id, is_admin)

    data = promotion.to_dict()
    data["template"] = promotion.template.to_dict()
    data["badge_applications"] = [
        {**res.badge_application.to_dict(), "consumed": res.consumed}
        for res in promotion.reservations
    ]
    return data


def list_promotions(
    caller_id: str | None,
    *,
    is_admin: bool = False,
    status: str | None = None,
    path: str | None = None,
    template_id: str | None = None,
    created_by: str | None = None,
    sort: str = "created_at",
    order: str = "desc",
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """List promotions with filters, sorting and limit/offset pagination.

    Non-admins are always restricted to their own promotions; ``created_by``
    is honoured for administrators only.

    Returns:
        {"data": [promotion_dict + badge_count + template summary],
         "pagination": {"total", "limit", "offset", "has_more"}}
    """
    if status is not None and status not in PROMOTION_STATUSES:
        raise ValidationError(
            f"Invalid status {status!r}",
            details={"status": sorted(PROMOTION_STATUSES)},
        )
    if path is not None and path not in PROMOTION_PATHS:
        raise ValidationError(f"Invalid path {path!r}", details={"path": sorted(PROMOTION_PATHS)})
    if sort not in _SORT_FIELDS:
        raise ValidationError(f"Invalid sort field {sort!r}", details={"sort": sorted(_SORT_FIELDS)})
    if order not in ("asc", "desc"):
        raise ValidationError(f"Invalid order {order!r}", details={"order": ["asc", "desc"]})
    if not 1 <= limit <= 100:
        raise ValidationError("limit must be between 1 and 100", details={"limit": limit})
    if offset < 0:
        raise ValidationError("offset must be non-negative", details={"offset": offset})

    stmt = select(Promotion)
    if not is_admin:
        stmt = stmt.where(Promotion.created_by == caller_id)
    elif created_by:
        stmt = stmt.where(Promotion.created_by == created_by)
    if status:
        stmt = stmt.where(Promotion.status == status)
    if path:
        stmt = stmt.where(Promotion.path == path)
    if template_id:
        stmt = stmt.where(Promotion.template_id == template_id)

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()

    col = _SORT_FIELDS[sort]
    stmt = stmt.order_by(col.asc() if order == "asc" else col.desc(), Promotion.id)
    promotions = db.session.execute(stmt.limit(limit).offset(offset)).scalars().unique().all()

    counts = {}
    if promotions:
        counts = dict(db.session.execute(
            select(PromotionBadge.promotion_id, func.count(PromotionBadge.id))
            .where(PromotionBadge.promotion_id.in_([p.id for p in promotions]))
            .group_by(PromotionBadge.promotion_id)
        ).all())

    data = []
    for p in promotions:
        item = p.to_dict()
        item["badge_count"] = counts.get(p.id, 0)
        item["template"] = p.template.to_summary()
        data.append(item)

    return {
        "data": data,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        },
    }
