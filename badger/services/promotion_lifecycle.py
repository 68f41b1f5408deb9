"""
Promotion Lifecycle Controller.

Drives promotion status transitions and their cascades onto reservations
and badge-application statuses:

    submit   draft → submitted    gate: eligibility.evaluate(...).all_satisfied
                                  reserved applications → used_in_promotion
    approve  submitted → approved reservations → consumed=True (permanent)
    reject   submitted → rejected reservations deleted,
                                  applications → accepted
    delete   draft → (gone)       reservations cascade-deleted

Each call is one transaction: the promotion row is locked, preconditions
are checked (existence → identity → status), the status change and its
cascade are flushed together with an audit row, and the whole unit commits
or rolls back.  A transition applied twice fails loudly with
InvalidStateError carrying the current status; it is never a silent no-op.

Usage:
    from badger.services.promotion_lifecycle import submit, approve

    submit(promotion_id, caller_id)
    approve(promotion_id, reviewer_id, note="Well documented")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from badger.core.exceptions import ValidationError, ValidationFailedError
from badger.models import db
from badger.models.audit import write_audit
from badger.models.catalog import BadgeApplication
from badger.models.promotion import Promotion, PromotionBadge
from badger.services.eligibility import evaluate_promotion
from badger.services.helpers.promotion_guards import (
    load_for_update,
    require_admin,
    require_owner,
    require_status,
)

logger = logging.getLogger(__name__)

DEFAULT_REASON_MAX_LENGTH = 2000


def _reason_max_length() -> int:
    return int(current_app.config.get("REVIEW_REASON_MAX_LENGTH", DEFAULT_REASON_MAX_LENGTH))


def _clean_text(value, field: str, *, required: bool) -> str | None:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid type"})
    text = value.strip()
    if required and not text:
        raise ValidationError(f"{field} is required", details={field: "required"})
    limit = _reason_max_length()
    if len(text) > limit:
        raise ValidationError(
            f"{field} must be at most {limit} characters",
            details={field: f"max {limit} characters"},
        )
    return text or None


def _reserved_applications(promotion_id: str) -> list[BadgeApplication]:
    return db.session.execute(
        select(BadgeApplication)
        .join(PromotionBadge, PromotionBadge.badge_application_id == BadgeApplication.id)
        .where(
            PromotionBadge.promotion_id == promotion_id,
            PromotionBadge.consumed.is_(False),
        )
        .with_for_update()
    ).scalars().all()


def _log_transition(promotion: Promotion, action: str, previous: str, actor_id: str) -> None:
    logger.info(
        "Promotion %s: %s -> %s", action, previous, promotion.status,
        extra={"promotion_id": promotion.id, "actor_id": actor_id,
               "event_type": f"promotion.{action}"},
    )


# ── Transitions ────────────────────────────────────────────────────────────────


def submit(promotion_id: str, caller_id: str) -> dict:
    """Submit a draft promotion for review.

    Raises:
        NotFoundError, ForbiddenError, InvalidStateError,
        ValidationFailedError: listing exactly the unsatisfied rules.
    """
    try:
        promotion = load_for_update(promotion_id)
        require_owner(promotion, caller_id, action="submit")
        target = require_status(promotion, "submit")

        result = evaluate_promotion(promotion)
        if not result["all_satisfied"]:
            raise ValidationFailedError(promotion.id, result["missing"])

        previous = promotion.status
        promotion.status = target
        promotion.submitted_at = datetime.now(timezone.utc)

        locked = []
        for application in _reserved_applications(promotion.id):
            application.status = "used_in_promotion"
            locked.append(application.id)

        write_audit(
            event_type="promotion.submit",
            entity_id=promotion.id,
            actor_id=caller_id,
            payload={
                "status": {"old": previous, "new": promotion.status},
                "badge_application_ids": locked,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    _log_transition(promotion, "submit", previous, caller_id)
    return promotion.to_dict()


def approve(promotion_id: str, reviewer_id: str, note: str | None = None) -> dict:
    """Approve a submitted promotion; its reservations become permanent."""
    try:
        promotion = load_for_update(promotion_id)
        require_admin(reviewer_id, action="approve")
        target = require_status(promotion, "approve")
        note = _clean_text(note, "note", required=False)

        previous = promotion.status
        now = datetime.now(timezone.utc)
        promotion.status = target
        promotion.reviewed_by = reviewer_id
        promotion.reviewed_at = now
        promotion.review_reason = note

        consumed = []
        for res in promotion.reservations:
            if res.consumed:
                continue
            res.consumed = True
            consumed.append(res.badge_application_id)
            # Normally already set at submit; keep the invariant regardless.
            if res.badge_application.status != "used_in_promotion":
                res.badge_application.status = "used_in_promotion"

        write_audit(
            event_type="promotion.approve",
            entity_id=promotion.id,
            actor_id=reviewer_id,
            payload={
                "status": {"old": previous, "new": promotion.status},
                "consumed_badge_application_ids": consumed,
                "note": note,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    _log_transition(promotion, "approve", previous, reviewer_id)
    return promotion.to_dict()


def reject(promotion_id: str, reviewer_id: str, reason: str) -> dict:
    """Reject a submitted promotion; its badges become reservable again."""
    try:
        promotion = load_for_update(promotion_id)
        require_admin(reviewer_id, action="reject")
        target = require_status(promotion, "reject")
        reason = _clean_text(reason, "reason", required=True)

        previous = promotion.status
        promotion.status = target
        promotion.reviewed_by = reviewer_id
        promotion.reviewed_at = datetime.now(timezone.utc)
        promotion.review_reason = reason

        released = []
        for res in list(promotion.reservations):
            application = res.badge_application
            if application is not None and application.status == "used_in_promotion":
                application.status = "accepted"
            released.append(res.badge_application_id)
            promotion.reservations.remove(res)

        write_audit(
            event_type="promotion.reject",
            entity_id=promotion.id,
            actor_id=reviewer_id,
            payload={
                "status": {"old": previous, "new": promotion.status},
                "released_badge_application_ids": released,
                "reason": reason,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    _log_transition(promotion, "reject", previous, reviewer_id)
    return promotion.to_dict()


def delete(promotion_id: str, caller_id: str) -> None:
    """Delete a draft promotion together with its reservations."""
    try:
        promotion = load_for_update(promotion_id)
        require_owner(promotion, caller_id, action="delete")
        require_status(promotion, "delete")

        released = [r.badge_application_id for r in promotion.reservations]
        db.session.delete(promotion)
        db.session.flush()

        write_audit(
            event_type="promotion.delete",
            entity_id=promotion_id,
            actor_id=caller_id,
            payload={"status": {"old": "draft", "new": None},
                     "released_badge_application_ids": released},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Promotion deleted",
        extra={"promotion_id": promotion_id, "actor_id": caller_id,
               "event_type": "promotion.delete"},
    )
