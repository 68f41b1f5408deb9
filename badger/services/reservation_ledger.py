"""
Badge Reservation Ledger.

Maintains the promotion ↔ badge-application reservations
(``promotion_badges``).  An unconsumed badge application is reserved by at
most one promotion at a time; the partial unique index on
``badge_application_id WHERE consumed = false`` is the authority, the
pre-checks below only produce friendlier errors for the common case.

Batch semantics:
    add_badges / remove_badges are all-or-nothing.  The first offending id
    aborts the whole call, the transaction is rolled back and the error
    names that id.  Nothing is partially applied.

Status side effects:
    Reserving never touches ``badge_applications.status``; the status moves
    to ``used_in_promotion`` only on submit.  Removing a reservation reverts
    a ``used_in_promotion`` application back to ``accepted``.

Usage:
    from badger.services import reservation_ledger

    reservation_ledger.add_badges(promotion_id, ["ba-1", "ba-2"], caller_id)
    reservation_ledger.remove_badges(promotion_id, ["ba-2"], caller_id)
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from badger.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from badger.models import db
from badger.models.audit import write_audit
from badger.models.catalog import BadgeApplication
from badger.models.promotion import PromotionBadge
from badger.services.helpers.promotion_guards import load_for_update, require_draft, require_owner

logger = logging.getLogger(__name__)

DEFAULT_BATCH_MAX = 100

# (badge_application, caller_id) -> may this caller pledge this badge?
ReservePredicate = Callable[[BadgeApplication, str], bool]


def owned_by_caller(application: BadgeApplication, caller_id: str) -> bool:
    """Default reservation policy: callers may only pledge their own badges."""
    return application.owner_id == caller_id


# ── Private helpers ────────────────────────────────────────────────────────────


def _batch_max() -> int:
    return int(current_app.config.get("PROMOTION_BATCH_MAX", DEFAULT_BATCH_MAX))


def _validate_ids(badge_application_ids) -> list[str]:
    """Check the id batch shape: 1..N distinct non-empty strings."""
    if not isinstance(badge_application_ids, (list, tuple)) or not badge_application_ids:
        raise ValidationError(
            "badge_application_ids must be a non-empty list",
            details={"badge_application_ids": "required"},
        )
    limit = _batch_max()
    if len(badge_application_ids) > limit:
        raise ValidationError(
            f"At most {limit} badge applications per request",
            details={"badge_application_ids": f"max {limit} items"},
        )
    ids = []
    for raw in badge_application_ids:
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError(
                "badge_application_ids must contain non-empty string ids",
                details={"badge_application_ids": repr(raw)},
            )
        ids.append(raw.strip())
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ValidationError(
            "badge_application_ids contains duplicates",
            details={"duplicates": dupes},
        )
    return ids


def _active_reservations(badge_application_ids: list[str]) -> dict[str, PromotionBadge]:
    """Map badge_application_id → its unconsumed reservation, if any."""
    rows = db.session.execute(
        select(PromotionBadge).where(
            PromotionBadge.badge_application_id.in_(badge_application_ids),
            PromotionBadge.consumed.is_(False),
        )
    ).scalars().all()
    return {r.badge_application_id: r for r in rows}


def _first_foreign_reservation(promotion_id: str, badge_application_ids: list[str]) -> str | None:
    """After a lost race: which requested id is now held by another promotion?"""
    for ba_id, res in _active_reservations(badge_application_ids).items():
        if res.promotion_id != promotion_id:
            return ba_id
    return None


def _check_reservable(
    promotion_id: str,
    ids: list[str],
    caller_id: str,
    can_reserve: ReservePredicate,
) -> None:
    """Raise for the first id that cannot be reserved by this promotion."""
    applications = {
        a.id: a
        for a in db.session.execute(
            select(BadgeApplication)
            .where(BadgeApplication.id.in_(ids))
            .with_for_update()
        ).scalars().all()
    }
    held = _active_reservations(ids)

    for ba_id in ids:
        application = applications.get(ba_id)
        if application is None:
            raise NotFoundError("BadgeApplication", ba_id)
        if not can_reserve(application, caller_id):
            raise ForbiddenError(
                caller_id, "add_badges",
                f"badge application {ba_id} is not available to this caller",
            )
        if application.status != "accepted":
            raise ConflictError(
                "BadgeApplication", "id", ba_id,
                reason=f"not_accepted (status={application.status})",
            )
        existing = held.get(ba_id)
        if existing is not None:
            owner = "this promotion" if existing.promotion_id == promotion_id else "another promotion"
            raise ConflictError(
                "BadgeApplication", "id", ba_id,
                reason=f"already_reserved by {owner}",
            )


# ── Public API ─────────────────────────────────────────────────────────────────


def add_badges(
    promotion_id: str,
    badge_application_ids: list[str],
    caller_id: str,
    *,
    can_reserve: ReservePredicate | None = None,
) -> dict:
    """Reserve accepted badge applications for a draft promotion.

    Args:
        promotion_id:          Draft promotion owned by ``caller_id``.
        badge_application_ids: 1..PROMOTION_BATCH_MAX distinct ids.
        caller_id:             Opaque caller identity.
        can_reserve:           Capability predicate; defaults to
                               :func:`owned_by_caller`.

    Returns:
        {"promotion_id", "added_count", "badge_application_ids"}

    Raises:
        ValidationError:   malformed batch.
        NotFoundError:     promotion or a badge application missing.
        ForbiddenError:    caller does not own the promotion / a badge.
        InvalidStateError: promotion is not draft.
        ConflictError:     a badge is not accepted or is already reserved,
                           including a reservation race lost at commit time.
    """
    ids = _validate_ids(badge_application_ids)
    can_reserve = can_reserve or owned_by_caller

    try:
        promotion = load_for_update(promotion_id)
        require_owner(promotion, caller_id, action="add_badges")
        require_draft(promotion, "add_badges")

        _check_reservable(promotion.id, ids, caller_id, can_reserve)

        for ba_id in ids:
            db.session.add(PromotionBadge(
                promotion_id=promotion.id,
                badge_application_id=ba_id,
                assigned_by=caller_id,
                consumed=False,
            ))
        db.session.flush()

        write_audit(
            event_type="promotion.badges_added",
            entity_id=promotion.id,
            actor_id=caller_id,
            payload={"badge_application_ids": ids},
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        loser = _first_foreign_reservation(promotion_id, ids)
        if loser is None:
            # Not the reservation index (e.g. a foreign key); surface as-is.
            raise
        logger.warning(
            "Reservation race lost",
            extra={"promotion_id": promotion_id, "actor_id": caller_id,
                   "event_type": "promotion.badges_added"},
        )
        raise ConflictError("BadgeApplication", "id", loser, reason="already_reserved") from exc
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Badges reserved for promotion",
        extra={"promotion_id": promotion_id, "actor_id": caller_id,
               "event_type": "promotion.badges_added"},
    )
    return {"promotion_id": promotion_id, "added_count": len(ids), "badge_application_ids": ids}


def remove_badges(promotion_id: str, badge_application_ids: list[str], caller_id: str) -> dict:
    """Release reservations from a draft promotion.

    Every id must currently be reserved (unconsumed) by *this* promotion;
    otherwise the call fails with NotFoundError and nothing is removed.

    Returns:
        {"promotion_id", "removed_count", "badge_application_ids"}
    """
    ids = _validate_ids(badge_application_ids)

    try:
        promotion = load_for_update(promotion_id)
        require_owner(promotion, caller_id, action="remove_badges")
        require_draft(promotion, "remove_badges")

        reservations = {
            r.badge_application_id: r
            for r in db.session.execute(
                select(PromotionBadge).where(
                    PromotionBadge.promotion_id == promotion.id,
                    PromotionBadge.badge_application_id.in_(ids),
                    PromotionBadge.consumed.is_(False),
                )
            ).scalars().all()
        }
        for ba_id in ids:
            if ba_id not in reservations:
                raise NotFoundError(
                    "BadgeApplication", ba_id,
                    reason=f"not reserved by promotion {promotion.id}",
                )

        reverted = []
        for ba_id in ids:
            res = reservations[ba_id]
            application = res.badge_application
            if application is not None and application.status == "used_in_promotion":
                application.status = "accepted"
                reverted.append(ba_id)
            db.session.delete(res)
        db.session.flush()

        write_audit(
            event_type="promotion.badges_removed",
            entity_id=promotion.id,
            actor_id=caller_id,
            payload={"badge_application_ids": ids, "reverted_to_accepted": reverted},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Badges released from promotion",
        extra={"promotion_id": promotion_id, "actor_id": caller_id,
               "event_type": "promotion.badges_removed"},
    )
    return {"promotion_id": promotion_id, "removed_count": len(ids), "badge_application_ids": ids}


def list_reservations(promotion_id: str, *, include_consumed: bool = True) -> list[dict]:
    """Return the promotion's reservations, oldest first."""
    stmt = select(PromotionBadge).where(PromotionBadge.promotion_id == promotion_id)
    if not include_consumed:
        stmt = stmt.where(PromotionBadge.consumed.is_(False))
    rows = db.session.execute(
        stmt.order_by(PromotionBadge.assigned_at.asc(), PromotionBadge.id.asc())
    ).scalars().all()
    return [r.to_dict() for r in rows]
