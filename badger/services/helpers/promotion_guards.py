"""
Promotion precondition guards.

Every ledger and lifecycle operation starts the same way: load the promotion
(row-locked for the rest of the transaction), then check identity, then
check status.  Centralising the sequence here keeps the check order, and
therefore which error a caller sees first, identical across operations:

    1. NotFoundError      — promotion missing
    2. ForbiddenError     — caller is not the owner / not an administrator
    3. InvalidStateError  — status precondition fails (reports current status)

Usage:
    promotion = load_for_update(promotion_id)
    require_owner(promotion, caller_id, action="submit")
    require_status(promotion, "submit")
"""

import logging

from badger.core.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from badger.models import db
from badger.models.auth import User
from badger.models.promotion import EDITABLE_STATUSES, PROMOTION_TRANSITIONS, Promotion

logger = logging.getLogger(__name__)


def load_for_update(promotion_id: str) -> Promotion:
    """Fetch a promotion with a row lock (``SELECT ... FOR UPDATE``).

    The lock serialises concurrent transitions on the same promotion on
    PostgreSQL; SQLite ignores the clause.
    """
    promotion = db.session.get(Promotion, promotion_id, with_for_update=True)
    if promotion is None:
        raise NotFoundError("Promotion", promotion_id)
    return promotion


def require_owner(promotion: Promotion, caller_id: str | None, *, action: str) -> None:
    if not caller_id or promotion.created_by != caller_id:
        logger.warning(
            "Promotion ownership check failed",
            extra={"promotion_id": promotion.id, "actor_id": caller_id, "event_type": action},
        )
        raise ForbiddenError(caller_id, action, "only the promotion creator may do this")


def require_admin(user_id: str | None, *, action: str) -> User:
    """Return the administrator user or raise ForbiddenError."""
    user = db.session.get(User, user_id) if user_id else None
    if user is None or not user.is_admin:
        logger.warning(
            "Administrator check failed",
            extra={"actor_id": user_id, "event_type": action},
        )
        raise ForbiddenError(user_id, action, "administrator role required")
    return user


def require_status(promotion: Promotion, action: str) -> str:
    """Check the transition map; return the target status (None for delete)."""
    rule = PROMOTION_TRANSITIONS[action]
    if promotion.status not in rule["from"]:
        raise InvalidStateError(
            "Promotion",
            promotion.id,
            action=action,
            current_status=promotion.status,
            expected="|".join(rule["from"]),
        )
    return rule["to"]


def require_draft(promotion: Promotion, action: str) -> None:
    """Ledger mutations (add/remove badges) are allowed only on drafts."""
    if promotion.status not in EDITABLE_STATUSES:
        raise InvalidStateError(
            "Promotion",
            promotion.id,
            action=action,
            current_status=promotion.status,
            expected="|".join(sorted(EDITABLE_STATUSES)),
        )


def is_admin(user_id: str | None) -> bool:
    if not user_id:
        return False
    user = db.session.get(User, user_id)
    return bool(user and user.is_admin)
