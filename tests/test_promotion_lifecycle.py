"""
Tests: Promotion lifecycle — submit / approve / reject / delete.

Each transition is checked for its status precondition, its identity
check and the cascade it applies to reservations and badge-application
statuses.  A transition applied twice must fail with InvalidStateError
carrying the current status.
"""

import pytest

from badger.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    ValidationFailedError,
)
from badger.models import db as _db
from badger.models.audit import AuditLog
from badger.models.catalog import BadgeApplication
from badger.models.promotion import Promotion, PromotionBadge
from badger.services import promotion_lifecycle, promotion_service, reservation_ledger


def _status(ba_id):
    return _db.session.get(BadgeApplication, ba_id).status


@pytest.fixture()
def template(make_template):
    return make_template([("technical", "gold", 2), ("any", "silver", 1)])


@pytest.fixture()
def ready_promotion(member, template, make_badge, make_promotion):
    """Draft promotion whose reservations satisfy every rule."""
    promo = make_promotion(member, template)
    ids = [
        make_badge(member, "technical", "gold"),
        make_badge(member, "technical", "gold"),
        make_badge(member, "softskilled", "silver"),
    ]
    reservation_ledger.add_badges(promo.id, ids, member.id)
    return promo, ids


@pytest.fixture()
def submitted_promotion(member, ready_promotion):
    promo, ids = ready_promotion
    promotion_lifecycle.submit(promo.id, member.id)
    return promo, ids


# ── create ───────────────────────────────────────────────────────────────────


def test_create_copies_template_fields(member, make_template):
    tpl = make_template([("technical", "gold", 1)], path="management",
                        from_level="M1", to_level="M2")

    data = promotion_service.create_promotion(tpl.id, member.id)

    assert data["status"] == "draft"
    assert (data["path"], data["from_level"], data["to_level"]) == ("management", "M1", "M2")
    assert data["created_by"] == member.id
    assert AuditLog.query.filter_by(event_type="promotion.create").count() == 1


def test_create_from_inactive_template_is_not_found(member, make_template):
    tpl = make_template([("technical", "gold", 1)], is_active=False)

    with pytest.raises(NotFoundError):
        promotion_service.create_promotion(tpl.id, member.id)


def test_create_by_unknown_user_is_forbidden(template):
    with pytest.raises(ForbiddenError):
        promotion_service.create_promotion(template.id, "ghost")


# ── submit ───────────────────────────────────────────────────────────────────


def test_submit_locks_reserved_badges(member, ready_promotion):
    promo, ids = ready_promotion

    data = promotion_lifecycle.submit(promo.id, member.id)

    assert data["status"] == "submitted"
    assert data["submitted_at"] is not None
    assert all(_status(i) == "used_in_promotion" for i in ids)


def test_submit_rejected_when_rules_unsatisfied(member, template, make_badge, make_promotion):
    promo = make_promotion(member, template)
    ba = make_badge(member, "technical", "gold")
    reservation_ledger.add_badges(promo.id, [ba], member.id)

    with pytest.raises(ValidationFailedError) as exc_info:
        promotion_lifecycle.submit(promo.id, member.id)

    missing = exc_info.value.missing
    assert [(m["category"], m["level"]) for m in missing] == [
        ("technical", "gold"), ("any", "silver"),
    ]
    assert missing[0]["satisfied_count"] == 1
    assert missing[0]["deficit"] == 1
    assert _db.session.get(Promotion, promo.id).status == "draft"
    assert _status(ba) == "accepted"


def test_submit_lists_only_unsatisfied_rules(member, template, make_badge, make_promotion):
    promo = make_promotion(member, template)
    ids = [make_badge(member, "technical", "gold") for _ in range(2)]
    reservation_ledger.add_badges(promo.id, ids, member.id)

    with pytest.raises(ValidationFailedError) as exc_info:
        promotion_lifecycle.submit(promo.id, member.id)

    assert exc_info.value.missing == [{
        "category": "any", "level": "silver",
        "required": 1, "satisfied_count": 0, "deficit": 1,
    }]


def test_submit_by_non_owner_is_forbidden(other_member, ready_promotion):
    promo, _ = ready_promotion

    with pytest.raises(ForbiddenError):
        promotion_lifecycle.submit(promo.id, other_member.id)


def test_submit_twice_fails_with_current_status(member, submitted_promotion):
    promo, _ = submitted_promotion

    with pytest.raises(InvalidStateError) as exc_info:
        promotion_lifecycle.submit(promo.id, member.id)

    assert exc_info.value.current_status == "submitted"


def test_submit_missing_promotion():
    with pytest.raises(NotFoundError):
        promotion_lifecycle.submit("missing", "anyone")


def test_submitted_reservations_are_frozen(member, submitted_promotion):
    promo, ids = submitted_promotion

    with pytest.raises(InvalidStateError):
        reservation_ledger.remove_badges(promo.id, [ids[0]], member.id)


# ── approve ──────────────────────────────────────────────────────────────────


def test_approve_consumes_reservations(admin, submitted_promotion):
    promo, ids = submitted_promotion

    data = promotion_lifecycle.approve(promo.id, admin.id, note="  Well documented  ")

    assert data["status"] == "approved"
    assert data["reviewed_by"] == admin.id
    assert data["review_reason"] == "Well documented"
    rows = PromotionBadge.query.filter_by(promotion_id=promo.id).all()
    assert len(rows) == 3
    assert all(r.consumed for r in rows)
    assert all(_status(i) == "used_in_promotion" for i in ids)


def test_approve_without_note(admin, submitted_promotion):
    promo, _ = submitted_promotion

    data = promotion_lifecycle.approve(promo.id, admin.id)

    assert data["review_reason"] is None


def test_approve_requires_admin(member, submitted_promotion):
    promo, _ = submitted_promotion

    with pytest.raises(ForbiddenError):
        promotion_lifecycle.approve(promo.id, member.id)


def test_approve_draft_is_invalid_state(admin, ready_promotion):
    promo, _ = ready_promotion

    with pytest.raises(InvalidStateError) as exc_info:
        promotion_lifecycle.approve(promo.id, admin.id)

    assert exc_info.value.current_status == "draft"


def test_approve_twice_fails_loudly(admin, submitted_promotion):
    promo, _ = submitted_promotion
    promotion_lifecycle.approve(promo.id, admin.id)

    with pytest.raises(InvalidStateError) as exc_info:
        promotion_lifecycle.approve(promo.id, admin.id)

    assert exc_info.value.current_status == "approved"


def test_approve_note_length_is_limited(app, admin, submitted_promotion):
    promo, _ = submitted_promotion
    too_long = "x" * (app.config["REVIEW_REASON_MAX_LENGTH"] + 1)

    with pytest.raises(ValidationError):
        promotion_lifecycle.approve(promo.id, admin.id, note=too_long)

    assert _db.session.get(Promotion, promo.id).status == "submitted"


# ── reject ───────────────────────────────────────────────────────────────────


def test_reject_releases_badges_for_reuse(
    member, admin, template, submitted_promotion, make_promotion,
):
    promo, ids = submitted_promotion

    data = promotion_lifecycle.reject(promo.id, admin.id, "Missing evidence")

    assert data["status"] == "rejected"
    assert data["review_reason"] == "Missing evidence"
    assert PromotionBadge.query.filter_by(promotion_id=promo.id).count() == 0
    assert all(_status(i) == "accepted" for i in ids)

    fresh = make_promotion(member, template)
    result = reservation_ledger.add_badges(fresh.id, ids, member.id)
    assert result["added_count"] == 3


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason(admin, submitted_promotion, reason):
    promo, ids = submitted_promotion

    with pytest.raises(ValidationError):
        promotion_lifecycle.reject(promo.id, admin.id, reason)

    assert _db.session.get(Promotion, promo.id).status == "submitted"
    assert all(_status(i) == "used_in_promotion" for i in ids)


def test_reject_reason_at_limit_is_accepted(app, admin, submitted_promotion):
    promo, _ = submitted_promotion
    reason = "r" * app.config["REVIEW_REASON_MAX_LENGTH"]

    data = promotion_lifecycle.reject(promo.id, admin.id, reason)

    assert len(data["review_reason"]) == app.config["REVIEW_REASON_MAX_LENGTH"]


def test_reject_reason_over_limit_is_refused(app, admin, submitted_promotion):
    promo, _ = submitted_promotion
    reason = "r" * (app.config["REVIEW_REASON_MAX_LENGTH"] + 1)

    with pytest.raises(ValidationError):
        promotion_lifecycle.reject(promo.id, admin.id, reason)


def test_reject_requires_admin(other_member, submitted_promotion):
    promo, _ = submitted_promotion

    with pytest.raises(ForbiddenError):
        promotion_lifecycle.reject(promo.id, other_member.id, "no")


def test_reject_after_approve_is_invalid_state(admin, submitted_promotion):
    promo, _ = submitted_promotion
    promotion_lifecycle.approve(promo.id, admin.id)

    with pytest.raises(InvalidStateError) as exc_info:
        promotion_lifecycle.reject(promo.id, admin.id, "changed my mind")

    assert exc_info.value.current_status == "approved"


# ── delete ───────────────────────────────────────────────────────────────────


def test_delete_draft_cascades_reservations(member, ready_promotion):
    promo, ids = ready_promotion
    promo_id = promo.id

    promotion_lifecycle.delete(promo_id, member.id)

    assert _db.session.get(Promotion, promo_id) is None
    assert PromotionBadge.query.filter_by(promotion_id=promo_id).count() == 0
    assert all(_status(i) == "accepted" for i in ids)
    audit = AuditLog.query.filter_by(event_type="promotion.delete").one()
    assert audit.entity_id == promo_id


def test_delete_submitted_is_invalid_state(member, submitted_promotion):
    promo, _ = submitted_promotion

    with pytest.raises(InvalidStateError) as exc_info:
        promotion_lifecycle.delete(promo.id, member.id)

    assert exc_info.value.current_status == "submitted"


def test_delete_by_non_owner_is_forbidden(other_member, ready_promotion):
    promo, _ = ready_promotion

    with pytest.raises(ForbiddenError):
        promotion_lifecycle.delete(promo.id, other_member.id)


def test_every_transition_writes_one_audit_row(member, admin, submitted_promotion):
    promo, _ = submitted_promotion
    promotion_lifecycle.approve(promo.id, admin.id)

    events = [
        a.event_type
        for a in AuditLog.query.filter_by(entity_id=promo.id).order_by(AuditLog.id).all()
    ]
    assert events == ["promotion.badges_added", "promotion.submit", "promotion.approve"]
