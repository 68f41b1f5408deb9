"""
Badger — promotion domain model.

Models:
    - PromotionTemplate: badge-count requirements for one career step.
    - Promotion: a user's request to move along a career path.
    - PromotionBadge: reservation of one accepted badge application by
      one promotion.

Reservation invariant:
    At most one ``promotion_badges`` row with ``consumed = false`` exists per
    badge application.  It is enforced by the partial unique index
    ``ux_promotion_badges_badge_application_unconsumed``, not by application
    code, so two concurrent reservations of the same badge cannot both
    commit.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.orm import validates

from badger.core.exceptions import ValidationError
from badger.models import db
from badger.models.catalog import BADGE_CATEGORIES, BADGE_LEVELS

# ── Constants ────────────────────────────────────────────────────────────────

PROMOTION_PATHS = frozenset({"technical", "financial", "management"})

# "any" is a pseudo-category accepted only in template rules.
ANY_CATEGORY = "any"
RULE_CATEGORIES = BADGE_CATEGORIES | {ANY_CATEGORY}

PROMOTION_STATUSES = frozenset({"draft", "submitted", "approved", "rejected"})

PROMOTION_TRANSITIONS = {
    "submit": {"from": ["draft"], "to": "submitted"},
    "approve": {"from": ["submitted"], "to": "approved"},
    "reject": {"from": ["submitted"], "to": "rejected"},
    "delete": {"from": ["draft"], "to": None},
}

# Ledger mutations share the draft-only precondition.
EDITABLE_STATUSES = frozenset({"draft"})


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ── Typed rules ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TemplateRule:
    """One ``{category, level, count}`` requirement of a template."""

    category: str
    level: str
    count: int

    @property
    def is_any(self) -> bool:
        return self.category == ANY_CATEGORY

    def to_dict(self) -> dict:
        return {"category": self.category, "level": self.level, "count": self.count}


def parse_rule(raw, index: int = 0) -> TemplateRule:
    """Validate one raw rule mapping into a TemplateRule.

    Raises:
        ValidationError: unknown category/level or a non-positive count.
    """
    if not isinstance(raw, dict):
        raise ValidationError(
            f"Rule #{index} must be an object",
            details={f"rules[{index}]": "expected {category, level, count}"},
        )
    category = raw.get("category")
    level = raw.get("level")
    count = raw.get("count")

    if category not in RULE_CATEGORIES:
        raise ValidationError(
            f"Rule #{index} has invalid category {category!r}",
            details={f"rules[{index}].category": f"must be one of {sorted(RULE_CATEGORIES)}"},
        )
    if level not in BADGE_LEVELS:
        raise ValidationError(
            f"Rule #{index} has invalid level {level!r}",
            details={f"rules[{index}].level": f"must be one of {sorted(BADGE_LEVELS)}"},
        )
    # bool is an int subclass; True must not pass as a count of 1
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValidationError(
            f"Rule #{index} has invalid count {count!r}",
            details={f"rules[{index}].count": "must be a positive integer"},
        )
    return TemplateRule(category=category, level=level, count=count)


def parse_rules(raw_rules) -> list[TemplateRule]:
    """Validate a raw rules array (as stored in JSON) into typed rules."""
    if not isinstance(raw_rules, list) or not raw_rules:
        raise ValidationError(
            "Template rules must be a non-empty list",
            details={"rules": "at least one rule is required"},
        )
    return [parse_rule(r, i) for i, r in enumerate(raw_rules)]


# ═════════════════════════════════════════════════════════════════════════════
# PromotionTemplate
# ═════════════════════════════════════════════════════════════════════════════


class PromotionTemplate(db.Model):
    __tablename__ = "promotion_templates"
    __table_args__ = (
        db.Index("ix_promotion_templates_path_levels", "path", "from_level", "to_level"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    path = db.Column(db.String(20), nullable=False, comment="technical | financial | management")
    from_level = db.Column(db.String(20), nullable=False)
    to_level = db.Column(db.String(20), nullable=False)
    rules = db.Column(db.JSON, nullable=False, comment="[{category, level, count}]")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    @validates("path")
    def _validate_path(self, key, value):
        if value not in PROMOTION_PATHS:
            raise ValidationError(
                f"Invalid path {value!r}",
                details={"path": f"must be one of {sorted(PROMOTION_PATHS)}"},
            )
        return value

    @validates("rules")
    def _validate_rules(self, key, value):
        return [r.to_dict() for r in parse_rules(value)]

    @property
    def typed_rules(self) -> list[TemplateRule]:
        return parse_rules(self.rules)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "rules": list(self.rules or []),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name}

    def __repr__(self) -> str:
        return f"<PromotionTemplate {self.name} {self.path} {self.from_level}->{self.to_level}>"


# ═════════════════════════════════════════════════════════════════════════════
# Promotion
# ═════════════════════════════════════════════════════════════════════════════


class Promotion(db.Model):
    """
    A promotion request built from a template.

    Status machine (forward only):
        draft → submitted → approved | rejected

    Owned by ``created_by`` while draft; administrator-decided once submitted.
    A rejected promotion is never resubmitted; a new one is created.
    """

    __tablename__ = "promotions"
    __table_args__ = (
        db.Index("ix_promotions_created_by_status", "created_by", "status"),
        db.Index("ix_promotions_template", "template_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    template_id = db.Column(
        db.String(36), db.ForeignKey("promotion_templates.id"), nullable=False,
    )
    created_by = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    path = db.Column(db.String(20), nullable=False)
    from_level = db.Column(db.String(20), nullable=False)
    to_level = db.Column(db.String(20), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | submitted | approved | rejected",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_reason = db.Column(db.Text, nullable=True)

    template = db.relationship("PromotionTemplate", lazy="joined")
    reservations = db.relationship(
        "PromotionBadge",
        back_populates="promotion",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PromotionBadge.assigned_at",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "created_by": self.created_by,
            "path": self.path,
            "from_level": self.from_level,
            "to_level": self.to_level,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_reason": self.review_reason,
        }

    def __repr__(self) -> str:
        return f"<Promotion {self.id} {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# PromotionBadge (reservation)
# ═════════════════════════════════════════════════════════════════════════════


class PromotionBadge(db.Model):
    """
    Reservation of one badge application by one promotion.

    Created only while the promotion is draft.  ``consumed`` flips to True on
    approval; the row is deleted on removal, rejection or promotion delete.
    """

    __tablename__ = "promotion_badges"
    __table_args__ = (
        db.Index(
            "ux_promotion_badges_badge_application_unconsumed",
            "badge_application_id",
            unique=True,
            postgresql_where=text("consumed = false"),
            sqlite_where=text("consumed = 0"),
        ),
        db.Index("ix_promotion_badges_promotion", "promotion_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    promotion_id = db.Column(
        db.String(36),
        db.ForeignKey("promotions.id", ondelete="CASCADE"),
        nullable=False,
    )
    badge_application_id = db.Column(
        db.String(36),
        db.ForeignKey("badge_applications.id"),
        nullable=False,
    )
    assigned_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    consumed = db.Column(db.Boolean, nullable=False, default=False)

    promotion = db.relationship("Promotion", back_populates="reservations")
    badge_application = db.relationship("BadgeApplication", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "promotion_id": self.promotion_id,
            "badge_application_id": self.badge_application_id,
            "assigned_by": self.assigned_by,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "consumed": self.consumed,
        }

    def __repr__(self) -> str:
        return f"<PromotionBadge {self.promotion_id}/{self.badge_application_id} consumed={self.consumed}>"
