"""
Badger — catalog domain model.

Models:
    - CatalogBadge: a badge users can apply for (category + level tag).
    - BadgeApplication: a user's claim on a catalog badge.

The promotion engine only reads applications and flips ``status`` between
``accepted`` and ``used_in_promotion``; every other column is owned by the
catalog/application CRUD layer.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import validates

from badger.core.exceptions import ValidationError
from badger.models import db

# ── Constants ────────────────────────────────────────────────────────────────

BADGE_CATEGORIES = frozenset({"technical", "organizational", "softskilled"})

# Levels are incomparable tags, not an ordered scale.
BADGE_LEVELS = frozenset({"gold", "silver", "bronze"})

CATALOG_BADGE_STATUSES = frozenset({"active", "inactive"})

BADGE_APPLICATION_STATUSES = frozenset({
    "draft",
    "submitted",
    "accepted",
    "rejected",
    "used_in_promotion",
})


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class CatalogBadge(db.Model):
    __tablename__ = "catalog_badges"
    __table_args__ = (
        db.Index("ix_catalog_badges_category_level", "category", "level"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(
        db.String(20), nullable=False,
        comment="technical | organizational | softskilled",
    )
    level = db.Column(db.String(10), nullable=False, comment="gold | silver | bronze")
    status = db.Column(db.String(10), nullable=False, default="active")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @validates("category", "level", "status")
    def _validate_enums(self, key, value):
        allowed = {
            "category": BADGE_CATEGORIES,
            "level": BADGE_LEVELS,
            "status": CATALOG_BADGE_STATUSES,
        }[key]
        if value not in allowed:
            raise ValidationError(
                f"Invalid {key} {value!r}",
                details={key: f"must be one of {sorted(allowed)}"},
            )
        return value

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "level": self.level,
        }

    def __repr__(self) -> str:
        return f"<CatalogBadge {self.title} {self.category}/{self.level}>"


class BadgeApplication(db.Model):
    """
    A user's application for a catalog badge.

    Only ``accepted`` applications can be reserved by a promotion.  Once the
    promotion is submitted the application moves to ``used_in_promotion``;
    a rejection moves it back to ``accepted``.
    """

    __tablename__ = "badge_applications"
    __table_args__ = (
        db.Index("ix_badge_applications_applicant", "applicant_id"),
        db.Index("ix_badge_applications_status", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    applicant_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    catalog_badge_id = db.Column(
        db.String(36),
        db.ForeignKey("catalog_badges.id"),
        nullable=False,
        index=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | submitted | accepted | rejected | used_in_promotion",
    )
    date_of_fulfillment = db.Column(db.Date, nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    catalog_badge = db.relationship("CatalogBadge", lazy="joined")

    @validates("status")
    def _validate_status(self, key, value):
        if value not in BADGE_APPLICATION_STATUSES:
            raise ValidationError(
                f"Invalid badge application status {value!r}",
                details={"status": f"must be one of {sorted(BADGE_APPLICATION_STATUSES)}"},
            )
        return value

    @property
    def owner_id(self) -> str:
        return self.applicant_id

    @property
    def category(self) -> str | None:
        return self.catalog_badge.category if self.catalog_badge else None

    @property
    def level(self) -> str | None:
        return self.catalog_badge.level if self.catalog_badge else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "applicant_id": self.applicant_id,
            "catalog_badge_id": self.catalog_badge_id,
            "status": self.status,
            "date_of_fulfillment": (
                self.date_of_fulfillment.isoformat() if self.date_of_fulfillment else None
            ),
            "catalog_badge": self.catalog_badge.to_summary() if self.catalog_badge else None,
        }

    def __repr__(self) -> str:
        return f"<BadgeApplication {self.id} {self.status}>"
