"""
Badger — audit domain model.

Models:
    - AuditLog: immutable, append-only trail of promotion engine events.
"""

import json
from datetime import datetime, timezone

from badger.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_EVENT_TYPES = {
    "promotion.create",
    "promotion.badges_added",
    "promotion.badges_removed",
    "promotion.submit",
    "promotion.approve",
    "promotion.reject",
    "promotion.delete",
}


class AuditLog(db.Model):
    """
    One row per engine event.  ``payload_json`` carries the old→new status
    and the badge ids touched by the event.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_actor_event_created", "actor_id", "event_type", "created_at"),
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    event_type = db.Column(db.String(60), nullable=False, comment="promotion.submit | …")
    entity_type = db.Column(db.String(30), nullable=False, default="promotion")
    # Not a FK: the trail outlives deleted promotions.
    entity_id = db.Column(db.String(36), nullable=False)
    payload_json = db.Column(db.Text, nullable=False, default="{}")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def payload(self) -> dict:
        try:
            return json.loads(self.payload_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.event_type} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    event_type: str,
    entity_id: str,
    actor_id: str | None = None,
    entity_type: str = "promotion",
    payload: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control: the row commits or rolls back with the event it
    describes.
    """
    if event_type not in AUDIT_EVENT_TYPES:
        raise ValueError(f"Unknown audit event_type: {event_type}")

    log = AuditLog(
        actor_id=actor_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        payload_json=json.dumps(payload or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
