from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from workhub.time_utils import to_utc_z, utcnow


class ImmutableEventError(Exception):
    """Raised when code attempts to modify or delete an audit event."""


class Event(db.Model):
    """
    Append-only audit record.

    One row per state transition or notable mutation. Rows are never updated
    or deleted; the mapper listeners below reject both at flush time.
    """
    __tablename__ = "events"
    __table_args__ = (
        db.Index("ix_events_entity", "entity_type", "entity_id"),
        db.Index("ix_events_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Event id={self.id} {self.event_type} {self.entity_type}:{self.entity_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }


def _reject_update(mapper, connection, target):
    raise ImmutableEventError(f"Audit event {target.id} is immutable and cannot be updated")


def _reject_delete(mapper, connection, target):
    raise ImmutableEventError(f"Audit event {target.id} is immutable and cannot be deleted")


event.listen(Event, "before_update", _reject_update)
event.listen(Event, "before_delete", _reject_delete)
