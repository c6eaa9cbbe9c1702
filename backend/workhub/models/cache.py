from __future__ import annotations

from ..extensions import db
from workhub.time_utils import to_utc_z, utcnow


class AnalyticsCache(db.Model):
    """
    Persisted tier of the analytics cache.

    One row per (org_id, cache_type, scope_key); scope_key is the project id
    for project summaries and "" for organization-wide entries.
    """
    __tablename__ = "analytics_cache"
    __table_args__ = (
        db.UniqueConstraint("org_id", "cache_type", "scope_key", name="uq_analytics_cache_org_type_scope"),
        db.Index("ix_analytics_cache_expires_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    cache_type = db.Column(db.String(64), nullable=False)
    scope_key = db.Column(db.String(128), nullable=False, default="")
    data = db.Column(db.JSON, nullable=False)
    computed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    compute_duration_ms = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "cache_type": self.cache_type,
            "scope_key": self.scope_key,
            "computed_at": to_utc_z(self.computed_at),
            "expires_at": to_utc_z(self.expires_at),
            "compute_duration_ms": self.compute_duration_ms,
        }
