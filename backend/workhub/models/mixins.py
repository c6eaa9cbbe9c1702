from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..extensions import db
from workhub.time_utils import utcnow


def money_str(value: Optional[Decimal]) -> Optional[str]:
    """Render a Numeric(…, 2) value as a fixed two-decimal string."""
    if value is None:
        return None
    return f"{Decimal(value):.2f}"


class TimestampMixin:
    # Python-side defaults keep sub-second ordering on SQLite
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SoftDeleteMixin:
    """Tombstone column. Rows are never physically removed by services."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
