# Overview: Two-tier analytics cache (process memory + analytics_cache table) with write-driven invalidation.

"""
Analytics Cache

Tiers:
- memory: dict keyed by (org_id, cache_type, scope_key), guarded by a lock,
  each entry carrying its own expiry
- persisted: AnalyticsCache rows, shared across processes; a persisted hit
  repopulates memory

One AnalyticsCacheService is installed per Flask app (init_app) and reached
through get_cache(). Services accept an explicit cache instance so tests and
callers can substitute their own.

Invalidation on write: ORM session listeners collect the organizations of
flushed finance/project rows. The persisted rows of those organizations are
deleted inside the same transaction (after_flush), and the memory tier is
cleared once the transaction commits (after_commit).
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from flask import current_app, has_app_context
from sqlalchemy import delete, event, inspect
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import (
    AnalyticsCache,
    Attachment,
    CustomerInvoice,
    Expense,
    Project,
    ProjectMember,
    PurchaseOrder,
    SalesOrder,
    Task,
    Timesheet,
    VendorBill,
)
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

EXTENSION_KEY = "workhub_cache"

CACHE_TYPE_PROJECT_SUMMARY = "project_summary"

# Writes to these models make an organization's analytics stale
TRACKED_MODELS = (
    SalesOrder, PurchaseOrder, CustomerInvoice, VendorBill, Expense,
    Project, ProjectMember, Task, Timesheet, Attachment,
)

# Project columns written by the overview itself; changing only these is not a data change
PROJECT_ROLLUP_FIELDS = frozenset({
    "cached_hours_logged", "cached_cost", "cached_revenue", "cached_profit",
    "rollups_refreshed_at", "updated_at",
})

_PENDING_KEY = "workhub_cache_stale_orgs"


@dataclass
class CacheResult:
    data: Any
    cached: bool
    compute_duration_ms: Optional[int] = None
    computed_at: Optional[datetime] = None


@dataclass
class _MemoryEntry:
    data: Any
    computed_at: datetime
    expires_at: datetime
    compute_duration_ms: Optional[int]


class AnalyticsCacheService:
    def __init__(self, memory_ttl_seconds: int = 600, db_ttl_seconds: int = 900):
        self.memory_ttl_seconds = memory_ttl_seconds
        self.db_ttl_seconds = db_ttl_seconds
        self._memory: dict[tuple[int, str, str], _MemoryEntry] = {}
        self._lock = threading.Lock()
        self._stats = {
            "memory_hits": 0,
            "db_hits": 0,
            "misses": 0,
            "computations": 0,
            "invalidations": 0,
        }

    def init_app(self, app) -> None:
        self.memory_ttl_seconds = int(app.config.get("CACHE_DEFAULT_MEMORY_TTL_SECONDS", self.memory_ttl_seconds))
        self.db_ttl_seconds = int(app.config.get("CACHE_DEFAULT_DB_TTL_SECONDS", self.db_ttl_seconds))
        app.extensions[EXTENSION_KEY] = self
        register_invalidation_listeners()

    # --- stats ------------------------------------------------------------

    def _bump(self, key: str) -> None:
        with self._lock:
            self._stats[key] += 1

    def get_stats(self, org_id: Optional[int] = None) -> dict:
        now = utcnow()
        with self._lock:
            stats = dict(self._stats)
            entries = [
                key for key, entry in self._memory.items()
                if entry.expires_at > now and (org_id is None or key[0] == org_id)
            ]

        query = db.session.query(AnalyticsCache).filter(AnalyticsCache.expires_at > now)
        if org_id is not None:
            query = query.filter(AnalyticsCache.org_id == org_id)
        db_entries = query.count()

        lookups = stats["memory_hits"] + stats["db_hits"] + stats["misses"]
        hits = stats["memory_hits"] + stats["db_hits"]
        stats.update({
            "memory_entries": len(entries),
            "db_entries": db_entries,
            "hit_rate": round(hits / lookups * 100, 2) if lookups else 0.0,
        })
        return stats

    # --- memory tier ------------------------------------------------------

    def _memory_get(self, key: tuple[int, str, str]) -> Optional[_MemoryEntry]:
        now = utcnow()
        with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._memory[key]
                return None
            return entry

    def _memory_set(self, key: tuple[int, str, str], entry: _MemoryEntry) -> None:
        with self._lock:
            self._memory[key] = entry

    def invalidate_memory(self, org_ids: Iterable[int], cache_type: Optional[str] = None) -> int:
        targets = set(org_ids)
        with self._lock:
            doomed = [
                key for key in self._memory
                if key[0] in targets and (cache_type is None or key[1] == cache_type)
            ]
            for key in doomed:
                del self._memory[key]
        return len(doomed)

    # --- persisted tier ---------------------------------------------------

    def _db_get(self, org_id: int, cache_type: str, scope_key: str) -> Optional[AnalyticsCache]:
        return (
            db.session.query(AnalyticsCache)
            .filter(
                AnalyticsCache.org_id == org_id,
                AnalyticsCache.cache_type == cache_type,
                AnalyticsCache.scope_key == scope_key,
                AnalyticsCache.expires_at > utcnow(),
            )
            .first()
        )

    def _db_set(self, org_id: int, cache_type: str, scope_key: str, entry: _MemoryEntry) -> None:
        """Upsert the persisted row. Failure only costs the persisted copy."""
        try:
            with db.session.begin_nested():
                row = (
                    db.session.query(AnalyticsCache)
                    .filter_by(org_id=org_id, cache_type=cache_type, scope_key=scope_key)
                    .first()
                )
                if row is None:
                    row = AnalyticsCache(org_id=org_id, cache_type=cache_type, scope_key=scope_key)
                    db.session.add(row)
                row.data = entry.data
                row.computed_at = entry.computed_at
                row.expires_at = entry.expires_at
                row.compute_duration_ms = entry.compute_duration_ms
        except Exception:
            logger.exception("Failed to persist %s cache for org %s (%s)", cache_type, org_id, scope_key)

    # --- public API ---------------------------------------------------------

    def get_or_compute(
        self,
        org_id: int,
        cache_type: str,
        compute_fn: Callable[[], Any],
        *,
        scope_key: str = "",
        force_refresh: bool = False,
        memory_ttl_seconds: Optional[int] = None,
        db_ttl_seconds: Optional[int] = None,
    ) -> CacheResult:
        """
        Return cached data for the key, or compute, store in both tiers, and return it.

        compute_fn must return JSON-serializable data. force_refresh skips
        both lookups. Exceptions from compute_fn propagate and nothing is stored.
        """
        memory_ttl = memory_ttl_seconds if memory_ttl_seconds is not None else self.memory_ttl_seconds
        db_ttl = db_ttl_seconds if db_ttl_seconds is not None else self.db_ttl_seconds
        key = (org_id, cache_type, str(scope_key))

        if not force_refresh:
            entry = self._memory_get(key)
            if entry is not None:
                self._bump("memory_hits")
                logger.debug("Cache memory hit %s", key)
                return CacheResult(copy.deepcopy(entry.data), True, entry.compute_duration_ms, entry.computed_at)

            row = self._db_get(*key)
            if row is not None:
                self._bump("db_hits")
                logger.debug("Cache db hit %s", key)
                expires_at = min(row.expires_at, utcnow() + timedelta(seconds=memory_ttl))
                self._memory_set(key, _MemoryEntry(row.data, row.computed_at, expires_at, row.compute_duration_ms))
                return CacheResult(copy.deepcopy(row.data), True, row.compute_duration_ms, row.computed_at)

            self._bump("misses")

        started = time.perf_counter()
        data = compute_fn()
        duration_ms = int((time.perf_counter() - started) * 1000)
        self._bump("computations")

        now = utcnow()
        self._memory_set(key, _MemoryEntry(
            copy.deepcopy(data), now, now + timedelta(seconds=memory_ttl), duration_ms,
        ))
        self._db_set(org_id, cache_type, key[2], _MemoryEntry(data, now, now + timedelta(seconds=db_ttl), duration_ms))
        db.session.commit()

        logger.debug("Cache computed %s in %sms", key, duration_ms)
        return CacheResult(data, False, duration_ms, now)

    def invalidate(self, org_id: int, cache_type: Optional[str] = None) -> int:
        """Drop both tiers for an organization (optionally one cache type). Returns rows removed."""
        self.invalidate_memory([org_id], cache_type)
        stmt = delete(AnalyticsCache).where(AnalyticsCache.org_id == org_id)
        if cache_type is not None:
            stmt = stmt.where(AnalyticsCache.cache_type == cache_type)
        removed = db.session.execute(stmt).rowcount or 0
        db.session.commit()
        self._bump("invalidations")
        logger.info("Invalidated %s cache for org %s (%s rows)", cache_type or "all", org_id, removed)
        return removed

    def clean_expired(self) -> dict:
        now = utcnow()
        with self._lock:
            doomed = [key for key, entry in self._memory.items() if entry.expires_at <= now]
            for key in doomed:
                del self._memory[key]
        removed = db.session.execute(delete(AnalyticsCache).where(AnalyticsCache.expires_at <= now)).rowcount or 0
        db.session.commit()
        return {"memory_removed": len(doomed), "db_removed": removed}

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()


def get_cache() -> AnalyticsCacheService:
    """The cache installed on the current app."""
    return current_app.extensions[EXTENSION_KEY]


# --- write-driven invalidation ----------------------------------------------


def _is_rollup_only(obj) -> bool:
    if not isinstance(obj, Project):
        return False
    state = inspect(obj)
    changed = {attr.key for attr in state.attrs if attr.history.has_changes()}
    return changed <= PROJECT_ROLLUP_FIELDS


def _stale_orgs(session: Session) -> set[int]:
    orgs = set()
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if not isinstance(obj, TRACKED_MODELS):
            continue
        if obj in session.dirty and not session.is_modified(obj):
            continue
        if obj in session.dirty and _is_rollup_only(obj):
            continue
        org_id = getattr(obj, "org_id", None)
        if org_id is not None:
            orgs.add(org_id)
    return orgs


def _after_flush(session: Session, flush_context) -> None:
    orgs = _stale_orgs(session)
    if not orgs:
        return
    session.connection().execute(delete(AnalyticsCache).where(AnalyticsCache.org_id.in_(orgs)))
    session.info.setdefault(_PENDING_KEY, set()).update(orgs)


def _after_commit(session: Session) -> None:
    orgs = session.info.pop(_PENDING_KEY, None)
    if not orgs or not has_app_context():
        return
    cache = current_app.extensions.get(EXTENSION_KEY)
    if cache is None:
        return
    removed = cache.invalidate_memory(orgs)
    cache._bump("invalidations")
    logger.debug("Write-driven invalidation for orgs %s (%s memory entries)", sorted(orgs), removed)


def _after_soft_rollback(session: Session, previous_transaction) -> None:
    # Only the outermost rollback discards pending invalidations
    if previous_transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)


def register_invalidation_listeners() -> None:
    if event.contains(Session, "after_flush", _after_flush):
        return
    event.listen(Session, "after_flush", _after_flush)
    event.listen(Session, "after_commit", _after_commit)
    event.listen(Session, "after_soft_rollback", _after_soft_rollback)
