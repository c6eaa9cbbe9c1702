# Overview: Generic document status workflow shared by every finance document service.

"""
Document Workflow

One Workflow instance describes a document type: its transition table, the
guard for each target status and action, and the audit event prefix. The
document services configure a Workflow and delegate the transition, edit and
delete mechanics to it.

Contract of transition():
1. Load the row scoped to the actor's organization, hiding tombstones,
   with a row lock (NotFoundError otherwise).
2. Reject targets outside the transition table (InvalidTransitionError).
3. Run the guard for the target (ForbiddenError).
4. Apply status and side-effect fields, append the audit event, run the
   after-hook, and commit once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from ..errors import ForbiddenError, InvalidStateError, InvalidTransitionError
from ..extensions import db
from ..time_utils import utcnow
from . import event_service
from .concurrency import lock_for_update
from .tenant_service import Actor, require_in_org, scoped_query

logger = logging.getLogger(__name__)

STATUS_DRAFT = "draft"

# Guard keys for non-transition actions
ACTION_CREATE = "create"
ACTION_EDIT = "edit"
ACTION_DELETE = "delete"

Guard = Callable[[Actor, Any], None]


def roles_guard(*roles: str, message: Optional[str] = None) -> Guard:
    """Guard that admits actors whose role is one of `roles`."""
    allowed = frozenset(roles)

    def _guard(actor: Actor, entity: Any) -> None:
        if actor.role not in allowed:
            raise ForbiddenError(message or f"Requires one of roles: {', '.join(sorted(allowed))}")

    return _guard


def owner_guard(*, allow_roles: tuple[str, ...] = (), owner_attr: str = "user_id", message: Optional[str] = None) -> Guard:
    """Guard that admits the record owner, plus any role in allow_roles."""
    allowed = frozenset(allow_roles)

    def _guard(actor: Actor, entity: Any) -> None:
        if getattr(entity, owner_attr) == actor.user_id:
            return
        if actor.role in allowed:
            return
        raise ForbiddenError(message or "Only the owner may perform this action")

    return _guard


@dataclass(frozen=True)
class Workflow:
    entity_type: str
    label: str
    model: Any
    event_prefix: str
    transitions: Mapping[str, frozenset]
    guards: Mapping[str, Guard] = field(default_factory=dict)
    undeletable_statuses: frozenset = frozenset()
    # Optional per-key audit writers: (entity, actor_id, payload) -> Event | None
    recorders: Mapping[str, Callable[[Any, int, dict], Any]] = field(default_factory=dict)

    # --- table ---------------------------------------------------------

    def allowed_targets(self, current: str) -> frozenset:
        return self.transitions.get(current, frozenset())

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.allowed_targets(current)

    def is_terminal(self, status: str) -> bool:
        return not self.allowed_targets(status)

    def event_type(self, suffix: str) -> str:
        return f"{self.event_prefix}_{suffix.upper()}"

    def record(self, key: str, entity: Any, org_id: int, actor_id: Optional[int], payload: dict):
        recorder = self.recorders.get(key)
        if recorder is not None:
            return recorder(entity, actor_id, payload)
        return event_service.log_event(org_id, self.entity_type, entity.id, self.event_type(key), payload)

    # --- guards ---------------------------------------------------------

    def check_transition(self, entity: Any, target: str) -> None:
        if not self.can_transition(entity.status, target):
            raise InvalidTransitionError(self.label, entity.status, target)

    def check_guard(self, key: str, actor: Actor, entity: Any = None) -> None:
        guard = self.guards.get(key)
        if guard is not None:
            guard(actor, entity)

    # --- loading -------------------------------------------------------

    def load(self, entity_id: int, org_id: int, *, lock: bool = False):
        query = scoped_query(self.model, org_id)
        if lock:
            query = lock_for_update(query)
        return require_in_org(self.model, entity_id, org_id, label=self.entity_type, query=query)

    # --- mutations -----------------------------------------------------

    def transition(
        self,
        entity_id: int,
        actor: Actor,
        target: str,
        *,
        apply: Optional[Callable[[Any, Actor], None]] = None,
        payload: Optional[dict] = None,
        after: Optional[Callable[[Any, Actor], None]] = None,
    ):
        entity = self.load(entity_id, actor.org_id, lock=True)
        previous = entity.status

        self.check_transition(entity, target)
        self.check_guard(target, actor, entity)

        entity.status = target
        if apply is not None:
            apply(entity, actor)
        db.session.flush()

        event_payload = {"from": previous, "to": target, "actorId": actor.user_id}
        if payload:
            event_payload.update(payload)
        self.record(target, entity, actor.org_id, actor.user_id, event_payload)

        if after is not None:
            after(entity, actor)

        db.session.commit()
        logger.info(
            "%s %s: %s -> %s by user %s",
            self.entity_type, entity.id, previous, target, actor.user_id,
        )
        return entity

    def advance(self, entity: Any, target: str, *, org_id: int, payload: Optional[dict] = None) -> bool:
        """
        Move a related document inside the caller's transaction.

        Used by cross-entity triggers; skips guards and does not commit.
        Returns False (and changes nothing) when the table forbids the move.
        """
        if not self.can_transition(entity.status, target):
            logger.info(
                "Skipping %s %s advance to %s from %s",
                self.entity_type, entity.id, target, entity.status,
            )
            return False
        previous = entity.status
        entity.status = target
        entity.updated_at = utcnow()
        db.session.flush()
        event_payload = {"from": previous, "to": target}
        if payload:
            event_payload.update(payload)
        self.record(target, entity, org_id, None, event_payload)
        return True

    def update(self, entity_id: int, actor: Actor, patch, *, after: Optional[Callable[[Any, Actor], None]] = None):
        """
        Apply a field patch to a draft document.

        The status check runs before the guard, so a non-draft document
        is rejected for every caller. `patch` may be a callable taking the
        loaded entity; it is then validated only after both checks pass.
        """
        entity = self.load(entity_id, actor.org_id, lock=True)
        if entity.status != STATUS_DRAFT:
            raise InvalidStateError(f"Cannot edit {self.label} in '{entity.status}' status")
        self.check_guard(ACTION_EDIT, actor, entity)
        if callable(patch):
            patch = patch(entity)

        changes = {}
        for key, value in patch.items():
            old = getattr(entity, key)
            if old != value:
                changes[key] = {"from": old, "to": value}
                setattr(entity, key, value)

        if changes:
            db.session.flush()
            self.record("updated", entity, actor.org_id, actor.user_id, {
                "changes": changes,
                "actorId": actor.user_id,
            })
        if after is not None:
            after(entity, actor)
        db.session.commit()
        return entity

    def soft_delete(self, entity_id: int, actor: Actor):
        entity = self.load(entity_id, actor.org_id, lock=True)
        if entity.status in self.undeletable_statuses:
            raise InvalidStateError(f"Cannot delete {self.label} in '{entity.status}' status")
        self.check_guard(ACTION_DELETE, actor, entity)

        entity.deleted_at = utcnow()
        db.session.flush()
        self.record("deleted", entity, actor.org_id, actor.user_id, {
            "status": entity.status,
            "actorId": actor.user_id,
        })
        db.session.commit()
        logger.info("%s %s deleted by user %s", self.entity_type, entity.id, actor.user_id)
        return entity
