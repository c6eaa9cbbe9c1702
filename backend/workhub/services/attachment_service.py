# Overview: Attachment metadata: register, list by owner, move temporary owners onto saved records.

"""
Attachments

Only metadata is stored; the file itself lives at file_url.

Uploads made before their parent record exists use a negative temporary
owner id. Once the parent is saved, reassociate_attachments() moves every
attachment of (temp_owner_type, temp_owner_id) onto the real owner.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..extensions import db
from ..models import (
    Attachment, CustomerInvoice, Expense, Project, PurchaseOrder, SalesOrder, Task, Timesheet, VendorBill,
)
from ..validation import ModelValidationPolicy, ValidationError, parse_int, validate_payload
from . import event_service
from .tenant_service import Actor, require_in_org, require_project_in_org

logger = logging.getLogger(__name__)

OWNER_MODELS = {
    "project": Project,
    "task": Task,
    "timesheet": Timesheet,
    "expense": Expense,
    "sales_order": SalesOrder,
    "purchase_order": PurchaseOrder,
    "customer_invoice": CustomerInvoice,
    "vendor_bill": VendorBill,
}
OWNER_TYPES = tuple(OWNER_MODELS)

STATUS_ACTIVE = "active"

POLICY = ModelValidationPolicy(
    writable_fields={
        "owner_type", "owner_id", "project_id", "file_name", "file_url",
        "mime_type", "size_bytes",
    },
    required_on_create={"owner_type", "owner_id", "file_name", "file_url"},
)


def _check_owner_type(owner_type: Any) -> str:
    if owner_type not in OWNER_TYPES:
        raise ValidationError(f"Invalid owner_type: {owner_type}", details={"allowed": list(OWNER_TYPES)})
    return owner_type


def _require_owner(owner_type: str, owner_id: int, org_id: int):
    """Load a saved owner record within the organization; temporary (negative) ids are not checked."""
    if owner_id <= 0:
        return None
    return require_in_org(OWNER_MODELS[owner_type], owner_id, org_id, label=owner_type)


def register_attachment(actor: Actor, payload: dict) -> Attachment:
    patch = validate_payload(model=Attachment, payload=payload, policy=POLICY, partial=False)
    _check_owner_type(patch["owner_type"])
    if patch.get("size_bytes") is not None and patch["size_bytes"] < 0:
        raise ValidationError("size_bytes must be >= 0")

    owner = _require_owner(patch["owner_type"], patch["owner_id"], actor.org_id)
    if patch.get("project_id") is not None:
        require_project_in_org(patch["project_id"], actor.org_id)
    elif owner is not None:
        patch["project_id"] = owner.id if isinstance(owner, Project) else owner.project_id

    attachment = Attachment(
        org_id=actor.org_id,
        uploaded_by=actor.user_id,
        status=STATUS_ACTIVE,
        **patch,
    )
    db.session.add(attachment)
    db.session.commit()
    return attachment


def list_attachments(actor: Actor, owner_type: Any, owner_id: Any) -> list[Attachment]:
    owner_type = _check_owner_type(owner_type)
    owner = parse_int(owner_id, field="owner_id")
    return (
        db.session.query(Attachment)
        .filter(
            Attachment.org_id == actor.org_id,
            Attachment.owner_type == owner_type,
            Attachment.owner_id == owner,
        )
        .order_by(Attachment.uploaded_at.desc(), Attachment.id.desc())
        .all()
    )


def reassociate_attachments(
    org_id: int,
    temp_owner_type: str,
    temp_owner_id: Any,
    owner_type: str,
    owner_id: Any,
    *,
    actor_id: Optional[int] = None,
) -> int:
    """
    Move attachments from a temporary (negative) owner id to the real owner.

    Returns the number of attachments moved.
    """
    _check_owner_type(temp_owner_type)
    _check_owner_type(owner_type)
    temp_id = parse_int(temp_owner_id, field="temp_owner_id")
    real_id = parse_int(owner_id, field="owner_id")
    if temp_id >= 0:
        raise ValidationError("temp_owner_id must be negative")
    if real_id <= 0:
        raise ValidationError("owner_id must be positive")
    owner = _require_owner(owner_type, real_id, org_id)

    attachments = (
        db.session.query(Attachment)
        .filter(
            Attachment.org_id == org_id,
            Attachment.owner_type == temp_owner_type,
            Attachment.owner_id == temp_id,
        )
        .all()
    )
    for attachment in attachments:
        attachment.owner_type = owner_type
        attachment.owner_id = real_id
        if isinstance(owner, Project):
            attachment.project_id = owner.id
        elif owner.project_id is not None:
            attachment.project_id = owner.project_id

    if attachments:
        db.session.flush()
        event_service.log_event(org_id, event_service.ENTITY_ATTACHMENT, None, event_service.ATTACHMENTS_REASSOCIATED, {
            "from": {"ownerType": temp_owner_type, "ownerId": temp_id},
            "to": {"ownerType": owner_type, "ownerId": real_id},
            "count": len(attachments),
            "actorId": actor_id,
        })
    db.session.commit()

    logger.info("Reassociated %s attachment(s) in org %s to %s:%s", len(attachments), org_id, owner_type, real_id)
    return len(attachments)
