# Overview: Flask API routes for attachment metadata; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError
from ..services import attachment_service
from ..services.tenant_service import get_current_actor
from .common import error_response, internal_error, json_body


attachments_bp = Blueprint("attachments", __name__, url_prefix="/api/attachments")


@attachments_bp.get("")
@require_auth
def list_attachments_route():
    """List attachments of one owner (owner_type and owner_id query parameters)."""
    try:
        items = attachment_service.list_attachments(
            get_current_actor(),
            request.args.get("owner_type"),
            request.args.get("owner_id"),
        )
        return jsonify({"items": [a.to_dict() for a in items], "count": len(items)})
    except ServiceError as e:
        return error_response(e)


@attachments_bp.post("")
@require_auth
def register_attachment_route():
    try:
        attachment = attachment_service.register_attachment(get_current_actor(), json_body())
        return jsonify(attachment.to_dict()), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Register attachment")


@attachments_bp.post("/reassociate")
@require_auth
def reassociate_attachments_route():
    """
    Move attachments uploaded against a temporary owner onto the saved record.

    Request body:
    {
        "temp_owner_type": "expense",
        "temp_owner_id": -1712345678,
        "owner_type": "expense",
        "owner_id": 42
    }
    """
    data = json_body()
    try:
        moved = attachment_service.reassociate_attachments(
            g.org_id,
            data.get("temp_owner_type"),
            data.get("temp_owner_id"),
            data.get("owner_type") or data.get("temp_owner_type"),
            data.get("owner_id"),
            actor_id=g.current_user.id,
        )
        return jsonify({"reassociated": moved})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Reassociate attachments")
