# Overview: Flask API routes for the audit event log (read-only).

"""
Event Routes

The audit log is append-only; there are no write endpoints.
Organization-wide listing and summary are restricted to admin, manager and
finance roles.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_FINANCE, ROLE_MANAGER
from ..services import event_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_optional_int
from .common import error_response, internal_error


events_bp = Blueprint("events", __name__, url_prefix="/api/events")

AUDIT_ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_FINANCE)


def _datetime_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@events_bp.get("")
@require_auth
@require_role(*AUDIT_ROLES)
def list_events_route():
    """
    List the organization's events, newest first.

    Query parameters: entity_type, entity_id, event_type, start_date,
    end_date (ISO-8601), limit (default 100, max 500).
    """
    try:
        events = event_service.get_events_for_organization(
            g.org_id,
            entity_type=request.args.get("entity_type") or None,
            event_type=request.args.get("event_type") or None,
            start_date=_datetime_arg("start_date"),
            end_date=_datetime_arg("end_date"),
            limit=parse_optional_int(request.args.get("limit"), field="limit") or event_service.DEFAULT_ORG_LIMIT,
            entity_id=parse_optional_int(request.args.get("entity_id"), field="entity_id"),
        )
        return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})
    except ValidationError as e:
        return error_response(e)
    except Exception:
        return internal_error("List events")


@events_bp.get("/summary")
@require_auth
@require_role(*AUDIT_ROLES)
def events_summary_route():
    try:
        summary = event_service.summarize_events(
            g.org_id,
            start_date=_datetime_arg("start_date"),
            end_date=_datetime_arg("end_date"),
        )
        return jsonify(summary)
    except ValidationError as e:
        return error_response(e)
    except Exception:
        return internal_error("Summarize events")


@events_bp.get("/<int:event_id>")
@require_auth
@require_role(*AUDIT_ROLES)
def get_event_route(event_id: int):
    event = event_service.get_event(g.org_id, event_id)
    if event is None:
        return jsonify({"error": "Event not found", "code": "not_found"}), 404
    return jsonify(event.to_dict())


@events_bp.get("/entity/<entity_type>/<int:entity_id>")
@require_auth
def entity_events_route(entity_type: str, entity_id: int):
    """History of one entity within the caller's organization."""
    if entity_type not in event_service.ENTITY_TYPES:
        return jsonify({"error": f"Unknown entity type: {entity_type}", "code": "validation_error"}), 400
    try:
        limit = parse_optional_int(request.args.get("limit"), field="limit") or event_service.DEFAULT_ENTITY_LIMIT
    except ValidationError as e:
        return error_response(e)
    events = event_service.get_events_for_entity(entity_type, entity_id, limit=limit, org_id=g.org_id)
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})
