# Overview: Flask API routes for projects and the project aggregators (links, overview, health).

"""
Project Routes

- /api/projects                     list / create
- /api/projects/<id>                read
- /api/projects/<id>/members        list / add
- /api/projects/<id>/links          recent linked records (limit, include)
- /api/projects/<id>/links/counts   linked record counts
- /api/projects/<id>/overview       cached metrics (force_refresh)
- /api/projects/<id>/health         health score and alerts
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError
from ..services import project_links_service, project_overview_service, project_service
from ..services.tenant_service import get_current_actor
from ..validation import parse_optional_bool
from .common import error_response, internal_error, json_body


projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@projects_bp.get("")
@require_auth
def list_projects_route():
    try:
        result = project_service.list_projects(
            get_current_actor(),
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            page=request.args.get("page"),
            page_size=request.args.get("page_size"),
        )
        return jsonify(result)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("List projects")


@projects_bp.post("")
@require_auth
def create_project_route():
    """
    Create a project (admin or manager).

    Request body:
    {
        "name": "Website relaunch",   // required
        "code": "WEB",                // optional, unique within org
        "budget": "25000.00",
        "start_date": "2026-01-01",
        "end_date": "2026-06-30",
        "manager_id": 3,
        "progress_pct": "0"
    }
    """
    try:
        project = project_service.create_project(get_current_actor(), json_body())
        return jsonify(project.to_dict()), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Create project")


@projects_bp.get("/<int:project_id>")
@require_auth
def get_project_route(project_id: int):
    try:
        return jsonify(project_service.get_project(get_current_actor(), project_id).to_dict())
    except ServiceError as e:
        return error_response(e)


@projects_bp.get("/<int:project_id>/members")
@require_auth
def list_members_route(project_id: int):
    try:
        members = project_service.list_project_members(get_current_actor(), project_id)
        return jsonify({"items": [m.to_dict() for m in members], "count": len(members)})
    except ServiceError as e:
        return error_response(e)


@projects_bp.post("/<int:project_id>/members")
@require_auth
def add_member_route(project_id: int):
    data = json_body()
    try:
        member = project_service.add_project_member(
            get_current_actor(),
            project_id,
            data.get("user_id"),
            role=data.get("role") or "member",
        )
        return jsonify(member.to_dict()), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Add project member")


@projects_bp.get("/<int:project_id>/links")
@require_auth
def project_links_route(project_id: int):
    """
    Recent records linked to the project.

    Query parameters:
    - limit: rows per category, 1..50 (default 5)
    - include: comma separated categories (default: all)
    """
    include = request.args.get("include")
    try:
        links = project_links_service.get_project_links(
            project_id,
            g.org_id,
            limit=request.args.get("limit"),
            include=include if include else None,
        )
        return jsonify(links)
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Project links")


@projects_bp.get("/<int:project_id>/links/counts")
@require_auth
def project_links_counts_route(project_id: int):
    try:
        return jsonify(project_links_service.get_project_links_counts(project_id, g.org_id))
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Project link counts")


@projects_bp.get("/<int:project_id>/overview")
@require_auth
def project_overview_route(project_id: int):
    try:
        force = parse_optional_bool(request.args.get("force_refresh"), field="force_refresh") or False
        return jsonify(project_overview_service.get_overview(project_id, g.org_id, force_refresh=force))
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Project overview")


@projects_bp.get("/<int:project_id>/health")
@require_auth
def project_health_route(project_id: int):
    try:
        return jsonify(project_overview_service.get_project_health(project_id, g.org_id))
    except ServiceError as e:
        return error_response(e)
    except Exception:
        return internal_error("Project health")
