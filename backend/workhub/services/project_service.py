# Overview: Project hub operations: create, read, list, membership and roll-up refresh.

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from ..errors import ForbiddenError
from ..extensions import db
from ..models import ROLE_ADMIN, ROLE_MANAGER, Project, ProjectMember
from ..models.projects import PROJECT_STATUSES
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, parse_int, validate_payload
from . import event_service, project_overview_service
from .document_service import page_window
from .tenant_service import Actor, paginate, require_project_in_org, require_user_in_org, scoped_query

logger = logging.getLogger(__name__)

PROJECT_ADMIN_ROLES = (ROLE_ADMIN, ROLE_MANAGER)

POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "code", "description", "status", "manager_id",
        "start_date", "end_date", "budget", "progress_pct",
    },
    required_on_create={"name"},
)

MEMBER_ROLES = ("owner", "manager", "member", "viewer")


def _require_project_admin(actor: Actor) -> None:
    if actor.role not in PROJECT_ADMIN_ROLES:
        raise ForbiddenError("Admin or manager role required")


def create_project(actor: Actor, payload: dict) -> Project:
    """Create a project in the actor's organization (admin or manager)."""
    _require_project_admin(actor)
    patch = validate_payload(model=Project, payload=payload, policy=POLICY, partial=False)

    if not patch.get("name"):
        raise ValidationError("Missing required fields: name")
    if patch.get("status") and patch["status"] not in PROJECT_STATUSES:
        raise ValidationError(f"Invalid project status: {patch['status']}")
    if patch.get("progress_pct") is not None and patch["progress_pct"] > 100:
        raise ValidationError("progress_pct must be between 0 and 100")
    if patch.get("manager_id") is not None:
        require_user_in_org(patch["manager_id"], actor.org_id)
    if patch.get("code"):
        taken = scoped_query(Project, actor.org_id, include_deleted=True).filter(Project.code == patch["code"]).first()
        if taken is not None:
            raise ConflictError(f"Project code '{patch['code']}' already exists")

    project = Project(org_id=actor.org_id, **patch)
    db.session.add(project)
    db.session.flush()

    event_service.log_event(actor.org_id, event_service.ENTITY_PROJECT, project.id, event_service.PROJECT_CREATED, {
        "name": project.name,
        "code": project.code,
        "budget": project.budget,
        "actorId": actor.user_id,
    })
    db.session.commit()

    logger.info("Project %s created in org %s by user %s", project.id, actor.org_id, actor.user_id)
    return project


def get_project(actor: Actor, project_id: int) -> Project:
    return require_project_in_org(project_id, actor.org_id)


def list_projects(
    actor: Actor,
    *,
    status: str | None = None,
    search: str | None = None,
    page: Any = None,
    page_size: Any = None,
) -> dict:
    page_num, size = page_window(page, page_size)
    query = scoped_query(Project, actor.org_id)
    if status:
        query = query.filter(Project.status == status)
    if search:
        query = query.filter(Project.name.ilike(f"%{search.strip()}%"))
    query = query.order_by(Project.created_at.desc(), Project.id.desc())
    return paginate(query, page_num, size)


def list_project_members(actor: Actor, project_id: int) -> list[ProjectMember]:
    require_project_in_org(project_id, actor.org_id)
    return (
        db.session.query(ProjectMember)
        .filter_by(org_id=actor.org_id, project_id=project_id)
        .order_by(ProjectMember.created_at.asc(), ProjectMember.id.asc())
        .all()
    )


def add_project_member(actor: Actor, project_id: int, user_id: Any, role: str = "member") -> ProjectMember:
    """Add a user of the same organization to a project (admin or manager)."""
    _require_project_admin(actor)
    project = require_project_in_org(project_id, actor.org_id)
    if user_id is None:
        raise ValidationError("Missing required fields: user_id")
    user = require_user_in_org(parse_int(user_id, field="user_id"), actor.org_id)
    if role not in MEMBER_ROLES:
        raise ValidationError(f"Invalid member role: {role}", details={"allowed": list(MEMBER_ROLES)})

    member = ProjectMember(org_id=actor.org_id, project_id=project.id, user_id=user.id, role=role)
    try:
        with db.session.begin_nested():
            db.session.add(member)
    except IntegrityError:
        raise ConflictError("User is already a member of this project")

    event_service.log_event(actor.org_id, event_service.ENTITY_PROJECT, project.id, event_service.PROJECT_MEMBER_ADDED, {
        "userId": user.id,
        "role": role,
        "actorId": actor.user_id,
    })
    db.session.commit()
    return member


def refresh_project_rollups(project_id: int, org_id: int) -> Project:
    """Recompute the project's denormalized roll-up columns and commit them."""
    project_overview_service.compute_overview(project_id, org_id)
    db.session.commit()
    return require_project_in_org(project_id, org_id)
