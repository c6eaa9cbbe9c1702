from __future__ import annotations

from ..extensions import db
from workhub.time_utils import to_utc_z, to_iso_date, utcnow
from .mixins import SoftDeleteMixin, TimestampMixin, money_str


PROJECT_STATUSES = ("planned", "in_progress", "on_hold", "completed", "cancelled")

TASK_STATUSES = ("new", "in_progress", "in_review", "completed", "blocked")
TASK_STATUS_COMPLETED = "completed"

TIMESHEET_STATUSES = ("draft", "submitted", "approved", "locked")


class Project(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    Project: the hub that tasks, timesheets, finance documents, expenses and
    attachments link to.

    cached_* columns are denormalized roll-ups written by the overview
    computation; they are never authoritative.
    """
    __tablename__ = "projects"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_projects_org_code"),
        db.Index("ix_projects_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="planned")
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    budget = db.Column(db.Numeric(14, 2), nullable=True)
    progress_pct = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    cached_hours_logged = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cached_cost = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cached_revenue = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cached_profit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    rollups_refreshed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "status": self.status,
            "manager_id": self.manager_id,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "budget": money_str(self.budget),
            "progress_pct": money_str(self.progress_pct),
            "cached_hours_logged": money_str(self.cached_hours_logged),
            "cached_cost": money_str(self.cached_cost),
            "cached_revenue": money_str(self.cached_revenue),
            "cached_profit": money_str(self.cached_profit),
            "rollups_refreshed_at": to_utc_z(self.rollups_refreshed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProjectMember(db.Model):
    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # Role on the project itself, distinct from the organization role
    role = db.Column(db.String(16), nullable=False, default="member")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
        }


class Task(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("ix_tasks_project_status", "project_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="new")
    priority = db.Column(db.Integer, nullable=False, default=2)  # 1 (low) .. 4 (urgent)
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    estimate_hours = db.Column(db.Numeric(8, 2), nullable=True)
    hours_logged = db.Column(db.Numeric(8, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "due_date": to_iso_date(self.due_date),
            "estimate_hours": money_str(self.estimate_hours),
            "hours_logged": money_str(self.hours_logged),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Timesheet(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "timesheets"
    __table_args__ = (
        db.Index("ix_timesheets_project_status", "project_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    work_date = db.Column(db.Date, nullable=False)
    duration_hours = db.Column(db.Numeric(6, 2), nullable=False)
    billable = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(16), nullable=False, default="draft")
    # Snapshot of the user's hourly cost when the entry was recorded
    cost_at_time = db.Column(db.Numeric(10, 2), nullable=True)
    note = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "work_date": to_iso_date(self.work_date),
            "duration_hours": money_str(self.duration_hours),
            "billable": self.billable,
            "status": self.status,
            "cost_at_time": money_str(self.cost_at_time),
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class Attachment(db.Model):
    """
    File metadata attached to any owner (project, task, invoice, expense ...).

    owner_id is negative while the owning record has not been saved yet;
    reassociation moves such rows onto the real owner id.
    """
    __tablename__ = "attachments"
    __table_args__ = (
        db.Index("ix_attachments_owner", "org_id", "owner_type", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=True, index=True)
    owner_type = db.Column(db.String(32), nullable=False)
    owner_id = db.Column(db.Integer, nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(1024), nullable=False)
    mime_type = db.Column(db.String(128), nullable=True)
    size_bytes = db.Column(db.Integer, nullable=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "owner_type": self.owner_type,
            "owner_id": self.owner_id,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": to_utc_z(self.uploaded_at),
            "status": self.status,
        }
