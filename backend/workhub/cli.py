# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/workhub/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"]
#   Idempotent bootstrap: creates tables, a default org and one user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management:
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#
# Users:
# - python -m flask users list [--org-id 1]
# - python -m flask users create --org-id 1 --username fin --email fin@workhub.local --password "Password123!" --role finance
#
# Analytics cache:
# - python -m flask cache stats [--org-id 1]
# - python -m flask cache clean-expired
#   Purge expired entries from both cache tiers.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import ROLES, Organization, User
from .services.auth_service import create_user
from .services.cache_service import get_cache


DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Create the schema, a default organization and one user per role.

    Users: admin, manager, finance, member (password "Password123!").
    Change passwords immediately outside development.
    """
    click.echo("START Initializing WorkHub...")
    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    for role in ROLES:
        username = role
        existing = db.session.query(User).filter_by(org_id=org.id, username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists in org, skipping...")
            continue
        try:
            create_user(
                username=username,
                email=f"{username}@workhub.local",
                password=DEFAULT_PASSWORD,
                org_id=org.id,
                role=role,
                full_name=username.capitalize(),
            )
            click.echo(f"PASS Created user: {username} with role '{role}'")
        except ServiceError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")

    click.echo(f"\nDONE Organization {org.name} (ID: {org.id}) ready.")
    click.echo(f"   Default password for all users: {DEFAULT_PASSWORD}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    get_cache().clear()
    click.echo("PASS Database reset complete.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()
    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "=" * 64)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Users'}")
    click.echo("=" * 64)
    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {user_count}")
    click.echo("=" * 64 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, help='Organization ID (uses the first organization if omitted)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(org_id, username, email, password, role, full_name):
    """Create a user in an organization."""
    if org_id:
        org = db.session.get(Organization, org_id)
    else:
        org = db.session.query(Organization).order_by(Organization.id).first()
    if not org:
        click.echo("FAIL Organization not found. Run 'flask system init' or 'flask orgs create' first.")
        return

    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            org_id=org.id,
            role=role,
            full_name=full_name,
        )
    except ServiceError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}' in {org.name}")


@users_group.command('list')
@click.option('--org-id', type=int, default=None, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List users with role and active status."""
    query = db.session.query(User).order_by(User.org_id, User.id)
    if org_id:
        query = query.filter(User.org_id == org_id)
    users = query.all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Org':<5} {'Username':<20} {'Email':<28} {'Role':<9} {'Active'}")
    click.echo("=" * 72)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.org_id:<5} {user.username:<20} {user.email:<28} {user.role:<9} {active_str}")
    click.echo("=" * 72 + "\n")


@click.group('cache')
def cache_group():
    """Analytics cache maintenance commands."""


@cache_group.command('stats')
@click.option('--org-id', type=int, default=None, help='Restrict persisted counts to one organization')
@with_appcontext
def cache_stats(org_id):
    stats = get_cache().get_stats(org_id)
    for key in sorted(stats):
        click.echo(f"{key:<16} {stats[key]}")


@cache_group.command('clean-expired')
@with_appcontext
def cache_clean_expired():
    """Remove expired entries from both cache tiers."""
    removed = get_cache().clean_expired()
    click.echo(f"PASS Removed {removed['memory_removed']} memory and {removed['db_removed']} persisted entries")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cache_group)
