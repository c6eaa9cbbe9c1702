# Overview: Credentials: bcrypt password hashing, user creation and authentication.

"""
Authentication Service

Users belong to exactly one organization and hold a single role.
Username and email are unique within the organization.

- passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- minimum 8 characters with upper, lower, digit and special character
- session tokens are handled by session_service
"""

from __future__ import annotations

import logging
import re

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import ROLE_MEMBER, ROLES, Organization, User
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BCRYPT_ROUNDS = 12


class PasswordValidationError(ValidationError):
    """Password does not meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))
    return DEFAULT_BCRYPT_ROUNDS


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash the password."""
    validate_password_strength(password)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=_rounds()))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    org_id: int,
    role: str = ROLE_MEMBER,
    full_name: str | None = None,
) -> User:
    """
    Create a user in an active organization.

    Raises ValidationError for an unknown organization or role and for a
    weak password, ConflictError when the username or email is taken
    within the organization.
    """
    org = db.session.get(Organization, org_id)
    if org is None:
        raise ValidationError("Organization not found")
    if not org.is_active:
        raise ValidationError("Organization is not active")
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}", details={"allowed": list(ROLES)})

    existing = db.session.query(User).filter(
        User.org_id == org_id,
        db.or_(User.username == username, User.email == email),
    ).first()
    if existing:
        raise ConflictError("Username or email already exists in this organization")

    user = User(
        org_id=org_id,
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()

    logger.info("Created user %s (%s) in org %s", user.id, role, org_id)
    return user


def authenticate(username: str, password: str, org_id: int | None = None) -> User | None:
    """
    Return the active user matching username (or email) and password, else None.

    Scoped to org_id when given. Users of a deactivated organization cannot
    authenticate. Updates last_login_at on success.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    )
    if org_id is not None:
        query = query.filter(User.org_id == org_id)

    user = query.first()
    if user is None:
        return None

    org = db.session.get(Organization, user.org_id)
    if org is None or not org.is_active:
        return None

    if not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", username)
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
