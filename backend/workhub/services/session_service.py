# Overview: Bearer session tokens: issue, validate with absolute/idle timeouts, revoke.

"""
Session Token Management

Sessions capture org_id and the user's role at login. Every authenticated
request resolves its tenant from the session record, never from the
request body.

- 32-byte random tokens, stored only as SHA-256 hashes
- 24-hour absolute timeout, 2-hour idle timeout
- revocable on logout; deactivating the user or organization revokes on next use
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import Organization, SessionToken, User
from ..time_utils import utcnow
from ..validation import ValidationError

logger = logging.getLogger(__name__)

SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """Identity and tenant of an authenticated request."""

    user: User
    session: SessionToken
    org_id: int
    role: str


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy; a fast hash is sufficient
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Issue a session for the user and return (record, plaintext_token).

    The client receives the plaintext token; only its hash is stored.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValidationError("User not found")

    org = db.session.get(Organization, user.org_id)
    if org is None or not org.is_active:
        raise ValidationError("Organization is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        org_id=user.org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    logger.info("Session %s issued for user %s (org %s)", session.id, user.id, user.org_id)
    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext, or None.

    None when the token is unknown, revoked or expired, or when the user or
    organization has been deactivated. Idle sessions are revoked on sight.
    A valid lookup refreshes last_used_at.
    """
    now = utcnow()
    session = (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )
    if session is None:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    org = session.organization
    if org is None or not org.is_active:
        _revoke(session, "Organization deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, org_id=session.org_id, role=user.role)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )
    if session is None:
        return False
    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    db.session.commit()
    return len(sessions)
