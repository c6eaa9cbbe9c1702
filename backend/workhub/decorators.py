# Overview: Request decorators for API routes: bearer authentication and role checks.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "org_id")


def require_auth(f):
    """
    Require a bearer session and establish the tenant context.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.org_id: the organization captured by the session
    - g.session_context: the full SessionContext

    Returns 401 for a missing, invalid, expired or revoked token and for
    deactivated users or organizations.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "unauthorized"}), 401

        g.current_user = context.user
        g.org_id = context.org_id
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of `roles`. Apply after @require_auth."""
    allowed = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401
            if g.current_user.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "code": "forbidden",
                    "required_roles": sorted(allowed),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
