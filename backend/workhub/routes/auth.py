# Overview: Flask API routes for login, logout and the current user.

"""
Authentication API routes

Self-registration does not exist; users are created by administrators
through the CLI. Login returns a bearer token to send as
`Authorization: Bearer <token>`.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..validation import parse_optional_int, ValidationError
from .common import error_response, internal_error, json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Request body:
    {
        "username": "admin",    // or "email"
        "password": "...",
        "org_id": 1             // optional, scopes the lookup
    }
    """
    data = json_body()
    username = data.get("username") or data.get("email")
    password = data.get("password")
    if not username or not password:
        return jsonify({"error": "username/email and password required", "code": "validation_error"}), 400

    try:
        org_id = parse_optional_int(data.get("org_id"), field="org_id")
        user = auth_service.authenticate(username, password, org_id=org_id)
        if user is None:
            return jsonify({"error": "Invalid credentials", "code": "unauthorized"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
            "user": user.to_dict(),
        })
    except ValidationError as e:
        return error_response(e)
    except Exception:
        return internal_error("Login")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"})


@auth_bp.get("/me")
@require_auth
def me_route():
    context = g.session_context
    return jsonify({
        "user": g.current_user.to_dict(),
        "org_id": context.org_id,
        "role": context.role,
    })
