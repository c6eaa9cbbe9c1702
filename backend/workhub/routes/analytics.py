# Overview: Flask API routes for analytics cache inspection and invalidation.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_FINANCE, ROLE_MANAGER
from ..services.cache_service import get_cache


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/cache")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_FINANCE)
def cache_stats_route():
    return jsonify(get_cache().get_stats(g.org_id))


@analytics_bp.delete("/cache")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_FINANCE)
def invalidate_cache_route():
    """Drop the organization's cached analytics; ?cache_type= narrows to one type."""
    cache_type = request.args.get("cache_type") or None
    removed = get_cache().invalidate(g.org_id, cache_type)
    return jsonify({"invalidated": True, "cache_type": cache_type, "rows_removed": removed})
