# Overview: Request decorators for API routes (actor and tenant context).

from functools import wraps
from flask import request, jsonify, g, current_app


def _header_int(name: str):
    raw = request.headers.get(name, "").strip()
    if not raw.isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


def require_actor(f):
    """
    Establish tenant and actor context from the upstream auth gateway.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.org_id: Organization the request acts on (X-Org-Id) - REQUIRED
    - g.user_id: Authenticated user performing it (X-User-Id) - REQUIRED

    SECURITY: Authentication happens in front of this service; the headers
    are trusted as set by the gateway. Missing or malformed headers -> 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        org_id = _header_int("X-Org-Id")
        user_id = _header_int("X-User-Id")
        if org_id is None or user_id is None:
            current_app.logger.warning("Rejected %s %s: missing actor headers", request.method, request.path)
            return jsonify({"error": "Authentication required"}), 401

        g.org_id = org_id
        g.user_id = user_id
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON object, or {} when the body is empty or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
