# Overview: Request decorators for API routes; establishes tenant and actor context.

from functools import wraps
from flask import request, jsonify, g

from .errors import NotFoundError
from .services.tenant_service import get_active_tenant


TENANT_HEADER = "X-Tenant-Id"
ACTOR_HEADER = "X-Actor-Id"


def require_tenant(f):
    """
    Establish tenant context for a workflow route.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.tenant_id: The tenant ID - REQUIRED on every workflow call
    - g.actor_id: Free-form operator identifier recorded in audit entries (optional)

    Returns 400 if the header is missing or not an integer and 404 if the
    tenant does not exist or is inactive. Authentication happens upstream.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(TENANT_HEADER) or "").strip()
        if not raw.isdigit():
            return jsonify({"error": f"{TENANT_HEADER} header required", "code": "TENANT_REQUIRED"}), 400

        try:
            tenant = get_active_tenant(int(raw))
        except NotFoundError as e:
            return jsonify({"error": str(e), "code": e.code}), 404

        g.tenant_id = tenant.id
        g.actor_id = (request.headers.get(ACTOR_HEADER) or "").strip()[:64] or None

        return f(*args, **kwargs)

    return decorated_function
