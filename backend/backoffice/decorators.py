# Overview: Request decorators establishing tenant and caller context for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import TenantAccessError
from .services.tenant_service import require_company as require_company_row

COMPANY_HEADER = "X-Company-Id"
USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

# Roles allowed to move stock through purchase postings and reversals
STOCK_POSTING_ROLES = ("admin", "manager", "super_admin")

# Matches the created_by/posted_by/reversed_by columns
MAX_ACTOR_LENGTH = 64


def require_company(f):
    """
    Establish tenant context from the X-Company-Id header.

    Authentication happens upstream; the gateway forwards the resolved
    company and caller identity as headers.

    Sets the following Flask g attributes:
    - g.company_id: Tenant id (validated: exists and is active)
    - g.actor: Caller identity from X-User-Id (may be None)
    - g.user_role: Lower-cased X-User-Role (may be None)

    Returns 400 when the header is missing or not an integer, or when
    X-User-Id is longer than MAX_ACTOR_LENGTH; 403 when the
    company is unknown or inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(COMPANY_HEADER)
        if not raw:
            return jsonify({"error": f"{COMPANY_HEADER} header is required", "kind": "validation"}), 400
        try:
            company_id = int(raw)
        except ValueError:
            return jsonify({"error": f"{COMPANY_HEADER} must be an integer", "kind": "validation"}), 400

        try:
            require_company_row(company_id)
        except TenantAccessError as e:
            current_app.logger.warning(
                "TENANT_CONTEXT_REJECTED company_id=%s path=%s reason=%s",
                company_id,
                request.path,
                e.message,
            )
            return jsonify(e.to_dict()), e.http_status

        actor = (request.headers.get(USER_ID_HEADER) or "").strip() or None
        if actor is not None and len(actor) > MAX_ACTOR_LENGTH:
            return jsonify({
                "error": f"{USER_ID_HEADER} cannot exceed {MAX_ACTOR_LENGTH} characters",
                "kind": "validation",
            }), 400

        g.company_id = company_id
        g.actor = actor
        role = request.headers.get(USER_ROLE_HEADER)
        g.user_role = role.strip().lower() if role else None

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the caller's role to be one of roles.

    Must be applied after @require_company.
    """
    allowed = {r.lower() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "company_id"):
                return jsonify({"error": "Company context required", "kind": "forbidden"}), 403

            role = getattr(g, "user_role", None)
            if role not in allowed:
                current_app.logger.warning(
                    "PERMISSION_DENIED company_id=%s actor=%s role=%s path=%s",
                    g.company_id,
                    getattr(g, "actor", None),
                    role,
                    request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "kind": "forbidden",
                    "required_roles": sorted(allowed),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
