# Overview: Request authentication decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .services import token_service
from .services.token_service import TokenError

STAFF_ROLES = ("admin", "manager")


def require_auth(f):
    """
    Require a valid Bearer access token.

    Sets g.current_user to the authenticated, active User.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or wrong-type token
    - User account missing or deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        try:
            user = token_service.user_for_access_token(token)
        except TokenError:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                return jsonify({"error": "Authentication required"}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_staff = require_role(*STAFF_ROLES)
require_admin = require_role("admin")


def _presented_api_key() -> str | None:
    return (
        request.headers.get("x-api-key")
        or request.headers.get("x-private-key")
        or request.args.get("apiKey")
    )


def require_api_key(f):
    """
    Require the shared storefront key on public routes.

    401 when no key is presented, 403 when it does not match.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        presented = _presented_api_key()
        if not presented:
            return jsonify({"error": "API key required"}), 401

        expected = current_app.config.get("PRIVATE_API_KEY") or ""
        if not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
            current_app.logger.warning("Rejected public request with invalid API key from %s", request.remote_addr)
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)

    return decorated_function
