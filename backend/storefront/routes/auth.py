# Overview: Flask API routes for staff authentication; login, token refresh, logout, and user management.

from flask import Blueprint, current_app, g, jsonify, request
from pydantic import ValidationError as DTOValidationError

from ..decorators import require_admin, require_auth
from ..schemas import LoginRequest, RefreshRequest, UserCreate, validation_errors
from ..services import auth_service, token_service
from ..services.auth_service import AuthError, PasswordValidationError
from ..services.token_service import TokenError

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    """
    Exchange username/email + password for an access/refresh token pair.

    Returns 401 with a generic message for any credential failure.
    """
    try:
        data = LoginRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    user = auth_service.authenticate(data.username, data.password)
    if not user:
        current_app.logger.info("Failed login for %s", data.username)
        return jsonify({"error": "Invalid credentials"}), 401

    tokens = token_service.issue_tokens(user)
    return jsonify({"user": user.to_dict(), **tokens.to_dict()}), 200


@auth_bp.post("/refresh")
def refresh():
    """Rotate the refresh token; the presented token stops working."""
    try:
        data = RefreshRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        user, tokens = token_service.rotate_refresh_token(data.refresh_token)
    except TokenError as e:
        return jsonify({"error": str(e)}), 401

    return jsonify({"user": user.to_dict(), **tokens.to_dict()}), 200


@auth_bp.post("/logout")
@require_auth
def logout():
    token_service.revoke_refresh_token(g.current_user)
    return jsonify({"ok": True}), 200


@auth_bp.get("/profile")
@require_auth
def profile():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.get("/users")
@require_auth
@require_admin
def list_users():
    users = auth_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@auth_bp.post("/users")
@require_auth
@require_admin
def create_user():
    try:
        data = UserCreate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        user = auth_service.create_user(
            username=data.username,
            email=str(data.email),
            password=data.password,
            role=data.role,
            full_name=data.full_name,
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AuthError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict()}), 201
