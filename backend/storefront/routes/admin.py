# Overview: Flask API routes for the signed-in staff member's own profile and password.

from flask import Blueprint, current_app, g, jsonify, request
from pydantic import ValidationError as DTOValidationError

from ..decorators import require_auth, require_staff
from ..schemas import ChangePasswordRequest, ProfileUpdate, validation_errors
from ..services import auth_service
from ..services.auth_service import AuthError, PasswordValidationError

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/profile")
@require_auth
@require_staff
def get_profile():
    return jsonify({"user": g.current_user.to_dict()}), 200


@admin_bp.put("/profile")
@require_auth
@require_staff
def update_profile():
    try:
        data = ProfileUpdate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    patch = data.model_dump(exclude_unset=True)
    if "email" in patch and patch["email"] is not None:
        patch["email"] = str(patch["email"])

    try:
        user = auth_service.update_profile(g.current_user, patch)
    except AuthError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict()}), 200


@admin_bp.put("/change-password")
@require_auth
@require_staff
def change_password():
    """
    Change own password.

    Requires the current password; the new one must pass the strength rules
    and match confirm_password. Outstanding refresh tokens are revoked.
    """
    try:
        data = ChangePasswordRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        auth_service.change_password(g.current_user, data.current_password, data.new_password)
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AuthError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True, "message": "Password changed successfully"}), 200
