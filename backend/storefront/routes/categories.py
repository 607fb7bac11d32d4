# Overview: Flask API routes for category management.

from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_staff
from ..models import Category
from ..services import catalog_service
from ..services.catalog_service import CatalogError
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_category,
    validate_payload,
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description", "image_url", "sort_order", "is_active"}),
    required_on_create=frozenset({"name"}),
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
@require_staff
def list_categories():
    active_only = request.args.get("active", "").lower() == "true"
    categories = catalog_service.list_categories(active_only=active_only)
    return {"items": categories, "count": len(categories)}, 200


@categories_bp.get("/<int:category_id>")
@require_auth
@require_staff
def get_category(category_id: int):
    try:
        category = catalog_service.get_category(category_id)
    except CatalogError as e:
        return {"error": str(e)}, e.status_code
    return {"category": category.to_dict()}, 200


@categories_bp.post("")
@require_auth
@require_staff
def create_category():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        enforce_rules_category(patch)
        category = catalog_service.create_category(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500
    return {"category": category.to_dict()}, 201


@categories_bp.put("/<int:category_id>")
@require_auth
@require_staff
def update_category(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        enforce_rules_category(patch)
        category = catalog_service.update_category(category_id, patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except CatalogError as e:
        return {"error": str(e)}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return {"error": "Internal server error"}, 500
    return {"category": category.to_dict()}, 200


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_staff
def delete_category(category_id: int):
    """Refused with 409 while active products reference the category."""
    try:
        catalog_service.delete_category(category_id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except CatalogError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200
