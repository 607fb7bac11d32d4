# Overview: Flask API routes for catalog management; parses input and returns JSON responses.

# backend/storefront/routes/products.py
"""
Product management routes.

SECURITY: All routes require a staff token (admin or manager).
Images are registered by URL; file uploads are not handled here.
"""
from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_staff
from ..models import Product
from ..services import catalog_service
from ..services.catalog_service import COLLECTION_KEYS, CatalogError
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "title", "description", "price_cents", "original_price_cents", "sale_price_cents",
        "is_on_sale", "category_id", "stock_quantity", "is_active", "is_featured",
    }),
    required_on_create=frozenset({"title", "price_cents"}),
    extra_fields=frozenset(COLLECTION_KEYS),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() == "true"


@products_bp.get("")
@require_auth
@require_staff
def list_products():
    """
    List products (including inactive) with optional pagination.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    - search, category_id, active
    """
    result = catalog_service.list_products(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        active=_parse_bool_arg("active"),
    )
    return result, 200


@products_bp.get("/<int:product_id>")
@require_auth
@require_staff
def get_product(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except CatalogError as e:
        return {"error": str(e)}, e.status_code
    return {"product": product.to_dict()}, 200


@products_bp.post("")
@require_auth
@require_staff
def create_product():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CatalogError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_staff
def update_product(product_id: int):
    """Partial update; collection keys present in the body replace the stored collection."""
    payload = request.get_json(silent=True) or {}

    try:
        product = catalog_service.get_product(product_id)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch, current={
            "price_cents": product.price_cents,
            "sale_price_cents": product.sale_price_cents,
            "is_on_sale": product.is_on_sale,
        })
        product = catalog_service.update_product(product_id, patch, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CatalogError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}, 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_staff
def delete_product(product_id: int):
    """Soft delete: the product disappears from the storefront, history stays."""
    try:
        catalog_service.deactivate_product(product_id)
    except CatalogError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200


@products_bp.delete("/<int:product_id>/images/<int:image_id>")
@require_auth
@require_staff
def delete_image(product_id: int, image_id: int):
    try:
        product = catalog_service.delete_product_image(product_id, image_id)
    except CatalogError as e:
        return {"error": str(e)}, e.status_code
    return {"product": product.to_dict()}, 200


@products_bp.put("/<int:product_id>/primary-image")
@require_auth
@require_staff
def set_primary_image(product_id: int):
    payload = request.get_json(silent=True) or {}
    image_id = payload.get("image_id")
    if not isinstance(image_id, int) or isinstance(image_id, bool):
        return {"error": "image_id required"}, 400

    try:
        product = catalog_service.set_primary_image(product_id, image_id)
    except CatalogError as e:
        return {"error": str(e)}, e.status_code
    return {"product": product.to_dict()}, 200
