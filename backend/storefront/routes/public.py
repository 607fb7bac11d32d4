# Overview: Flask API routes used by the storefront itself; catalog reads, order intake, and contact form.

"""
Public storefront routes.

SECURITY: Every route requires the shared storefront key (x-api-key).
Only active products and categories are exposed.
"""

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError as DTOValidationError

from ..decorators import require_api_key
from ..extensions import dispatcher
from ..schemas import ContactMessage, OrderCreate, validation_errors
from ..services import catalog_service, order_service
from ..services.catalog_service import CatalogError
from ..services.order_service import OrderError

public_bp = Blueprint("public", __name__, url_prefix="/api/public")


@public_bp.get("/products")
@require_api_key
def list_products():
    """
    Active products.

    Query params: search, category_id, featured (true/false), page, per_page.
    """
    featured = request.args.get("featured")
    result = catalog_service.list_products(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        active=True,
        featured=None if featured is None else featured.lower() == "true",
    )
    return jsonify(result), 200


@public_bp.get("/featured-products")
@require_api_key
def featured_products():
    products = catalog_service.list_featured_products()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@public_bp.get("/products/<int:product_id>")
@require_api_key
def get_product(product_id: int):
    try:
        product = catalog_service.get_product(product_id, active_only=True)
    except CatalogError as e:
        return jsonify({"error": str(e)}), e.status_code
    return jsonify({"product": product.to_dict()}), 200


@public_bp.get("/categories")
@require_api_key
def list_categories():
    categories = catalog_service.list_categories(active_only=True)
    return jsonify({"items": categories, "count": len(categories)}), 200


@public_bp.post("/orders")
@require_api_key
def create_order():
    """
    Submit a cart as an order inquiry.

    Returns 201 once the order and all items are stored. Notifications are
    dispatched afterwards and never change the response.
    """
    try:
        data = OrderCreate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        order = order_service.create_order(data)
    except OrderError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "order": order.to_dict(include_items=True),
        "message": "Order received. We will contact you to confirm it.",
    }), 201


@public_bp.post("/contact")
@require_api_key
def contact():
    try:
        data = ContactMessage.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    dispatcher.enqueue(
        "contact_message",
        name=data.name,
        email=str(data.email),
        subject=data.subject,
        message=data.message,
    )
    return jsonify({
        "ok": True,
        "message": "Thank you for your message! We will get back to you within 24 hours.",
    }), 200
