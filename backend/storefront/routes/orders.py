# Overview: Flask API routes for order management; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""Order lifecycle routes (staff only)."""

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request
from pydantic import ValidationError as DTOValidationError

from ..decorators import require_auth, require_staff
from ..models import OrderStatus, PaymentStatus
from ..schemas import AdminNotesUpdate, OrderStatusUpdate, PaymentUpdate, validation_errors
from ..services import order_service
from ..services.order_service import OrderError
from ..time_utils import parse_iso_datetime

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_error(e: OrderError):
    return jsonify({"error": str(e), "details": e.details}), e.status_code


@orders_bp.get("")
@require_auth
@require_staff
def list_orders():
    """
    Query params: page, limit (max 100), status, payment_status, search,
    date_from, date_to, sort, order (ASC/DESC).

    A bare date (YYYY-MM-DD) for date_to covers the whole day.
    """
    try:
        created_from = parse_iso_datetime(request.args.get("date_from"))
        date_to = request.args.get("date_to")
        created_before = parse_iso_datetime(date_to)
    except ValueError:
        return jsonify({"error": "date_from and date_to must be ISO-8601 dates"}), 400
    if created_before is not None and len(date_to.strip()) == 10:
        created_before += timedelta(days=1)

    result = order_service.list_orders(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", order_service.DEFAULT_LIMIT, type=int),
        status=request.args.get("status") or None,
        payment_status=request.args.get("payment_status") or None,
        search=request.args.get("search") or None,
        created_from=created_from,
        created_before=created_before,
        sort=request.args.get("sort", "created_at"),
        direction=request.args.get("order", "DESC"),
    )
    return jsonify(result), 200


@orders_bp.get("/stats/overview")
@require_auth
@require_staff
def stats_overview():
    return jsonify(order_service.order_stats(days=30)), 200


@orders_bp.get("/search/customers")
@require_auth
@require_staff
def search_customers():
    q = (request.args.get("q") or "").strip()
    if len(q) < 2:
        return jsonify({"error": "Search query must be at least 2 characters"}), 400
    return jsonify({"items": order_service.search_customers(q)}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
@require_staff
def get_order(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except OrderError as e:
        return _order_error(e)
    return jsonify({"order": order.to_dict(include_items=True)}), 200


@orders_bp.post("/<int:order_id>/confirm")
@require_auth
@require_staff
def confirm_order(order_id: int):
    """
    Confirm a Pending order: validate and decrement stock for all items.

    404 if the order is missing or not Pending; 400 on insufficient stock
    (no stock changes are made).
    """
    try:
        order = order_service.confirm_order(order_id, g.current_user.id)
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to confirm order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "order": order.to_dict(include_items=True),
        "message": "Order confirmed and stock updated",
    }), 200


@orders_bp.post("/<int:order_id>/mark-sold")
@require_auth
@require_staff
def mark_sold(order_id: int):
    """
    Finalize a Confirmed order and credit the caller's balance.

    404 if the order is missing or not Confirmed.
    """
    try:
        order, txn = order_service.mark_order_sold(order_id, g.current_user.id)
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to mark order sold")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "order": order.to_dict(),
        "transaction": txn.to_dict(),
        "message": "Order marked as sold",
    }), 200


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_staff
def cancel_order(order_id: int):
    try:
        order = order_service.cancel_order(order_id, g.current_user.id)
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<int:order_id>/status")
@require_auth
@require_staff
def update_status(order_id: int):
    """Generic transition; Confirmed/Sold/Cancelled run their full workflows."""
    try:
        data = OrderStatusUpdate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        order = order_service.change_status(order_id, OrderStatus(data.status), g.current_user.id)
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<int:order_id>/payment")
@require_auth
@require_staff
def update_payment(order_id: int):
    try:
        data = PaymentUpdate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        order = order_service.update_payment(order_id, PaymentStatus(data.payment_status), data.payment_method)
    except OrderError as e:
        return _order_error(e)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<int:order_id>/notes")
@require_auth
@require_staff
def update_notes(order_id: int):
    try:
        data = AdminNotesUpdate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        order = order_service.update_admin_notes(order_id, data.admin_notes)
    except OrderError as e:
        return _order_error(e)
    return jsonify({"order": order.to_dict()}), 200
