# Overview: Flask API routes for dashboard reporting and the customer directory.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_staff
from ..services import customer_service, reporting_service
from ..services.customer_service import CustomerNotFoundError

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")
customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@reports_bp.get("")
@require_auth
@require_staff
def dashboard():
    try:
        data = reporting_service.dashboard(g.current_user.id)
    except Exception:
        current_app.logger.exception("Failed to build dashboard report")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(data), 200


@customers_bp.get("")
@require_auth
@require_staff
def list_customers():
    result = customer_service.list_customers(
        search=request.args.get("search") or None,
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    return jsonify(result), 200


@customers_bp.get("/<path:email>")
@require_auth
@require_staff
def get_customer(email: str):
    try:
        customer = customer_service.get_customer(email)
    except CustomerNotFoundError:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"customer": customer}), 200
