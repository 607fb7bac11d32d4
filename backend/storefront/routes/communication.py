# Overview: Flask API routes for staff-initiated customer email and SMS.

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError as DTOValidationError

from ..decorators import require_auth, require_staff
from ..schemas import OrderEmailRequest, SmsBulkRequest, SmsSendRequest, validation_errors
from ..services import communication_service, notification_service
from ..services.notification_service import NotificationError

communication_bp = Blueprint("communication", __name__, url_prefix="/api/communication")

COMMUNICATION_CHANNELS = ("email", "sms")


@communication_bp.post("/email/order")
@require_auth
@require_staff
def email_order():
    """Send an order email now (confirmation, status_update, shipping, delivery)."""
    try:
        data = OrderEmailRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        result = communication_service.send_order_email(data.order_id, data.email_type, data.custom_message)
    except NotificationError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send order email")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result), 200 if result["sent"] else 502


@communication_bp.post("/sms/send")
@require_auth
@require_staff
def sms_send():
    try:
        data = SmsSendRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    try:
        result = communication_service.send_sms(data.phone_number, data.message, data.order_id)
    except NotificationError as e:
        return jsonify({"error": str(e)}), e.status_code

    return jsonify(result), 200 if result["sent"] else 502


@communication_bp.post("/sms/bulk")
@require_auth
@require_staff
def sms_bulk():
    try:
        data = SmsBulkRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400

    result = communication_service.send_bulk_sms(data.recipients, data.message_template)
    return jsonify(result), 200


@communication_bp.get("/logs")
@require_auth
@require_staff
def logs():
    """Email and SMS delivery history; filter with ?type=email|sms."""
    channel = request.args.get("type") or None
    if channel is not None and channel not in COMMUNICATION_CHANNELS:
        return jsonify({"error": f"type must be one of {', '.join(COMMUNICATION_CHANNELS)}"}), 400

    limit = request.args.get("limit", 50, type=int)
    if channel:
        entries = notification_service.list_logs(channel=channel, limit=limit)
    else:
        entries = [
            e for e in notification_service.list_logs(limit=limit * 2)
            if e.channel in COMMUNICATION_CHANNELS
        ][:limit]
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
