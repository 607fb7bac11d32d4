# Overview: Flask API routes for notification settings, delivery tests, logs, and the admin inbox.

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError as DTOValidationError

from ..decorators import require_auth, require_staff
from ..models import LOG_CHANNELS, NOTIFICATION_TYPES
from ..schemas import (
    NotificationSettingsUpdate,
    OrderWebhookTrigger,
    TestEmailRequest,
    TestWebhookRequest,
    WebhookSettingsUpdate,
    validation_errors,
)
from ..services import notification_service, stock_monitor
from ..services.notification_service import NotificationError

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _validation_failed(e: DTOValidationError):
    return jsonify({"error": "Validation failed", "errors": validation_errors(e)}), 400


def _notification_error(e: NotificationError):
    return jsonify({"error": str(e), "details": e.details}), e.status_code


@notifications_bp.get("/settings")
@require_auth
@require_staff
def get_settings():
    return jsonify({"settings": notification_service.get_settings().to_dict()}), 200


@notifications_bp.put("/settings")
@require_auth
@require_staff
def update_settings():
    try:
        data = NotificationSettingsUpdate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return _validation_failed(e)

    try:
        settings = notification_service.update_settings(data)
    except NotificationError as e:
        return _notification_error(e)
    return jsonify({"settings": settings.to_dict()}), 200


@notifications_bp.get("/webhook-settings")
@require_auth
@require_staff
def get_webhook_settings():
    settings = notification_service.get_settings()
    return jsonify({
        "webhook_notifications_enabled": settings.webhook_notifications_enabled,
        "slack_webhook_url": settings.slack_webhook_url,
        "discord_webhook_url": settings.discord_webhook_url,
        "custom_webhook_url": settings.custom_webhook_url,
    }), 200


@notifications_bp.put("/webhook-settings")
@require_auth
@require_staff
def update_webhook_settings():
    try:
        data = WebhookSettingsUpdate.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return _validation_failed(e)

    try:
        settings = notification_service.update_webhook_settings(data)
    except NotificationError as e:
        return _notification_error(e)
    return jsonify({"settings": settings.to_dict()}), 200


@notifications_bp.post("/test-email")
@require_auth
@require_staff
def test_email():
    """Send one test email (body admin_email, else the configured one)."""
    try:
        data = TestEmailRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return _validation_failed(e)

    recipient = str(data.admin_email) if data.admin_email else notification_service.get_settings().admin_email
    if not recipient:
        return jsonify({"error": "No admin email configured"}), 400

    ok, error = notification_service.deliver_now(notification_service.ping_email_delivery(recipient))
    if not ok:
        return jsonify({"error": "Failed to send test email", "details": {"reason": error}}), 502
    return jsonify({"ok": True, "recipient": recipient}), 200


@notifications_bp.post("/test-webhook")
@require_auth
@require_staff
def test_webhook():
    """POST a test payload to one platform's webhook (body URL overrides settings)."""
    try:
        data = TestWebhookRequest.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return _validation_failed(e)

    url = data.webhook_url or notification_service.webhook_url_for(
        notification_service.get_settings(), data.platform
    )
    if not url:
        return jsonify({"error": f"No {data.platform} webhook URL configured"}), 400

    ok, error = notification_service.deliver_now(notification_service.ping_webhook_delivery(data.platform, url))
    if not ok:
        return jsonify({"error": "Webhook test failed", "details": {"reason": error}}), 502
    return jsonify({"ok": True, "platform": data.platform}), 200


@notifications_bp.post("/trigger/order")
@require_auth
@require_staff
def trigger_order_webhooks():
    """Manually re-send an existing order to the configured webhooks."""
    try:
        data = OrderWebhookTrigger.model_validate(request.get_json(silent=True) or {})
    except DTOValidationError as e:
        return _validation_failed(e)

    try:
        results = notification_service.resend_order_webhooks(data.order_id)
    except NotificationError as e:
        return _notification_error(e)

    sent = sum(1 for r in results if r["sent"])
    return jsonify({"ok": sent == len(results), "sent": sent, "results": results}), 200


@notifications_bp.get("/logs")
@require_auth
@require_staff
def list_logs():
    channel = request.args.get("channel") or None
    if channel is not None and channel not in LOG_CHANNELS:
        return jsonify({"error": f"channel must be one of {', '.join(LOG_CHANNELS)}"}), 400

    logs = notification_service.list_logs(
        channel=channel,
        event=request.args.get("event") or None,
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify({"items": [entry.to_dict() for entry in logs], "count": len(logs)}), 200


@notifications_bp.post("/check-low-stock")
@require_auth
@require_staff
def check_low_stock():
    """Run the low-stock scan now (same path as the hourly monitor)."""
    try:
        result = stock_monitor.check_low_stock()
    except Exception:
        current_app.logger.exception("Failed to run low stock check")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(result), 200


# -- inbox -------------------------------------------------------------------

@notifications_bp.get("/inbox")
@require_auth
@require_staff
def list_inbox():
    type_ = request.args.get("type") or None
    if type_ is not None and type_ not in NOTIFICATION_TYPES:
        return jsonify({"error": f"type must be one of {', '.join(NOTIFICATION_TYPES)}"}), 400

    result = notification_service.list_inbox(
        type_=type_,
        unread_only=request.args.get("unread_only", "").lower() == "true",
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    return jsonify(result), 200


@notifications_bp.get("/inbox/unread-count")
@require_auth
@require_staff
def unread_count():
    return jsonify({"unread": notification_service.unread_count()}), 200


@notifications_bp.put("/inbox/mark-all-read")
@require_auth
@require_staff
def mark_all_read():
    updated = notification_service.mark_all_read()
    return jsonify({"ok": True, "updated": updated}), 200


@notifications_bp.put("/inbox/<int:notification_id>/read")
@require_auth
@require_staff
def mark_read(notification_id: int):
    try:
        note = notification_service.mark_read(notification_id)
    except NotificationError as e:
        return _notification_error(e)
    return jsonify({"notification": note.to_dict()}), 200


@notifications_bp.delete("/inbox/<int:notification_id>")
@require_auth
@require_staff
def delete_notification(notification_id: int):
    try:
        notification_service.delete_notification(notification_id)
    except NotificationError as e:
        return _notification_error(e)
    return jsonify({"ok": True}), 200
