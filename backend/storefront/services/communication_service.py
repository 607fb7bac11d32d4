# Overview: Staff-initiated customer messages (order emails and SMS); synchronous and logged.

from __future__ import annotations

from ..extensions import db
from ..models import Order
from . import notification_service
from .notification_service import Delivery, NotificationError


def send_order_email(order_id: int, email_type: str, custom_message: str | None = None) -> dict:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotificationError("Order not found", status_code=404)

    delivery = notification_service.customer_order_email(order, email_type, custom_message)
    ok, error = notification_service.deliver_now(delivery)
    return {"sent": ok, "recipient": order.customer_email, "subject": delivery.subject, "error": error}


def _sms(phone_number: str, body: str, order_id: int | None = None, event: str = "sms") -> Delivery:
    return Delivery(
        event=event,
        channel="sms",
        recipient=phone_number,
        content={"body": body},
        order_id=order_id,
        summary=body[:255],
    )


def send_sms(phone_number: str, message: str, order_id: int | None = None) -> dict:
    if order_id is not None and not db.session.get(Order, order_id):
        raise NotificationError("Order not found", status_code=404)

    delivery = _sms(phone_number, message, order_id)
    ok, error = notification_service.deliver_now(delivery)
    return {"sent": ok, "phone_number": phone_number, "sid": delivery.meta.get("sid"), "error": error}


def send_bulk_sms(recipients: list, message_template: str) -> dict:
    """
    Personalize and send one SMS per recipient.

    Placeholders: {customer_name}, {phone_number}. One failure does not stop
    the batch.
    """
    results = []
    for recipient in recipients:
        body = (
            message_template
            .replace("{customer_name}", recipient.customer_name)
            .replace("{phone_number}", recipient.phone_number)
        )
        delivery = _sms(recipient.phone_number, body, event="sms_bulk")
        ok, error = notification_service.deliver_now(delivery)
        results.append({
            "phone_number": recipient.phone_number,
            "customer_name": recipient.customer_name,
            "status": "success" if ok else "failed",
            "sid": delivery.meta.get("sid"),
            "error": error,
        })

    success = sum(1 for r in results if r["status"] == "success")
    return {
        "success_count": success,
        "failure_count": len(results) - success,
        "results": results,
    }
