# Overview: Service-layer operations for notifications; settings, message formatting, delivery logging, and the inbox.

"""
Notification Service

WHY: Order and stock events fan out to several independent endpoints
(customer email, admin email, generic/Slack/Discord/custom webhooks).
Each endpoint is a separate Delivery so one failing endpoint never blocks
another, and every attempt leaves a NotificationLog row.

Events handled:
- order_created:    inbox entry, customer receipt, admin alert, webhooks
- order_confirmed:  customer confirmation email
- low_stock:        inbox entry, admin email, webhooks
- contact_message:  inbox entry, admin email
"""
from __future__ import annotations

from dataclasses import dataclass, field
from html import escape

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    Notification,
    NotificationLog,
    NotificationSettings,
    Order,
    Product,
    SETTINGS_ROW_ID,
)
from ..time_utils import to_utc_z, utcnow
from . import channels
from .channels import ChannelError

SLACK_COLORS = {"order": "good", "stock": "warning", "test": "#439FE0"}
DISCORD_COLORS = {"order": 0x2ECC71, "stock": 0xF1C40F, "test": 0x3498DB}
WEBHOOK_TYPES = {"order_created": "order", "low_stock": "stock", "test": "test"}


class NotificationError(Exception):
    """Raised for invalid notification settings or requests."""
    def __init__(self, message: str, status_code: int = 400, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


@dataclass
class Delivery:
    """One message to one endpoint. `content` depends on the channel."""
    event: str
    channel: str
    recipient: str
    content: dict
    platform: str | None = None
    subject: str | None = None
    order_id: int | None = None
    product_count: int | None = None
    summary: str | None = None
    meta: dict = field(default_factory=dict)


def format_money(cents: int | None) -> str:
    currency = current_app.config.get("CURRENCY", "ETB")
    return f"{currency} {(cents or 0) / 100:,.2f}"


# -- settings ----------------------------------------------------------------

def get_settings() -> NotificationSettings:
    """Return the settings singleton, creating it with defaults if missing."""
    settings = db.session.get(NotificationSettings, SETTINGS_ROW_ID)
    if settings is None:
        settings = NotificationSettings(
            id=SETTINGS_ROW_ID,
            admin_email=current_app.config.get("ADMIN_EMAIL") or None,
        )
        db.session.add(settings)
        db.session.commit()
    return settings


WEBHOOK_URL_REQUIRED = "At least one webhook URL is required when webhooks are enabled"


def _has_other_webhook(settings: NotificationSettings, replacing: str) -> bool:
    return any(platform != replacing for platform, _ in settings.webhook_endpoints())


def update_settings(data) -> NotificationSettings:
    """
    Apply NotificationSettingsUpdate; enabled channels need a destination.

    Webhooks count as configured when any endpoint is set, including the
    Slack, Discord or custom URLs saved through the webhook settings.
    """
    if data.email_notifications_enabled and not data.admin_email:
        raise NotificationError("admin_email is required when email notifications are enabled")
    if data.sms_notifications_enabled and not data.admin_phone:
        raise NotificationError("admin_phone is required when SMS notifications are enabled")

    settings = get_settings()
    if data.webhook_notifications_enabled and not (data.webhook_url or _has_other_webhook(settings, "generic")):
        raise NotificationError(WEBHOOK_URL_REQUIRED)

    settings.low_stock_threshold = data.low_stock_threshold
    settings.email_notifications_enabled = data.email_notifications_enabled
    settings.admin_email = str(data.admin_email) if data.admin_email else None
    settings.webhook_notifications_enabled = data.webhook_notifications_enabled
    settings.webhook_url = data.webhook_url or None
    settings.sms_notifications_enabled = data.sms_notifications_enabled
    settings.admin_phone = data.admin_phone or None
    db.session.commit()
    return settings


def update_webhook_settings(data) -> NotificationSettings:
    urls = {
        "slack_webhook_url": data.slack_webhook_url or None,
        "discord_webhook_url": data.discord_webhook_url or None,
        "custom_webhook_url": data.custom_webhook_url or None,
    }
    settings = get_settings()
    if data.webhook_notifications_enabled and not (any(urls.values()) or settings.webhook_url):
        raise NotificationError(WEBHOOK_URL_REQUIRED)

    settings.webhook_notifications_enabled = data.webhook_notifications_enabled
    for key, value in urls.items():
        setattr(settings, key, value)
    db.session.commit()
    return settings


# -- inbox -------------------------------------------------------------------

def create_inbox_notification(type_: str, title: str, message: str, data: dict | None = None) -> Notification:
    note = Notification(type=type_, title=title, message=message, data=data)
    db.session.add(note)
    db.session.commit()
    return note


def list_inbox(*, type_: str | None = None, unread_only: bool = False, page: int = 1, limit: int = 20) -> dict:
    page = max(page or 1, 1)
    limit = min(max(limit or 20, 1), 100)
    query = db.session.query(Notification)
    if type_:
        query = query.filter(Notification.type == type_)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))

    total = query.count()
    rows = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [n.to_dict() for n in rows],
        "page": page,
        "limit": limit,
        "total": total,
        "unread": unread_count(),
    }


def unread_count() -> int:
    return db.session.query(Notification).filter(Notification.is_read.is_(False)).count()


def mark_read(notification_id: int) -> Notification:
    note = db.session.get(Notification, notification_id)
    if not note:
        raise NotificationError("Notification not found", status_code=404)
    note.is_read = True
    db.session.commit()
    return note


def mark_all_read() -> int:
    updated = (
        db.session.query(Notification)
        .filter(Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def delete_notification(notification_id: int) -> None:
    note = db.session.get(Notification, notification_id)
    if not note:
        raise NotificationError("Notification not found", status_code=404)
    db.session.delete(note)
    db.session.commit()


# -- delivery log ------------------------------------------------------------

def log_attempt(delivery: Delivery, attempt: int, error: str | None = None) -> None:
    """Append one NotificationLog row. Logging failures never propagate."""
    entry = NotificationLog(
        event=delivery.event,
        channel=delivery.channel,
        platform=delivery.platform,
        recipient=delivery.recipient,
        subject=delivery.subject,
        message=delivery.summary,
        order_id=delivery.order_id,
        product_count=delivery.product_count,
        status="failed" if error else "sent",
        attempt=attempt,
        error_message=error,
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to write notification log for %s", delivery.event)


def list_logs(*, channel: str | None = None, event: str | None = None, limit: int = 50) -> list[NotificationLog]:
    query = db.session.query(NotificationLog)
    if channel:
        query = query.filter(NotificationLog.channel == channel)
    if event:
        query = query.filter(NotificationLog.event == event)
    limit = min(max(limit or 50, 1), 500)
    return query.order_by(NotificationLog.id.desc()).limit(limit).all()


def send(delivery: Delivery) -> None:
    """Perform one delivery through its channel; raises ChannelError."""
    if delivery.channel == "email":
        channels.send_email(
            delivery.recipient,
            delivery.subject or "",
            delivery.content["html"],
            delivery.content.get("text"),
        )
    elif delivery.channel == "webhook":
        channels.post_webhook(
            delivery.recipient,
            delivery.content["json"],
            platform=delivery.platform or "generic",
            webhook_type=delivery.content.get("type", "notification"),
        )
    elif delivery.channel == "sms":
        delivery.meta["sid"] = channels.send_sms(delivery.recipient, delivery.content["body"])
    else:
        raise ChannelError(f"Unknown channel: {delivery.channel}")


def deliver_now(delivery: Delivery) -> tuple[bool, str | None]:
    """Single synchronous attempt, logged. Used by admin test/communication routes."""
    try:
        send(delivery)
    except ChannelError as exc:
        log_attempt(delivery, 1, str(exc))
        current_app.logger.warning("%s delivery to %s failed: %s", delivery.channel, delivery.recipient, exc)
        return False, str(exc)
    except Exception as exc:
        db.session.rollback()
        error = f"Unexpected error: {exc}"
        log_attempt(delivery, 1, error)
        current_app.logger.exception("%s delivery to %s failed unexpectedly", delivery.channel, delivery.recipient)
        return False, error
    log_attempt(delivery, 1)
    return True, None


# -- formatting --------------------------------------------------------------

def _admin_url(path: str) -> str:
    return f"{current_app.config['FRONTEND_URL'].rstrip('/')}/admin/{path.lstrip('/')}"


def _items_table(order: Order) -> str:
    rows = "".join(
        f"<tr><td>{escape(item.product_name)}</td><td>{item.quantity}</td>"
        f"<td>{format_money(item.unit_price_cents)}</td><td>{format_money(item.line_total_cents)}</td></tr>"
        for item in order.items
    )
    return (
        "<table cellpadding='6' style='border-collapse:collapse'>"
        "<tr><th align='left'>Item</th><th>Qty</th><th>Price</th><th>Total</th></tr>"
        f"{rows}</table>"
    )


def _email_shell(heading: str, body_html: str) -> str:
    return (
        "<div style='font-family:Arial,sans-serif;max-width:600px;margin:auto'>"
        f"<h2 style='color:#8B4513'>{escape(heading)}</h2>{body_html}"
        "<p style='color:#888;font-size:12px'>Atlantic Leather</p></div>"
    )


ORDER_EMAIL_TEMPLATES = {
    "received": ("We received your order {number}", "Thank you for your order! We will contact you shortly to confirm it."),
    "confirmation": ("Your order {number} is confirmed", "Good news: your order has been confirmed and is being prepared."),
    "status_update": ("Update on order {number}", "The status of your order is now: {status}."),
    "shipping": ("Order {number} is on its way", "Your order has been shipped."),
    "delivery": ("Order {number} delivered", "Your order has been delivered. We hope you enjoy it!"),
}


def customer_order_email(order: Order, kind: str, custom_message: str | None = None) -> Delivery:
    subject_tpl, intro_tpl = ORDER_EMAIL_TEMPLATES[kind]
    subject = subject_tpl.format(number=order.order_number)
    intro = intro_tpl.format(status=order.status)
    extra = f"<p>{escape(custom_message)}</p>" if custom_message else ""
    html = _email_shell(
        subject,
        f"<p>Dear {escape(order.customer_name)},</p><p>{escape(intro)}</p>{extra}"
        f"{_items_table(order)}<p><strong>Total: {format_money(order.total_cents)}</strong></p>",
    )
    text = f"Dear {order.customer_name},\n\n{intro}\n\nOrder {order.order_number}\nTotal: {format_money(order.total_cents)}"
    return Delivery(
        event=f"order_email:{kind}",
        channel="email",
        recipient=order.customer_email,
        subject=subject,
        content={"html": html, "text": text},
        order_id=order.id,
        summary=f"{kind} email for order {order.order_number}",
    )


def admin_order_email(order: Order, admin_email: str) -> Delivery:
    subject = f"New order {order.order_number} from {order.customer_name}"
    html = _email_shell(
        "New Order Received",
        f"<p><strong>{escape(order.customer_name)}</strong><br>{escape(order.customer_email)}<br>"
        f"{escape(order.customer_phone)}</p>{_items_table(order)}"
        f"<p><strong>Total: {format_money(order.total_cents)}</strong></p>"
        f"<p><a href='{_admin_url(f'orders/{order.id}')}'>Open in admin</a></p>",
    )
    return Delivery(
        event="order_created",
        channel="email",
        recipient=admin_email,
        subject=subject,
        content={"html": html},
        order_id=order.id,
        summary=f"Admin alert for order {order.order_number}",
    )


def order_event_payload(order: Order) -> dict:
    return {
        "event": "new_order",
        "timestamp": to_utc_z(utcnow()),
        "order": {
            "id": order.id,
            "order_number": order.order_number,
            "customer_name": order.customer_name,
            "customer_email": order.customer_email,
            "customer_phone": order.customer_phone,
            "total_cents": order.total_cents,
            "status": order.status,
            "created_at": to_utc_z(order.created_at),
            "items": [item.to_dict() for item in order.items],
            "notes": order.notes or "",
        },
        "admin_url": _admin_url(f"orders/{order.id}"),
        "message": f"NEW ORDER {order.order_number} - {order.customer_name} - {format_money(order.total_cents)}",
    }


def low_stock_payload(products: list[Product], threshold: int) -> dict:
    count = len(products)
    return {
        "event": "low_stock_alert",
        "timestamp": to_utc_z(utcnow()),
        "threshold": threshold,
        "product_count": count,
        "products": [
            {
                "id": p.id,
                "title": p.title,
                "stock_quantity": p.stock_quantity,
                "price_cents": p.price_cents,
                "category": p.category.name if p.category else None,
                "image_url": p.primary_image_url,
            }
            for p in products
        ],
        "admin_url": _admin_url("products"),
        "message": f"LOW STOCK ALERT - {count} product{'s' if count != 1 else ''} at or below {threshold} units",
    }


def ping_payload() -> dict:
    return {
        "event": "test",
        "timestamp": to_utc_z(utcnow()),
        "message": "Test notification from Atlantic Leather admin",
    }


def ping_email_delivery(recipient: str) -> Delivery:
    return Delivery(
        event="test",
        channel="email",
        recipient=recipient,
        subject="Atlantic Leather test email",
        content={
            "html": _email_shell("Test Email", "<p>Email notifications are configured correctly.</p>"),
            "text": "Email notifications are configured correctly.",
        },
        summary="Test email",
    )


def ping_webhook_delivery(platform: str, url: str) -> Delivery:
    payload = ping_payload()
    return Delivery(
        event="test",
        channel="webhook",
        platform=platform,
        recipient=url,
        content={"json": format_for_platform(payload, platform, "test"), "type": "test"},
        summary=payload["message"],
    )


def webhook_url_for(settings: NotificationSettings, platform: str) -> str | None:
    return dict(settings.webhook_endpoints()).get(platform)


def _slack_fields(payload: dict) -> list[dict]:
    if payload["event"] == "new_order":
        order = payload["order"]
        items = "\n".join(
            f"• {i['product_name']} ({i['quantity']}x) - {format_money(i['unit_price_cents'])}"
            for i in order["items"]
        )
        return [
            {"title": "Customer", "value": f"{order['customer_name']}\n{order['customer_email']}\n{order['customer_phone']}", "short": True},
            {"title": "Order Details", "value": f"{order['order_number']}\nTotal: {format_money(order['total_cents'])}\nStatus: {order['status']}", "short": True},
            {"title": "Items", "value": items or "-", "short": False},
        ]
    if payload["event"] == "low_stock_alert":
        lines = "\n".join(f"• {p['title']}: {p['stock_quantity']} left" for p in payload["products"])
        return [
            {"title": "Threshold", "value": str(payload["threshold"]), "short": True},
            {"title": "Products", "value": lines or "-", "short": False},
        ]
    return []


def format_for_platform(payload: dict, platform: str, webhook_type: str) -> dict:
    """Shape one event payload for a webhook platform; generic/custom get raw JSON."""
    if platform == "slack":
        fields = _slack_fields(payload)
        return {
            "text": payload["message"],
            "attachments": [{
                "color": SLACK_COLORS.get(webhook_type, "good"),
                "fields": fields,
                "actions": [{"type": "button", "text": "Open admin", "url": payload["admin_url"]}] if payload.get("admin_url") else [],
                "footer": "Atlantic Leather",
            }],
        }
    if platform == "discord":
        fields = [
            {"name": f["title"], "value": f["value"][:1024], "inline": f["short"]}
            for f in _slack_fields(payload)
        ]
        embed = {
            "title": payload["message"],
            "color": DISCORD_COLORS.get(webhook_type, 0x2ECC71),
            "fields": fields,
            "timestamp": payload["timestamp"],
            "footer": {"text": "Atlantic Leather"},
        }
        if payload.get("admin_url"):
            embed["url"] = payload["admin_url"]
        return {"embeds": [embed]}
    return payload


def webhook_deliveries(settings: NotificationSettings, payload: dict, event: str, **extra) -> list[Delivery]:
    webhook_type = WEBHOOK_TYPES.get(event, "notification")
    return [
        Delivery(
            event=event,
            channel="webhook",
            platform=platform,
            recipient=url,
            content={"json": format_for_platform(payload, platform, webhook_type), "type": webhook_type},
            summary=payload.get("message"),
            **extra,
        )
        for platform, url in settings.webhook_endpoints()
    ]


def resend_order_webhooks(order_id: int) -> list[dict]:
    """
    Re-post an order's new_order payload to every configured webhook now.

    Staff use this after fixing an endpoint; customer and admin emails are
    not repeated. Each endpoint gets one logged attempt.
    """
    order = db.session.get(Order, order_id)
    if not order:
        raise NotificationError("Order not found", status_code=404)
    settings = get_settings()
    if not settings.webhook_endpoints():
        raise NotificationError("No webhook URLs configured")

    results = []
    for delivery in webhook_deliveries(settings, order_event_payload(order), "order_created", order_id=order.id):
        ok, error = deliver_now(delivery)
        results.append({"platform": delivery.platform, "sent": ok, "error": error})
    return results


# -- event expansion ---------------------------------------------------------

def _expand_order_created(order_id: int) -> list[Delivery]:
    order = db.session.get(Order, order_id)
    if not order:
        current_app.logger.warning("order_created for missing order %s", order_id)
        return []
    settings = get_settings()

    create_inbox_notification(
        "order",
        "New Order Received",
        f"Order {order.order_number} has been placed by {order.customer_name} for {format_money(order.total_cents)}",
        {"order_id": order.id, "order_number": order.order_number, "customer_name": order.customer_name,
         "total_cents": order.total_cents},
    )

    deliveries = [customer_order_email(order, "received")]
    if settings.email_notifications_enabled and settings.admin_email:
        deliveries.append(admin_order_email(order, settings.admin_email))
    if settings.webhook_notifications_enabled:
        deliveries.extend(webhook_deliveries(settings, order_event_payload(order), "order_created", order_id=order.id))
    if settings.sms_notifications_enabled and settings.admin_phone:
        deliveries.append(Delivery(
            event="order_created",
            channel="sms",
            recipient=settings.admin_phone,
            content={"body": f"New order {order.order_number}: {order.customer_name}, {format_money(order.total_cents)}"},
            order_id=order.id,
        ))
    return deliveries


def _expand_order_confirmed(order_id: int) -> list[Delivery]:
    order = db.session.get(Order, order_id)
    if not order:
        return []
    return [customer_order_email(order, "confirmation")]


def _expand_low_stock(product_ids: list[int], threshold: int) -> list[Delivery]:
    products = (
        db.session.query(Product)
        .filter(Product.id.in_(product_ids))
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )
    if not products:
        return []
    settings = get_settings()
    payload = low_stock_payload(products, threshold)
    count = len(products)

    create_inbox_notification(
        "low_stock",
        "Low Stock Alert",
        payload["message"],
        {"products": [{"id": p.id, "title": p.title, "stock": p.stock_quantity} for p in products],
         "threshold": threshold},
    )

    deliveries = []
    if settings.email_notifications_enabled and settings.admin_email:
        rows = "".join(
            f"<tr><td>{escape(p.title)}</td><td>{p.stock_quantity}</td></tr>" for p in products
        )
        deliveries.append(Delivery(
            event="low_stock",
            channel="email",
            recipient=settings.admin_email,
            subject=f"Low stock alert: {count} product{'s' if count != 1 else ''}",
            content={"html": _email_shell(
                "Low Stock Alert",
                f"<p>{escape(payload['message'])}</p><table cellpadding='6'>"
                f"<tr><th align='left'>Product</th><th>Stock</th></tr>{rows}</table>"
                f"<p><a href='{payload['admin_url']}'>Manage products</a></p>",
            )},
            product_count=count,
            summary=payload["message"],
        ))
    if settings.webhook_notifications_enabled:
        deliveries.extend(webhook_deliveries(settings, payload, "low_stock", product_count=count))
    return deliveries


def _expand_contact_message(name: str, email: str, subject: str, message: str) -> list[Delivery]:
    settings = get_settings()
    create_inbox_notification(
        "contact",
        f"Contact: {subject}",
        message,
        {"name": name, "email": email},
    )
    if not settings.admin_email:
        return []
    return [Delivery(
        event="contact_message",
        channel="email",
        recipient=settings.admin_email,
        subject=f"Contact form: {subject}",
        content={"html": _email_shell(
            "New Contact Message",
            f"<p><strong>{escape(name)}</strong> &lt;{escape(email)}&gt;</p><p>{escape(message)}</p>",
        )},
        summary=f"Contact message from {email}",
    )]


EVENT_HANDLERS = {
    "order_created": _expand_order_created,
    "order_confirmed": _expand_order_confirmed,
    "low_stock": _expand_low_stock,
    "contact_message": _expand_contact_message,
}


def expand_event(event: str, params: dict) -> list[Delivery]:
    """Record inbox side effects for an event and return its deliveries."""
    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        raise NotificationError(f"Unknown notification event: {event}")
    return handler(**params)
