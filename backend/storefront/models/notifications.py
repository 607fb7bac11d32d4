from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SETTINGS_ROW_ID = 1
NOTIFICATION_TYPES = ("order", "low_stock", "contact", "system")
LOG_CHANNELS = ("email", "webhook", "sms", "system")


class NotificationSettings(db.Model):
    """
    Singleton (id=1) holding alerting configuration editable from the admin.
    """
    __tablename__ = "notification_settings"

    id = db.Column(db.Integer, primary_key=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    email_notifications_enabled = db.Column(db.Boolean, nullable=False, default=True)
    admin_email = db.Column(db.String(255), nullable=True)

    webhook_notifications_enabled = db.Column(db.Boolean, nullable=False, default=False)
    webhook_url = db.Column(db.String(512), nullable=True)
    slack_webhook_url = db.Column(db.String(512), nullable=True)
    discord_webhook_url = db.Column(db.String(512), nullable=True)
    custom_webhook_url = db.Column(db.String(512), nullable=True)

    sms_notifications_enabled = db.Column(db.Boolean, nullable=False, default=False)
    admin_phone = db.Column(db.String(32), nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def webhook_endpoints(self) -> list[tuple[str, str]]:
        """(platform, url) pairs that are configured, generic URL first."""
        pairs = [
            ("generic", self.webhook_url),
            ("slack", self.slack_webhook_url),
            ("discord", self.discord_webhook_url),
            ("custom", self.custom_webhook_url),
        ]
        return [(platform, url) for platform, url in pairs if url]

    def to_dict(self) -> dict:
        return {
            "low_stock_threshold": self.low_stock_threshold,
            "email_notifications_enabled": self.email_notifications_enabled,
            "admin_email": self.admin_email,
            "webhook_notifications_enabled": self.webhook_notifications_enabled,
            "webhook_url": self.webhook_url,
            "slack_webhook_url": self.slack_webhook_url,
            "discord_webhook_url": self.discord_webhook_url,
            "custom_webhook_url": self.custom_webhook_url,
            "sms_notifications_enabled": self.sms_notifications_enabled,
            "admin_phone": self.admin_phone,
            "updated_at": to_utc_z(self.updated_at),
        }


class Notification(db.Model):
    """In-app inbox entry shown in the admin header."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_read_created", "is_read", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }


class NotificationLog(db.Model):
    """
    Append-only delivery log: one row per send attempt on one channel.
    """
    __tablename__ = "notification_logs"
    __table_args__ = (
        db.Index("ix_notification_logs_channel_created", "channel", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event = db.Column(db.String(64), nullable=False, index=True)
    channel = db.Column(db.String(16), nullable=False)
    platform = db.Column(db.String(16), nullable=True)
    recipient = db.Column(db.String(512), nullable=True)
    subject = db.Column(db.String(255), nullable=True)
    message = db.Column(db.Text, nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    product_count = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(16), nullable=False)
    attempt = db.Column(db.Integer, nullable=False, default=1)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event": self.event,
            "channel": self.channel,
            "platform": self.platform,
            "recipient": self.recipient,
            "subject": self.subject,
            "message": self.message,
            "order_id": self.order_id,
            "product_count": self.product_count,
            "status": self.status,
            "attempt": self.attempt,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
        }
