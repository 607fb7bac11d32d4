# Overview: Outbound transports for notifications: SMTP email, webhook POSTs, and Twilio SMS.

"""
Channel transports

Each function performs exactly one delivery and raises ChannelError on
failure. Formatting, logging and retries live in notification_service and
the dispatcher; these functions stay thin so tests can replace them.
"""
from __future__ import annotations

import smtplib
from email.message import EmailMessage

import httpx
from flask import current_app

USER_AGENT = "Atlantic-Leather-Admin/1.0"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class ChannelError(Exception):
    """Raised when a transport cannot deliver a message."""


def send_email(to: str, subject: str, html: str, text: str | None = None) -> None:
    config = current_app.config
    host = config.get("SMTP_HOST")
    if not host:
        raise ChannelError("SMTP is not configured")

    msg = EmailMessage()
    msg["From"] = config["MAIL_FROM"]
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text or "This message requires an HTML-capable email client.")
    msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(host, config["SMTP_PORT"], timeout=config["WEBHOOK_TIMEOUT_SECONDS"]) as server:
            if config.get("SMTP_USE_TLS"):
                server.starttls()
            if config.get("SMTP_USER"):
                server.login(config["SMTP_USER"], config["SMTP_PASSWORD"])
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise ChannelError(f"SMTP delivery failed: {exc}") from exc


def post_webhook(url: str, payload: dict, platform: str, webhook_type: str = "notification") -> int:
    """POST JSON to a webhook URL; returns the HTTP status on 2xx."""
    headers = {
        "User-Agent": USER_AGENT,
        "X-Webhook-Type": webhook_type,
        "X-Webhook-Platform": platform,
    }
    try:
        response = httpx.post(
            url,
            json=payload,
            headers=headers,
            timeout=current_app.config["WEBHOOK_TIMEOUT_SECONDS"],
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise ChannelError(f"Webhook responded {exc.response.status_code}") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise ChannelError(f"Webhook request failed: {exc}") from exc
    return response.status_code


def send_sms(to: str, body: str) -> str:
    """Send one SMS through the Twilio REST API; returns the message SID."""
    config = current_app.config
    sid = config.get("TWILIO_ACCOUNT_SID")
    token = config.get("TWILIO_AUTH_TOKEN")
    sender = config.get("TWILIO_FROM_NUMBER")
    if not (sid and token and sender):
        raise ChannelError("SMS service not configured")

    try:
        response = httpx.post(
            TWILIO_MESSAGES_URL.format(sid=sid),
            data={"To": to, "From": sender, "Body": body},
            auth=(sid, token),
            headers={"User-Agent": USER_AGENT},
            timeout=config["WEBHOOK_TIMEOUT_SECONDS"],
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise ChannelError(f"SMS provider responded {exc.response.status_code}") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise ChannelError(f"SMS request failed: {exc}") from exc

    try:
        data = response.json()
    except ValueError as exc:
        raise ChannelError("SMS provider returned a non-JSON response") from exc
    if not isinstance(data, dict):
        raise ChannelError("SMS provider returned an unexpected response")
    return data.get("sid", "")
