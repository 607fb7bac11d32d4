"""
Notification tests.

Verifies:
- New orders fan out to customer email, admin email, and each webhook
- One failing endpoint does not block the others, even when it raises unexpectedly
- Failed deliveries are retried and every attempt is logged
- Low-stock checks alert once per scan and log a system entry
- Settings, inbox, test endpoints, and manual order re-sends behave for staff
"""

import threading

import httpx
import pytest

from conftest import make_product, order_payload
from storefront.extensions import dispatcher
from storefront.models import Notification, NotificationLog, NotificationSettings
from storefront.services import channels, notification_service, stock_monitor
from storefront.services.channels import ChannelError
from storefront.services.channels import post_webhook as real_post_webhook
from storefront.services.notification_service import Delivery


def _enable_webhooks(session, **urls):
    settings = notification_service.get_settings()
    settings.webhook_notifications_enabled = True
    for key, value in urls.items():
        setattr(settings, key, value)
    session.commit()
    return settings


class TestOrderFanOut:

    def test_order_created_reaches_every_endpoint(self, client, api_key_headers, db_session, tote, outbox):
        _enable_webhooks(
            db_session,
            webhook_url="https://hooks.example.test/generic",
            slack_webhook_url="https://hooks.slack.test/T000",
            discord_webhook_url="https://discord.test/api/webhooks/1",
        )

        resp = client.post("/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers)
        assert resp.status_code == 201
        number = resp.get_json()["order"]["order_number"]

        recipients = {e["to"] for e in outbox.emails}
        assert recipients == {"abebe@example.com", "owner@atlanticleather.com"}
        assert {w["platform"] for w in outbox.webhooks} == {"generic", "slack", "discord"}

        generic = next(w for w in outbox.webhooks if w["platform"] == "generic")
        assert generic["payload"]["event"] == "new_order"
        assert generic["payload"]["order"]["order_number"] == number
        assert generic["type"] == "order"

        slack = next(w for w in outbox.webhooks if w["platform"] == "slack")
        assert "attachments" in slack["payload"]
        discord = next(w for w in outbox.webhooks if w["platform"] == "discord")
        assert "embeds" in discord["payload"]

        inbox = db_session.query(Notification).filter_by(type="order").one()
        assert number in inbox.message

    def test_failing_endpoint_does_not_block_others(self, app, client, api_key_headers, db_session, tote, outbox):
        _enable_webhooks(
            db_session,
            webhook_url="https://hooks.example.test/down",
            slack_webhook_url="https://hooks.slack.test/T000",
        )
        outbox.failing.add("https://hooks.example.test/down")

        resp = client.post("/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers)
        assert resp.status_code == 201

        assert [w["platform"] for w in outbox.webhooks] == ["slack"]
        assert len(outbox.emails) == 2

        failed = (
            db_session.query(NotificationLog)
            .filter_by(recipient="https://hooks.example.test/down")
            .order_by(NotificationLog.attempt.asc())
            .all()
        )
        max_attempts = app.config["NOTIFICATION_MAX_ATTEMPTS"]
        assert [log.attempt for log in failed] == list(range(1, max_attempts + 1))
        assert all(log.status == "failed" for log in failed)
        assert failed[0].error_message

    def test_malformed_stored_url_does_not_block_others(
        self, app, client, api_key_headers, db_session, tote, outbox, monkeypatch
    ):
        bad_url = "http://[::1"
        _enable_webhooks(db_session, webhook_url=bad_url, slack_webhook_url="https://hooks.slack.test/T000")

        def route(url, payload, platform, webhook_type="notification"):
            if url == bad_url:
                return real_post_webhook(url, payload, platform, webhook_type)
            return outbox.post_webhook(url, payload, platform, webhook_type)

        monkeypatch.setattr(channels, "post_webhook", route)

        resp = client.post("/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers)
        assert resp.status_code == 201

        assert [w["platform"] for w in outbox.webhooks] == ["slack"]
        assert len(outbox.emails) == 2

        failed = db_session.query(NotificationLog).filter_by(recipient=bad_url).all()
        assert len(failed) == app.config["NOTIFICATION_MAX_ATTEMPTS"]
        assert all(log.status == "failed" for log in failed)
        assert "Webhook request failed" in failed[0].error_message

    def test_unexpected_transport_error_fails_one_delivery(
        self, client, api_key_headers, db_session, tote, outbox, monkeypatch
    ):
        broken_url = "https://hooks.example.test/broken"
        _enable_webhooks(db_session, webhook_url=broken_url, slack_webhook_url="https://hooks.slack.test/T000")

        def route(url, payload, platform, webhook_type="notification"):
            if url == broken_url:
                raise RuntimeError("transport exploded")
            return outbox.post_webhook(url, payload, platform, webhook_type)

        monkeypatch.setattr(channels, "post_webhook", route)

        resp = client.post("/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers)
        assert resp.status_code == 201

        assert [w["platform"] for w in outbox.webhooks] == ["slack"]
        assert len(outbox.emails) == 2

        failed = db_session.query(NotificationLog).filter_by(recipient=broken_url).one()
        assert failed.status == "failed"
        assert failed.attempt == 1
        assert failed.error_message.startswith("Unexpected error")
        assert db_session.query(NotificationLog).filter_by(platform="slack", status="sent").count() == 1

    def test_customer_email_failure_does_not_fail_order(self, client, api_key_headers, db_session, tote, outbox):
        outbox.failing.add("abebe@example.com")

        resp = client.post("/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers)
        assert resp.status_code == 201
        assert [e["to"] for e in outbox.emails] == ["owner@atlanticleather.com"]

    def test_confirmation_email_sent(self, client, api_key_headers, admin_headers, tote, outbox):
        order = client.post(
            "/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers
        ).get_json()["order"]
        client.post(f"/api/orders/{order['id']}/confirm", headers=admin_headers)

        assert outbox.emails[-1]["to"] == "abebe@example.com"
        assert outbox.emails[-1]["subject"] == f"Your order {order['order_number']} is confirmed"


class TestRetry:

    def test_retry_succeeds_after_transient_failure(self, db_session, monkeypatch):
        calls = {"n": 0}

        def flaky(url, payload, platform, webhook_type="notification"):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ChannelError("502 Bad Gateway")
            return 200

        monkeypatch.setattr(channels, "post_webhook", flaky)

        delivery = Delivery(
            event="test",
            channel="webhook",
            platform="generic",
            recipient="https://hooks.example.test/flaky",
            content={"json": {"event": "test"}, "type": "test"},
        )
        assert dispatcher.deliver_with_retry(delivery) is True

        logs = db_session.query(NotificationLog).order_by(NotificationLog.id.asc()).all()
        assert [(log.attempt, log.status) for log in logs] == [(1, "failed"), (2, "sent")]


class TestThreadDispatch:

    def test_worker_delivers_queued_jobs_before_shutdown(
        self, app, client, api_key_headers, db_session, tote, outbox, monkeypatch
    ):
        order = client.post(
            "/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers
        ).get_json()["order"]
        outbox.emails.clear()
        logs_before = db_session.query(NotificationLog).filter_by(event="order_created").count()

        threads = []

        def send_email(to, subject, html, text=None):
            threads.append(threading.current_thread().name)
            outbox.send_email(to, subject, html, text)

        monkeypatch.setattr(channels, "send_email", send_email)
        monkeypatch.setitem(app.config, "NOTIFICATION_DISPATCH_MODE", "thread")

        dispatcher.enqueue("order_created", order_id=order["id"])
        dispatcher.shutdown()

        assert {e["to"] for e in outbox.emails} == {"abebe@example.com", "owner@atlanticleather.com"}
        assert threads == ["notification-dispatcher"] * 2

        db_session.expire_all()
        logs = db_session.query(NotificationLog).filter_by(event="order_created").all()
        assert len(logs) == logs_before + 2
        assert all(log.status == "sent" for log in logs)

    def test_shutdown_without_worker_is_noop(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "NOTIFICATION_DISPATCH_MODE", "thread")
        dispatcher.shutdown()
        dispatcher.shutdown()


class TestChannels:

    def test_invalid_webhook_url_is_channel_error(self, app):
        with pytest.raises(ChannelError, match="Webhook request failed"):
            channels.post_webhook("http://[::1", {"event": "test"}, "generic")

    def test_sms_non_json_response_is_channel_error(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "TWILIO_ACCOUNT_SID", "AC0000")
        monkeypatch.setitem(app.config, "TWILIO_AUTH_TOKEN", "token")
        monkeypatch.setitem(app.config, "TWILIO_FROM_NUMBER", "+15550000000")

        def fake_post(url, **kwargs):
            return httpx.Response(200, text="OK", request=httpx.Request("POST", url))

        monkeypatch.setattr(channels.httpx, "post", fake_post)

        with pytest.raises(ChannelError, match="non-JSON"):
            channels.send_sms("+251911000000", "Order received")

    def test_sms_returns_provider_sid(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "TWILIO_ACCOUNT_SID", "AC0000")
        monkeypatch.setitem(app.config, "TWILIO_AUTH_TOKEN", "token")
        monkeypatch.setitem(app.config, "TWILIO_FROM_NUMBER", "+15550000000")

        def fake_post(url, **kwargs):
            return httpx.Response(201, json={"sid": "SM123"}, request=httpx.Request("POST", url))

        monkeypatch.setattr(channels.httpx, "post", fake_post)

        assert channels.send_sms("+251911000000", "Order received") == "SM123"


class TestLowStock:

    def test_check_alerts_and_logs(self, client, admin_headers, db_session, outbox):
        make_product(db_session, "Card Holder", 2000, 2)
        make_product(db_session, "Duffel", 30000, 50)
        _enable_webhooks(db_session, webhook_url="https://hooks.example.test/generic")

        resp = client.post("/api/notifications/check-low-stock", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["threshold"] == 5
        assert body["product_count"] == 1
        assert body["products"][0]["title"] == "Card Holder"
        assert body["notified"] is True

        assert db_session.query(NotificationLog).filter_by(event="low_stock_check", channel="system").count() == 1
        assert outbox.webhooks[0]["payload"]["event"] == "low_stock_alert"
        assert outbox.emails[0]["subject"] == "Low stock alert: 1 product"
        assert db_session.query(Notification).filter_by(type="low_stock").count() == 1

    def test_no_low_stock_sends_nothing(self, db_session, outbox):
        make_product(db_session, "Duffel", 30000, 50)
        result = stock_monitor.check_low_stock()
        assert result["notified"] is False
        assert outbox.emails == []
        assert db_session.query(NotificationLog).count() == 0

    def test_inactive_products_ignored(self, db_session, outbox):
        make_product(db_session, "Retired Belt", 3000, 0, is_active=False)
        assert stock_monitor.check_low_stock()["product_count"] == 0

    def test_monitor_run_once(self, app, db_session, outbox):
        make_product(db_session, "Card Holder", 2000, 1)
        result = stock_monitor.LowStockMonitor(app).run_once()
        assert result["product_count"] == 1


class TestSettings:

    def test_defaults_seeded_from_config(self, client, admin_headers):
        body = client.get("/api/notifications/settings", headers=admin_headers).get_json()
        assert body["settings"]["low_stock_threshold"] == 5
        assert body["settings"]["admin_email"] == "owner@atlanticleather.com"

    def test_update_settings(self, client, admin_headers, db_session):
        resp = client.put(
            "/api/notifications/settings",
            json={"low_stock_threshold": 3, "email_notifications_enabled": True, "admin_email": "ops@atlanticleather.com"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert db_session.get(NotificationSettings, 1).low_stock_threshold == 3

    def test_enabled_email_requires_address(self, client, admin_headers):
        resp = client.put(
            "/api/notifications/settings",
            json={"low_stock_threshold": 3, "email_notifications_enabled": True},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_threshold_bounds(self, client, admin_headers):
        resp = client.put("/api/notifications/settings", json={"low_stock_threshold": 5000}, headers=admin_headers)
        assert resp.status_code == 400

    def test_webhook_settings(self, client, admin_headers):
        resp = client.put(
            "/api/notifications/webhook-settings",
            json={"webhook_notifications_enabled": True, "discord_webhook_url": "https://discord.test/api/webhooks/1"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = client.get("/api/notifications/webhook-settings", headers=admin_headers).get_json()
        assert body["discord_webhook_url"] == "https://discord.test/api/webhooks/1"

        resp = client.put(
            "/api/notifications/webhook-settings",
            json={"webhook_notifications_enabled": True},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_webhook_urls_must_be_http(self, client, admin_headers):
        resp = client.put(
            "/api/notifications/webhook-settings",
            json={"webhook_notifications_enabled": True, "slack_webhook_url": "not a url"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

        resp = client.put(
            "/api/notifications/settings",
            json={"low_stock_threshold": 5, "webhook_notifications_enabled": True, "webhook_url": "ftp://hooks.example.test",
                  "admin_email": "ops@atlanticleather.com"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_blank_webhook_url_clears_field(self, client, admin_headers, db_session):
        client.put(
            "/api/notifications/webhook-settings",
            json={"webhook_notifications_enabled": True, "discord_webhook_url": "https://discord.test/api/webhooks/1"},
            headers=admin_headers,
        )
        resp = client.put(
            "/api/notifications/webhook-settings",
            json={"webhook_notifications_enabled": False, "discord_webhook_url": "  "},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert db_session.get(NotificationSettings, 1).discord_webhook_url is None

    def test_settings_accept_webhooks_from_platform_urls(self, client, admin_headers, db_session):
        resp = client.put(
            "/api/notifications/webhook-settings",
            json={"webhook_notifications_enabled": True, "slack_webhook_url": "https://hooks.slack.test/T000"},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        resp = client.put(
            "/api/notifications/settings",
            json={
                "low_stock_threshold": 5,
                "email_notifications_enabled": True,
                "admin_email": "ops@atlanticleather.com",
                "webhook_notifications_enabled": True,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 200, resp.get_json()
        settings = db_session.get(NotificationSettings, 1)
        assert settings.webhook_notifications_enabled is True
        assert settings.webhook_url is None
        assert settings.slack_webhook_url == "https://hooks.slack.test/T000"

    def test_settings_reject_webhooks_without_any_url(self, client, admin_headers):
        resp = client.put(
            "/api/notifications/settings",
            json={"low_stock_threshold": 5, "admin_email": "ops@atlanticleather.com", "webhook_notifications_enabled": True},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == notification_service.WEBHOOK_URL_REQUIRED


class TestOrderWebhookTrigger:

    def _place_order(self, client, api_key_headers, tote):
        return client.post(
            "/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers
        ).get_json()["order"]

    def test_resends_order_to_webhooks(self, client, api_key_headers, admin_headers, db_session, tote, outbox):
        order = self._place_order(client, api_key_headers, tote)
        _enable_webhooks(db_session, webhook_url="https://hooks.example.test/generic")
        emails_before = len(outbox.emails)

        resp = client.post("/api/notifications/trigger/order", json={"order_id": order["id"]}, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["ok"] is True
        assert body["sent"] == 1
        assert body["results"] == [{"platform": "generic", "sent": True, "error": None}]

        assert outbox.webhooks[0]["payload"]["event"] == "new_order"
        assert outbox.webhooks[0]["payload"]["order"]["order_number"] == order["order_number"]
        assert len(outbox.emails) == emails_before

        log = db_session.query(NotificationLog).filter_by(channel="webhook").one()
        assert log.order_id == order["id"]
        assert log.status == "sent"

    def test_failed_endpoint_is_reported(self, client, api_key_headers, admin_headers, db_session, tote, outbox):
        order = self._place_order(client, api_key_headers, tote)
        _enable_webhooks(
            db_session,
            webhook_url="https://hooks.example.test/down",
            slack_webhook_url="https://hooks.slack.test/T000",
        )
        outbox.failing.add("https://hooks.example.test/down")

        resp = client.post("/api/notifications/trigger/order", json={"order_id": order["id"]}, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["ok"] is False
        assert body["sent"] == 1
        failed = next(r for r in body["results"] if r["platform"] == "generic")
        assert failed["sent"] is False
        assert failed["error"]

    def test_unknown_order(self, client, admin_headers, db_session):
        resp = client.post("/api/notifications/trigger/order", json={"order_id": 999999}, headers=admin_headers)
        assert resp.status_code == 404

    def test_requires_configured_webhooks(self, client, api_key_headers, admin_headers, tote, outbox):
        order = self._place_order(client, api_key_headers, tote)
        resp = client.post("/api/notifications/trigger/order", json={"order_id": order["id"]}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "No webhook URLs configured"

    def test_requires_order_id(self, client, admin_headers, db_session):
        resp = client.post("/api/notifications/trigger/order", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_requires_staff(self, client, db_session):
        resp = client.post("/api/notifications/trigger/order", json={"order_id": 1})
        assert resp.status_code == 401


class TestTestEndpoints:

    def test_test_email(self, client, admin_headers, outbox):
        resp = client.post("/api/notifications/test-email", json={}, headers=admin_headers)
        assert resp.status_code == 200
        assert outbox.emails[0]["to"] == "owner@atlanticleather.com"

    def test_test_email_failure_is_reported(self, client, admin_headers, outbox):
        outbox.failing.add("owner@atlanticleather.com")
        resp = client.post("/api/notifications/test-email", json={}, headers=admin_headers)
        assert resp.status_code == 502

    def test_test_webhook_needs_url(self, client, admin_headers, outbox):
        resp = client.post("/api/notifications/test-webhook", json={"platform": "slack"}, headers=admin_headers)
        assert resp.status_code == 400

        resp = client.post(
            "/api/notifications/test-webhook",
            json={"platform": "slack", "webhook_url": "https://hooks.slack.test/T000"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert outbox.webhooks[0]["type"] == "test"

    def test_logs_filter(self, client, admin_headers, outbox):
        client.post("/api/notifications/test-email", json={}, headers=admin_headers)
        body = client.get("/api/notifications/logs?channel=email", headers=admin_headers).get_json()
        assert body["count"] == 1
        assert body["items"][0]["event"] == "test"

        assert client.get("/api/notifications/logs?channel=pigeon", headers=admin_headers).status_code == 400


class TestInbox:

    def test_read_flow(self, client, admin_headers, db_session):
        first = notification_service.create_inbox_notification("system", "One", "first")
        notification_service.create_inbox_notification("system", "Two", "second")

        assert client.get("/api/notifications/inbox/unread-count", headers=admin_headers).get_json()["unread"] == 2

        resp = client.put(f"/api/notifications/inbox/{first.id}/read", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["notification"]["is_read"] is True

        body = client.get("/api/notifications/inbox?unread_only=true", headers=admin_headers).get_json()
        assert [n["title"] for n in body["items"]] == ["Two"]

        resp = client.put("/api/notifications/inbox/mark-all-read", headers=admin_headers)
        assert resp.get_json()["updated"] == 1
        assert client.get("/api/notifications/inbox/unread-count", headers=admin_headers).get_json()["unread"] == 0

        assert client.delete(f"/api/notifications/inbox/{first.id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/api/notifications/inbox/{first.id}", headers=admin_headers).status_code == 404
