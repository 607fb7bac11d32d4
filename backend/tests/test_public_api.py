"""
Public storefront API tests.

Verifies:
- Shared API key is required (401 missing, 403 wrong)
- Only active catalog entries are exposed
- Order ingestion is all-or-nothing and validated before anything is stored
- Contact messages land in the admin inbox
"""

import pytest

from conftest import make_product, order_payload
from storefront.models import Notification, Order, OrderItem, Product


class TestApiKey:

    def test_missing_key_is_unauthorized(self, client, db_session):
        assert client.get("/api/public/products").status_code == 401

    def test_wrong_key_is_forbidden(self, client, db_session):
        resp = client.get("/api/public/products", headers={"x-api-key": "nope"})
        assert resp.status_code == 403

    @pytest.mark.parametrize("style", ["x-api-key", "x-private-key", "query"])
    def test_key_accepted_in_header_or_query(self, client, app, db_session, style):
        key = app.config["PRIVATE_API_KEY"]
        if style == "query":
            resp = client.get(f"/api/public/categories?apiKey={key}")
        else:
            resp = client.get("/api/public/categories", headers={style: key})
        assert resp.status_code == 200


class TestCatalogReads:

    def test_inactive_products_hidden(self, client, api_key_headers, db_session, tote):
        make_product(db_session, "Retired Belt", 3000, 4, is_active=False)

        body = client.get("/api/public/products", headers=api_key_headers).get_json()
        assert [p["title"] for p in body["items"]] == ["Classic Tote"]
        assert body["items"][0]["primary_image_url"] == "https://cdn.example.test/tote.jpg"

    def test_inactive_product_detail_not_found(self, client, api_key_headers, db_session):
        hidden = make_product(db_session, "Retired Belt", 3000, 4, is_active=False)
        assert client.get(f"/api/public/products/{hidden.id}", headers=api_key_headers).status_code == 404

    def test_featured_and_categories(self, client, api_key_headers, tote, wallet):
        featured = client.get("/api/public/featured-products", headers=api_key_headers).get_json()
        assert [p["id"] for p in featured["items"]] == [tote.id]

        categories = client.get("/api/public/categories", headers=api_key_headers).get_json()
        assert categories["items"][0]["name"] == "Bags"
        assert categories["items"][0]["product_count"] == 2

    def test_pagination(self, client, api_key_headers, tote, wallet):
        body = client.get("/api/public/products?page=1&per_page=1", headers=api_key_headers).get_json()
        assert body["count"] == 1
        assert body["total"] == 2
        assert body["pages"] == 2


class TestOrderIngestion:

    def test_snapshot_and_total(self, client, api_key_headers, tote, wallet, outbox):
        resp = client.post(
            "/api/public/orders",
            json=order_payload((tote, 2, 9500), (wallet, 1, 5000)),
            headers=api_key_headers,
        )
        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["total_cents"] == 24000
        assert order["payment_status"] == "Pending"

        line = next(i for i in order["items"] if i["product_id"] == tote.id)
        assert line["product_name"] == "Classic Tote"
        assert line["product_category"] == "Bags"
        assert line["product_image"] == "https://cdn.example.test/tote.jpg"
        assert line["line_total_cents"] == 19000

    def test_camel_case_body_accepted(self, client, api_key_headers, tote, outbox):
        body = {
            "customerName": "Sara Tesfaye",
            "customerEmail": "sara@example.com",
            "customerPhone": "+251922000000",
            "items": [{"productId": tote.id, "quantity": 1, "unitPriceCents": 10000}],
        }
        assert client.post("/api/public/orders", json=body, headers=api_key_headers).status_code == 201

    def test_unknown_product_stores_nothing(self, client, api_key_headers, db_session, tote, outbox):
        ghost = Product(id=4242, title="ghost", price_cents=1, stock_quantity=0)
        resp = client.post(
            "/api/public/orders",
            json=order_payload((tote, 1, 10000), (ghost, 1, 100)),
            headers=api_key_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["product_ids"] == [4242]
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0

    def test_inactive_product_rejected(self, client, api_key_headers, db_session, tote, outbox):
        retired = make_product(db_session, "Retired Belt", 3000, 4, is_active=False)
        resp = client.post(
            "/api/public/orders",
            json=order_payload((tote, 1, 10000), (retired, 1, 3000)),
            headers=api_key_headers,
        )
        assert resp.status_code == 400
        assert db_session.query(Order).count() == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"items": []},
            {"customer_email": "not-an-email"},
            {"customer_name": ""},
            {"unexpected": "field"},
        ],
    )
    def test_invalid_body_rejected(self, client, api_key_headers, db_session, tote, outbox, overrides):
        resp = client.post(
            "/api/public/orders",
            json=order_payload((tote, 1, 10000), **overrides),
            headers=api_key_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Validation failed"
        assert db_session.query(Order).count() == 0

    def test_zero_quantity_rejected(self, client, api_key_headers, db_session, tote, outbox):
        resp = client.post("/api/public/orders", json=order_payload((tote, 0, 10000)), headers=api_key_headers)
        assert resp.status_code == 400
        assert db_session.query(Order).count() == 0

    def test_ingestion_does_not_touch_stock(self, client, api_key_headers, db_session, wallet, outbox):
        # More than available is accepted at intake; confirmation is the gate
        resp = client.post("/api/public/orders", json=order_payload((wallet, 50, 5000)), headers=api_key_headers)
        assert resp.status_code == 201
        db_session.expire_all()
        assert db_session.get(Product, wallet.id).stock_quantity == 5


class TestContact:

    def test_contact_creates_inbox_entry(self, client, api_key_headers, db_session, outbox):
        resp = client.post(
            "/api/public/contact",
            json={
                "name": "Hanna",
                "email": "hanna@example.com",
                "subject": "Custom order",
                "message": "Do you make custom leather jackets?",
            },
            headers=api_key_headers,
        )
        assert resp.status_code == 200

        note = db_session.query(Notification).filter_by(type="contact").one()
        assert note.title == "Contact: Custom order"
        assert outbox.emails[-1]["subject"] == "Contact form: Custom order"

    def test_short_message_rejected(self, client, api_key_headers, db_session, outbox):
        resp = client.post(
            "/api/public/contact",
            json={"name": "H", "email": "hanna@example.com", "subject": "Hi", "message": "short"},
            headers=api_key_headers,
        )
        assert resp.status_code == 400
        assert db_session.query(Notification).count() == 0
