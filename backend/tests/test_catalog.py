"""
Catalog management tests (products and categories).
"""

import pytest

from storefront.models import Product


def _create(client, headers, **body):
    payload = {"title": "Messenger Bag", "price_cents": 45000, "stock_quantity": 8}
    payload.update(body)
    return client.post("/api/products", json=payload, headers=headers)


class TestProducts:

    def test_create_with_collections(self, client, admin_headers, category):
        resp = _create(
            client,
            admin_headers,
            category_id=category.id,
            images=[
                {"image_url": "https://cdn.example.test/a.jpg"},
                {"image_url": "https://cdn.example.test/b.jpg", "is_primary": True},
            ],
            colors=[{"color_name": "Cognac", "color_code": "#9A463D"}, "Black"],
            sizes=["S", "M", "L"],
            features=[{"feature_name": "Material", "feature_value": "Full-grain leather"}],
        )
        assert resp.status_code == 201, resp.get_json()
        product = resp.get_json()["product"]
        assert product["category_name"] == "Bags"
        assert product["primary_image_url"] == "https://cdn.example.test/b.jpg"
        assert [c["color_name"] for c in product["colors"]] == ["Cognac", "Black"]
        assert product["sizes"] == ["S", "M", "L"]
        assert product["features"][0]["feature_value"] == "Full-grain leather"

    def test_first_image_becomes_primary(self, client, admin_headers):
        resp = _create(client, admin_headers, images=["https://cdn.example.test/a.jpg", "https://cdn.example.test/b.jpg"])
        images = resp.get_json()["product"]["images"]
        assert [i["is_primary"] for i in images] == [True, False]

    @pytest.mark.parametrize(
        "body,message",
        [
            ({"price_cents": -1}, "price_cents must be >= 0"),
            ({"price_cents": 10.5}, "price_cents must be an integer, not a decimal"),
            ({"stock_quantity": -3}, "stock_quantity must be >= 0"),
            ({"is_on_sale": True}, "sale_price_cents is required when is_on_sale is true"),
            ({"is_on_sale": True, "sale_price_cents": 50000}, "sale_price_cents cannot exceed price_cents"),
            ({"version_id": 7}, "Field not allowed: version_id"),
        ],
    )
    def test_create_validation(self, client, admin_headers, body, message):
        resp = _create(client, admin_headers, **body)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == message

    def test_missing_title(self, client, admin_headers):
        resp = client.post("/api/products", json={"price_cents": 100}, headers=admin_headers)
        assert resp.status_code == 400
        assert "title" in resp.get_json()["error"]

    def test_unknown_category(self, client, admin_headers):
        assert _create(client, admin_headers, category_id=999).status_code == 400

    def test_partial_update_keeps_collections(self, client, admin_headers, tote):
        resp = client.put(f"/api/products/{tote.id}", json={"stock_quantity": 25}, headers=admin_headers)
        assert resp.status_code == 200
        product = resp.get_json()["product"]
        assert product["stock_quantity"] == 25
        assert len(product["images"]) == 1

    def test_update_replaces_present_collection(self, client, admin_headers, tote):
        resp = client.put(f"/api/products/{tote.id}", json={"sizes": ["One size"]}, headers=admin_headers)
        assert resp.get_json()["product"]["sizes"] == ["One size"]

    def test_sale_rule_checked_against_stored_price(self, client, admin_headers, tote):
        resp = client.put(
            f"/api/products/{tote.id}",
            json={"is_on_sale": True, "sale_price_cents": 12000},
            headers=admin_headers,
        )
        assert resp.status_code == 400

        resp = client.put(
            f"/api/products/{tote.id}",
            json={"is_on_sale": True, "sale_price_cents": 8000},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["product"]["effective_price_cents"] == 8000

    def test_delete_is_soft(self, client, admin_headers, db_session, tote):
        assert client.delete(f"/api/products/{tote.id}", headers=admin_headers).status_code == 200
        db_session.expire_all()
        assert db_session.get(Product, tote.id).is_active is False

        listing = client.get("/api/products?active=false", headers=admin_headers).get_json()
        assert [p["id"] for p in listing["items"]] == [tote.id]

    def test_image_management(self, client, admin_headers, tote):
        resp = client.put(
            f"/api/products/{tote.id}",
            json={"images": ["https://cdn.example.test/1.jpg", "https://cdn.example.test/2.jpg"]},
            headers=admin_headers,
        )
        first, second = resp.get_json()["product"]["images"]

        resp = client.put(f"/api/products/{tote.id}/primary-image", json={"image_id": second["id"]}, headers=admin_headers)
        assert resp.get_json()["product"]["primary_image_url"] == "https://cdn.example.test/2.jpg"

        resp = client.delete(f"/api/products/{tote.id}/images/{second['id']}", headers=admin_headers)
        assert resp.status_code == 200
        images = resp.get_json()["product"]["images"]
        assert [i["id"] for i in images] == [first["id"]]
        assert images[0]["is_primary"] is True

        assert client.delete(f"/api/products/{tote.id}/images/{second['id']}", headers=admin_headers).status_code == 404
        assert client.put(f"/api/products/{tote.id}/primary-image", json={}, headers=admin_headers).status_code == 400


class TestCategories:

    def test_create_and_duplicate(self, client, admin_headers, db_session):
        resp = client.post("/api/categories", json={"name": "Wallets"}, headers=admin_headers)
        assert resp.status_code == 201

        dup = client.post("/api/categories", json={"name": "wallets"}, headers=admin_headers)
        assert dup.status_code == 409

    def test_rename_conflict(self, client, admin_headers, category):
        other = client.post("/api/categories", json={"name": "Belts"}, headers=admin_headers).get_json()["category"]
        resp = client.put(f"/api/categories/{other['id']}", json={"name": "Bags"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_in_use_refused(self, client, admin_headers, tote, category):
        assert client.delete(f"/api/categories/{category.id}", headers=admin_headers).status_code == 409

    def test_delete_unused(self, client, admin_headers, category):
        assert client.delete(f"/api/categories/{category.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/categories/{category.id}", headers=admin_headers).status_code == 404
