"""
Dashboard reporting and customer directory tests.
"""

from conftest import order_payload


def _sell(client, api_key_headers, admin_headers, *lines, **overrides):
    order = client.post(
        "/api/public/orders", json=order_payload(*lines, **overrides), headers=api_key_headers
    ).get_json()["order"]
    client.post(f"/api/orders/{order['id']}/confirm", headers=admin_headers)
    client.post(f"/api/orders/{order['id']}/mark-sold", headers=admin_headers)
    return order


class TestDashboard:

    def test_empty_dashboard_creates_zero_balance(self, client, admin_headers):
        resp = client.get("/api/reports", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["balance"]["current_balance_cents"] == 0
        assert body["ledger_ok"] is True
        assert body["totals"] == {"products": 0, "orders": 0, "customers": 0, "sales_cents": 0}

    def test_dashboard_after_sales(self, client, api_key_headers, admin_headers, tote, wallet, outbox):
        _sell(client, api_key_headers, admin_headers, (tote, 2, 10000))
        _sell(client, api_key_headers, admin_headers, (wallet, 1, 5000), customer_email="second@example.com")
        client.post("/api/public/orders", json=order_payload((wallet, 1, 5000)), headers=api_key_headers)

        body = client.get("/api/reports", headers=admin_headers).get_json()
        assert body["totals"]["orders"] == 3
        assert body["totals"]["customers"] == 2
        assert body["totals"]["sales_cents"] == 25000
        assert body["balance"]["current_balance_cents"] == 25000
        assert body["status_counts"]["Sold"] == 2
        assert body["status_counts"]["Pending"] == 1
        assert body["top_products"][0]["product_id"] == tote.id
        assert body["top_products"][0]["units_sold"] == 2
        assert len(body["recent_transactions"]) == 2
        assert sum(m["amount_cents"] for m in body["monthly_sales"]) == 25000
        # tote 10 -> 8, wallet 5 -> 4: both under the dashboard level
        assert {p["id"] for p in body["low_stock_products"]} == {tote.id, wallet.id}


class TestCustomers:

    def test_directory_and_detail(self, client, api_key_headers, admin_headers, tote, outbox):
        _sell(client, api_key_headers, admin_headers, (tote, 1, 10000))
        client.post(
            "/api/public/orders",
            json=order_payload((tote, 1, 10000), customer_address="Piassa, Addis Ababa"),
            headers=api_key_headers,
        )

        listing = client.get("/api/customers", headers=admin_headers).get_json()
        assert listing["total"] == 1
        customer = listing["items"][0]
        assert customer["email"] == "abebe@example.com"
        assert customer["total_orders"] == 2
        # Only Confirmed/Sold orders count as spend
        assert customer["total_spent_cents"] == 10000

        detail = client.get("/api/customers/abebe@example.com", headers=admin_headers).get_json()["customer"]
        assert len(detail["orders"]) == 2
        assert detail["address"] == "Piassa, Addis Ababa"

    def test_search_and_missing(self, client, api_key_headers, admin_headers, tote, outbox):
        client.post("/api/public/orders", json=order_payload((tote, 1, 10000)), headers=api_key_headers)

        assert client.get("/api/customers?search=abebe", headers=admin_headers).get_json()["total"] == 1
        assert client.get("/api/customers?search=zzz", headers=admin_headers).get_json()["total"] == 0
        assert client.get("/api/customers/nobody@example.com", headers=admin_headers).status_code == 404

        found = client.get("/api/orders/search/customers?q=abe", headers=admin_headers).get_json()["items"]
        assert found[0]["customer_email"] == "abebe@example.com"
