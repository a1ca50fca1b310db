import pytest

from rental_admin.services import analytics_service


def _order(client, headers, customer_id, product_id, quantity, **extra):
    payload = {"customer_id": customer_id,
               "line_items": [{"product_id": product_id, "quantity": quantity}], **extra}
    r = client.post("/api/orders", json=payload, headers=headers)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["data"]["id"]


def _complete(client, headers, oid):
    for status in ("processing", "completed"):
        r = client.put(f"/api/orders/{oid}/status", json={"status": status}, headers=headers)
        assert r.status_code == 200


@pytest.fixture
def rentals(client, headers, customer, customer2, products):
    """Two completed orders for Ana (77.350 and 5.000), one open order for Pedro (5.950)."""
    gen, scaffold, drill = products
    o1 = _order(client, headers, customer.id, gen.id, 3, num_days=2, shipping_total=5000,
                payment_method="transfer")
    o2 = _order(client, headers, customer.id, scaffold.id, 1, apply_iva=False)
    o3 = _order(client, headers, customer2.id, drill.id, 2)
    _complete(client, headers, o1)
    _complete(client, headers, o2)
    return o1, o2, o3


def test_empty_window(client, headers):
    r = client.get("/api/analytics/advanced?startDate=2000-01-01&endDate=2000-01-31", headers=headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["date_range"] == {"start": "2000-01-01", "end": "2000-01-31"}
    assert data["orders"]["total_orders"] == 0
    assert data["orders"]["completion_rate"] == 0
    assert data["kpis"]["average_order_value"] == 0
    assert data["kpis"]["churn_rate"] == 0
    assert data["shipping"]["pickup_vs_shipping"] == {"pickup": 0, "shipping": 0}


def test_bad_dates(client, headers):
    assert client.get("/api/analytics/advanced?startDate=yesterday", headers=headers).status_code == 400
    r = client.get("/api/analytics/advanced?startDate=2024-02-01&endDate=2024-01-01", headers=headers)
    assert r.status_code == 400


def test_order_and_kpi_figures(client, headers, rentals):
    data = client.get("/api/analytics/advanced", headers=headers).get_json()["data"]

    orders = data["orders"]
    assert orders["total_orders"] == 3
    assert orders["completion_rate"] == 66.7
    assert orders["orders_by_status"][0] == {"status": "completed", "count": 2, "percentage": 66.7}
    assert orders["order_value_distribution"]["median_order_value"] == 5950
    assert orders["top_customers"][0]["total_spent"] == 82350

    kpis = data["kpis"]
    assert kpis["average_order_value"] == 41175
    assert kpis["customer_lifetime_value"] == 82350
    assert kpis["customer_retention_rate"] == 100.0
    assert kpis["churn_rate"] == 0


def test_user_product_and_shipping_figures(client, headers, rentals):
    data = client.get("/api/analytics/advanced", headers=headers).get_json()["data"]

    users = data["users"]
    assert users["total_users"] == 2
    assert users["active_users"] == 2
    assert users["conversion_rate"] == 100.0
    assert users["users_by_type"] == {"persona": 1, "empresa": 1}
    assert users["users_with_terms_accepted"] == 1

    products = data["products"]
    assert products["most_rented_products"][0]["name"] == "Generator"
    assert products["most_rented_products"][0]["total_rentals"] == 3
    assert products["revenue_by_product"][0] == {
        "product_id": products["most_rented_products"][0]["id"], "name": "Generator", "revenue": 60000,
    }
    assert products["stock_status"]["low_stock"] == 1

    shipping = data["shipping"]
    assert shipping["pickup_vs_shipping"] == {"pickup": 2, "shipping": 1}
    assert shipping["total_shipping_revenue"] == 5000


def test_coupon_figures(client, headers, customer, products, make_coupon):
    make_coupon("SAVE10")
    _order(client, headers, customer.id, products[0].id, 3, num_days=2, shipping_total=5000,
           coupon_code="SAVE10")
    coupons = client.get("/api/analytics/advanced", headers=headers).get_json()["data"]["coupons"]
    assert coupons["total_coupons_used"] == 1
    assert coupons["total_discount_amount"] == 6500
    assert coupons["most_used_coupons"] == [{"code": "SAVE10", "usage_count": 1, "total_discount": 6500}]


def test_product_rentals_reads_every_page(client, headers, customer, products):
    gen = products[0]
    ids = [_order(client, headers, customer.id, gen.id, 1) for _ in range(5)]

    r = client.get(f"/api/analytics/product-rentals/{gen.id}", headers=headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["product"]["name"] == "Generator"
    assert data["total_rentals"] == 5
    assert [row["order_id"] for row in data["rentals"]] == sorted(ids, reverse=True)
    row = data["rentals"][0]
    assert row["customer"] == "Ana Rojas"
    assert row["unit_price"] == 10000.0
    assert row["total"] == 10000.0


def test_product_rentals_bad_date(client, headers, products):
    r = client.get(f"/api/analytics/product-rentals/{products[0].id}?startDate=31-12-2024", headers=headers)
    assert r.status_code == 400


def test_product_rentals_service_pages(app, customer, products, client, headers):
    gen = products[0]
    for _ in range(3):
        _order(client, headers, customer.id, gen.id, 2)
    rows = analytics_service.get_product_rentals(gen.id, page_size=1)
    assert len(rows) == 3
    assert all(row["quantity"] == 2 for row in rows)
