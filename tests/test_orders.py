import os
from io import BytesIO

import pytest

from rental_admin.extensions import db
from rental_admin.model import Coupon, CouponUsage, Order
from rental_admin.services import mailer


@pytest.fixture
def order_payload(customer, products):
    return {
        "customer_id": customer.id,
        "line_items": [{"product_id": products[0].id, "quantity": 3}],
        "num_days": 2,
        "shipping_total": 5000,
        "project_name": "Expo Norte",
    }


def _create(client, headers, payload):
    r = client.post("/api/orders", json=payload, headers=headers)
    assert r.status_code == 201, r.get_json()
    return r.get_json()["data"]


def test_create_order_totals(client, headers, order_payload):
    data = _create(client, headers, order_payload)
    assert data["status"] == "on-hold"
    assert data["money"] == {
        "manual_discount": 0.0, "apply_iva": True, "subtotal": 65000.0, "discount": 0.0,
        "iva": 12350.0, "total": 77350.0, "reserve": 19337.5,
    }
    assert data["line_items"][0]["price"] == 10000.0
    assert data["billing"]["email"] == "ana@example.com"
    assert data["billing"]["first_name"] == "Ana"
    assert data["billing"]["city"] == "Santiago"


def test_line_price_is_a_snapshot(client, headers, order_payload, products):
    data = _create(client, headers, order_payload)
    products[0].price = 99999
    db.session.commit()
    r = client.get(f"/api/orders/{data['id']}", headers=headers)
    assert r.get_json()["data"]["line_items"][0]["price"] == 10000.0


def test_create_with_rental_dates(client, headers, order_payload):
    payload = {**order_payload, "start_date": "2024-03-01", "end_date": "2024-03-03"}
    payload.pop("num_days")
    data = _create(client, headers, payload)
    assert data["num_days"] == 3
    assert data["money"]["subtotal"] == 95000.0

    payload["end_date"] = "2024-02-27"
    assert client.post("/api/orders", json=payload, headers=headers).status_code == 400


def test_create_with_coupon_redeems_it(client, headers, order_payload, make_coupon):
    coupon = make_coupon("SAVE10")
    data = _create(client, headers, {**order_payload, "coupon_code": "save10"})
    assert data["coupon_lines"] == [{"code": "SAVE10", "discount_type": "percent", "discount": 6500.0}]
    assert data["money"]["subtotal"] == 58500.0
    assert data["money"]["iva"] == 11115.0
    assert data["money"]["total"] == 69615.0

    assert db.session.get(Coupon, coupon.id).usage_count == 1
    usage = CouponUsage.query.one()
    assert usage.order_id == data["id"]
    assert float(usage.discount_amount) == 6500.0


def test_create_with_exhausted_coupon_rolls_back(client, headers, order_payload, make_coupon):
    make_coupon("GONE", usage_limit=1, usage_count=1)
    r = client.post("/api/orders", json={**order_payload, "coupon_code": "GONE"}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()["error"] == "This coupon has reached its usage limit"
    assert Order.query.count() == 0


def test_create_with_shipping_method(client, headers, order_payload, standard_shipping):
    payload = {**order_payload, "shipping_method_id": standard_shipping.id}
    payload.pop("shipping_total")
    data = _create(client, headers, payload)
    assert data["shipping_total"] == 5000.0
    assert data["shipping_lines"][0]["method_title"] == "Standard Shipping"
    assert data["money"]["total"] == 77350.0


def test_create_validation(client, headers, order_payload):
    r = client.post("/api/orders", json={**order_payload, "customer_id": None}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/orders", json={**order_payload, "line_items": [{"product_id": 999}]},
                    headers=headers)
    assert r.status_code == 400
    assert r.get_json()["missing"] == [999]

    r = client.post("/api/orders", json={**order_payload, "num_days": 0}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/orders", json={**order_payload, "status": "shipped"}, headers=headers)
    assert r.get_json()["error"] == "Invalid status"


def test_calculate_has_no_side_effects(client, headers, order_payload, make_coupon):
    coupon = make_coupon("SAVE10")
    r = client.post("/api/orders/calculate", json={**order_payload, "coupon_code": "SAVE10"},
                    headers=headers)
    assert r.status_code == 200
    totals = r.get_json()["data"]["totals"]
    assert totals["discount"] == 6500.0
    assert totals["total"] == 69615.0
    assert Order.query.count() == 0
    assert db.session.get(Coupon, coupon.id).usage_count == 0


def test_update_reprices(client, headers, order_payload):
    data = _create(client, headers, order_payload)
    r = client.put(f"/api/orders/{data['id']}", json={"num_days": 3, "customer_note": "gate B"},
                   headers=headers)
    assert r.status_code == 200
    money = r.get_json()["data"]["money"]
    assert money["subtotal"] == 95000.0
    assert money["total"] == 113050.0
    assert r.get_json()["data"]["customer_note"] == "gate B"


def test_update_recomputes_redeemed_coupon(client, headers, order_payload, make_coupon):
    make_coupon("SAVE10")
    data = _create(client, headers, {**order_payload, "coupon_code": "SAVE10"})
    r = client.put(f"/api/orders/{data['id']}", json={"num_days": 3}, headers=headers)
    body = r.get_json()["data"]
    assert body["coupon_lines"][0]["discount"] == 9500.0
    assert body["money"]["total"] == 101745.0
    assert float(CouponUsage.query.one().discount_amount) == 9500.0

    r = client.put(f"/api/orders/{data['id']}", json={"coupon_code": "OTHER"}, headers=headers)
    assert r.status_code == 400


def test_status_transitions(client, headers, order_payload):
    oid = _create(client, headers, order_payload)["id"]
    url = f"/api/orders/{oid}/status"

    r = client.put(url, json={}, headers=headers)
    assert r.get_json()["error"] == "Status is required"
    assert client.put(url, json={"status": "shipped"}, headers=headers).status_code == 400
    assert client.put(url, json={"status": "completed"}, headers=headers).status_code == 409

    r = client.put(url, json={"status": "processing"}, headers=headers)
    assert r.get_json()["message"] == "Order status is processing"
    r = client.put(url, json={"status": "completed", "reason": "returned"}, headers=headers)
    assert r.get_json()["data"]["date_completed"] is not None

    assert client.put(f"/api/orders/{oid}", json={"num_days": 5}, headers=headers).status_code == 409

    history = client.get(f"/api/orders/{oid}/history", headers=headers).get_json()["data"]
    assert [(h["from_status"], h["to_status"]) for h in history] == [
        (None, "on-hold"), ("on-hold", "processing"), ("processing", "completed"),
    ]
    assert history[-1]["reason"] == "returned"


def test_list_orders_filters(client, headers, order_payload, customer2):
    _create(client, headers, order_payload)
    _create(client, headers, {**order_payload, "customer_id": customer2.id, "status": "pending"})

    r = client.get("/api/orders?status=pending", headers=headers)
    assert r.get_json()["data"]["total"] == 1
    r = client.get("/api/orders?search=pedro", headers=headers)
    assert r.get_json()["data"]["items"][0]["billing"]["email"] == "obras@constructora.cl"
    r = client.get("/api/orders?startDate=2000-01-01&endDate=2000-01-31", headers=headers)
    assert r.get_json()["data"]["total"] == 0
    assert client.get("/api/orders?startDate=nope", headers=headers).status_code == 400


def test_duplicate_order(client, headers, order_payload, make_coupon):
    make_coupon("SAVE10")
    source = _create(client, headers, {**order_payload, "coupon_code": "SAVE10"})
    r = client.post(f"/api/orders/{source['id']}/duplicate", headers=headers)
    assert r.status_code == 201
    copy = r.get_json()["data"]
    assert copy["id"] != source["id"]
    assert copy["status"] == "pending"
    assert copy["coupon_lines"] == []
    assert copy["money"]["total"] == 77350.0

    history = client.get(f"/api/orders/{copy['id']}/history", headers=headers).get_json()["data"]
    assert history[0]["reason"] == f"duplicated from order #{source['id']}"


def test_generate_budget(app, client, headers, order_payload):
    oid = _create(client, headers, order_payload)["id"]
    r = client.post(f"/api/orders/{oid}/generate-budget", json={}, headers=headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["budget_url"].startswith(f"/api/orders/documents/budget-order-{oid}-")
    assert data["email"]["to"] == "ana@example.com"

    filename = data["document"]["filename"]
    assert os.path.isfile(os.path.join(app.config["DOCUMENTS_DIR"], filename))
    sent = mailer.outbox()
    assert len(sent) == 1
    assert sent[0]["Subject"] == f"Order confirmation #{oid}"

    r = client.get(data["budget_url"], headers=headers)
    assert r.status_code == 200
    assert b"77,350" in r.data


def test_generate_budget_without_email(client, headers, order_payload):
    oid = _create(client, headers, order_payload)["id"]
    r = client.post(f"/api/orders/{oid}/generate-budget", json={"send_email": False}, headers=headers)
    assert r.get_json()["data"]["email"] is None
    assert mailer.outbox() == []


def test_send_email(client, headers, order_payload):
    oid = _create(client, headers, order_payload)["id"]
    url = f"/api/orders/{oid}/email"

    assert client.post(url, json={}, headers=headers).status_code == 400
    r = client.post(url, json={"type": "newsletter"}, headers=headers)
    assert r.get_json()["error"] == "Invalid email type"

    r = client.post(url, json={"type": "payment_reminder", "message": "Transfer by Friday"},
                    headers=headers)
    assert r.status_code == 200
    assert r.get_json()["message"] == "Email sent successfully to ana@example.com"
    body = mailer.outbox()[-1].get_content()
    assert "Transfer by Friday" in body
    assert "19,338" in body


def test_upload_documents(client, headers, order_payload):
    oid = _create(client, headers, order_payload)["id"]
    url = f"/api/orders/{oid}/documents"

    r = client.post(url, data={"file": (BytesIO(b"%PDF-1.4"), "contract.pdf"), "kind": "contract"},
                    headers=headers, content_type="multipart/form-data")
    assert r.status_code == 201
    doc = r.get_json()["data"]
    assert doc["filename"] == f"order-{oid}-contract-contract.pdf"

    r = client.post(url, data={"file": (BytesIO(b"MZ"), "tool.exe")},
                    headers=headers, content_type="multipart/form-data")
    assert r.status_code == 400

    listed = client.get(url, headers=headers).get_json()["data"]
    assert [d["kind"] for d in listed] == ["contract"]
    assert client.get(doc["url"], headers=headers).data == b"%PDF-1.4"
    assert client.get("/api/orders/documents/missing.pdf", headers=headers).status_code == 404


@pytest.mark.parametrize("field, value", [
    ("manual_discount", "Infinity"),
    ("manual_discount", "NaN"),
    ("shipping_total", "-Infinity"),
])
def test_non_finite_money_is_rejected(client, headers, order_payload, field, value):
    r = client.post("/api/orders", json={**order_payload, field: value}, headers=headers)
    assert r.status_code == 400
    assert r.get_json() == {"success": False, "error": f"{field} must be numeric"}

    r = client.post("/api/orders/calculate", json={**order_payload, field: value}, headers=headers)
    assert r.status_code == 400


def test_numeric_region_with_shipping_method(client, headers, order_payload, standard_shipping):
    payload = {**order_payload, "shipping_method_id": standard_shipping.id, "billing_region": 13}
    data = _create(client, headers, payload)
    assert data["billing"]["region"] == "13"

    standard_shipping.available_regions = ["RM"]
    db.session.commit()
    r = client.post("/api/orders", json=payload, headers=headers)
    assert r.status_code == 400
    assert r.get_json()["error"] == "Not available in your region"

    r = client.post("/api/orders", json={**order_payload, "billing_region": {"code": "RM"}}, headers=headers)
    assert r.status_code == 400


def test_update_keeps_stored_shipping_choice(client, headers, order_payload, standard_shipping):
    payload = {**order_payload, "shipping_method_id": standard_shipping.id}
    payload.pop("shipping_total")
    oid = _create(client, headers, payload)["id"]

    standard_shipping.enabled = False
    db.session.commit()

    r = client.put(f"/api/orders/{oid}", json={"num_days": 3}, headers=headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["shipping_method_id"] == standard_shipping.id
    assert data["shipping_lines"][0]["method_title"] == "Standard Shipping"
    assert data["shipping_total"] == 5000.0
    assert data["money"]["total"] == 113050.0

    # choosing the method again validates it
    r = client.put(f"/api/orders/{oid}", json={"shipping_method_id": standard_shipping.id}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()["error"] == "Shipping method not available"


def test_update_to_manual_shipping_drops_method(client, headers, order_payload, standard_shipping):
    payload = {**order_payload, "shipping_method_id": standard_shipping.id}
    payload.pop("shipping_total")
    oid = _create(client, headers, payload)["id"]

    r = client.put(f"/api/orders/{oid}", json={"shipping_total": 0}, headers=headers)
    data = r.get_json()["data"]
    assert data["shipping_method_id"] is None
    assert data["shipping_lines"] == []
    assert data["money"]["subtotal"] == 60000.0
