from rental_admin.model import Product


def test_batch_keeps_request_order_and_reports_missing(client, headers, products):
    gen, scaffold, drill = products
    r = client.post("/api/products/batch", json={"ids": [drill.id, 999, gen.id, drill.id]}, headers=headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert [p["id"] for p in data["products"]] == [drill.id, gen.id]
    assert data["missing"] == [999]


def test_batch_rejects_invalid_ids(client, headers, products):
    r = client.post("/api/products/batch", json={"ids": [1, "abc", -2, 1.5]}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()["invalid"] == ["abc", -2, 1.5]

    assert client.post("/api/products/batch", json={"ids": []}, headers=headers).status_code == 400


def test_create_and_sku_conflict(client, headers, category):
    payload = {"name": "Light Tower", "sku": "LT-1", "price": 35000, "category_id": category.id}
    r = client.post("/api/products", json=payload, headers=headers)
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["slug"] == "light-tower"
    assert data["category"] == {"id": category.id, "name": "Power"}

    r = client.post("/api/products", json={**payload, "name": "Other"}, headers=headers)
    assert r.status_code == 409


def test_create_validation(client, headers):
    assert client.post("/api/products", json={"price": 10}, headers=headers).status_code == 400
    r = client.post("/api/products", json={"name": "X", "price": -1}, headers=headers)
    assert r.status_code == 400
    r = client.post("/api/products", json={"name": "X", "price": 1, "category_id": 42}, headers=headers)
    assert r.get_json()["error"] == "category not found"


def test_list_search_and_filters(client, headers, products):
    r = client.get("/api/products?search=gen", headers=headers)
    assert [p["name"] for p in r.get_json()["data"]["items"]] == ["Generator"]

    r = client.get("/api/products?sort=price&limit=2", headers=headers)
    data = r.get_json()["data"]
    assert [p["name"] for p in data["items"]] == ["Drill", "Scaffold"]
    assert data["total_pages"] == 2


def test_update_product(client, headers, products):
    gen = products[0]
    r = client.put(f"/api/products/{gen.id}", json={"price": 12000, "stock_status": "outofstock"},
                   headers=headers)
    assert r.status_code == 200
    assert r.get_json()["data"]["price"] == 12000.0

    r = client.put(f"/api/products/{gen.id}", json={"stock_status": "gone"}, headers=headers)
    assert r.status_code == 400


def test_duplicate_product(client, headers, products):
    gen = products[0]
    first = client.post(f"/api/products/{gen.id}/duplicate", headers=headers).get_json()["data"]
    second = client.post(f"/api/products/{gen.id}/duplicate", headers=headers).get_json()["data"]
    assert first["name"] == "Generator (Copy)"
    assert first["status"] == "draft"
    assert first["sku"] == "GEN-1-copy"
    assert second["sku"] == "GEN-1-copy-2"
    assert Product.query.count() == 5


def test_delete_product(client, headers, products):
    pid = products[1].id
    assert client.delete(f"/api/products/{pid}", headers=headers).status_code == 200
    assert client.get(f"/api/products/{pid}", headers=headers).status_code == 404


def test_export_xlsx(client, headers, products):
    r = client.get("/api/products/export", headers=headers)
    assert r.status_code == 200
    assert r.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert r.data[:2] == b"PK"


def test_non_finite_price_is_rejected(client, headers):
    r = client.post("/api/products", json={"name": "X", "price": "NaN"}, headers=headers)
    assert r.status_code == 400
    assert r.get_json()["error"] == "price must be numeric"
