def _create(client, headers, **payload):
    return client.post("/api/categories", json=payload, headers=headers)


def test_listing_is_public(client, category):
    r = client.get("/api/categories")
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["total"] == 1
    assert data["items"][0]["name"] == "Power"


def test_writes_need_staff(client, customer):
    from flask_jwt_extended import create_access_token

    token = create_access_token(identity=str(customer.id))
    r = client.post("/api/categories", json={"name": "Tools"},
                    headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403
    assert client.post("/api/categories", json={"name": "Tools"}).status_code == 401


def test_create_with_parent_and_tree(client, headers):
    parent = _create(client, headers, name="Lighting").get_json()["data"]
    child = _create(client, headers, name="LED Panels", parent=parent["id"])
    assert child.status_code == 201
    assert child.get_json()["data"]["slug"] == "led-panels"

    tree = client.get("/api/categories?hierarchical=true").get_json()["data"]["items"]
    assert [c["name"] for c in tree] == ["Lighting"]
    assert [c["name"] for c in tree[0]["children"]] == ["LED Panels"]


def test_nesting_is_one_level(client, headers):
    top = _create(client, headers, name="Audio").get_json()["data"]
    mid = _create(client, headers, name="Speakers", parent=top["id"]).get_json()["data"]

    r = _create(client, headers, name="Tweeters", parent=mid["id"])
    assert r.status_code == 400
    assert r.get_json()["error"] == "parent must be a top-level category"

    r = client.put(f"/api/categories/{top['id']}", json={"parent": top["id"]}, headers=headers)
    assert r.status_code == 400

    other = _create(client, headers, name="Video").get_json()["data"]
    r = client.put(f"/api/categories/{top['id']}", json={"parent": other["id"]}, headers=headers)
    assert r.get_json()["error"] == "a category with subcategories cannot be nested"


def test_duplicate_name_is_conflict(client, headers, category):
    r = _create(client, headers, name="power")
    assert r.status_code == 409


def test_update_category(client, headers, category):
    r = client.put(f"/api/categories/{category.id}", json={"name": "Power Tools", "menu_order": 3},
                   headers=headers)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["slug"] == "power-tools"
    assert data["menu_order"] == 3


def test_delete_with_products_is_refused(client, headers, category, products):
    r = client.delete(f"/api/categories/{category.id}", headers=headers)
    assert r.status_code == 409


def test_delete_promotes_children(client, headers):
    top = _create(client, headers, name="Stage").get_json()["data"]
    child = _create(client, headers, name="Trusses", parent=top["id"]).get_json()["data"]

    assert client.delete(f"/api/categories/{top['id']}", headers=headers).status_code == 200
    r = client.get(f"/api/categories/{child['id']}")
    assert r.get_json()["data"]["parent"] is None


def test_reorder(client, headers):
    a = _create(client, headers, name="A").get_json()["data"]
    b = _create(client, headers, name="B").get_json()["data"]

    r = client.put("/api/categories/reorder",
                   json={"items": [{"id": a["id"], "menu_order": 2}, {"id": b["id"], "menu_order": 1}]},
                   headers=headers)
    assert r.status_code == 200
    names = [c["name"] for c in client.get("/api/categories").get_json()["data"]["items"]]
    assert names == ["B", "A"]

    r = client.put("/api/categories/reorder", json={"items": [{"id": 999, "menu_order": 0}]},
                   headers=headers)
    assert r.status_code == 404
    assert r.get_json()["missing"] == [999]
