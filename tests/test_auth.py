from flask_jwt_extended import create_access_token


def test_login_and_me(client, admin):
    r = client.post("/api/auth/login", json={"email": "ADMIN@rental.test", "password": "secret123"})
    assert r.status_code == 200
    token = r.get_json()["data"]["token"]

    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.get_json()["data"]["user"]["role"] == "admin"


def test_login_failures(client, admin):
    assert client.post("/api/auth/login", json={}).status_code == 400
    r = client.post("/api/auth/login", json={"email": "admin@rental.test", "password": "wrong"})
    assert r.status_code == 401
    assert r.get_json() == {"success": False, "error": "Invalid email or password"}


def test_me_needs_a_token(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.get_json()["success"] is False


def test_register_customer(client, headers):
    r = client.post("/api/auth/register", json={
        "email": "Luis@Example.com", "name": "Luis Mora", "customer_type": "empresa", "city": "Talca",
    }, headers=headers)
    assert r.status_code == 201
    user = r.get_json()["data"]["user"]
    assert user["email"] == "luis@example.com"
    assert user["role"] == "customer"
    assert user["customer_type"] == "empresa"

    r = client.post("/api/auth/register", json={"email": "luis@example.com"}, headers=headers)
    assert r.status_code == 409


def test_only_admins_create_staff(client, app):
    from rental_admin.extensions import db
    from rental_admin.model import User

    manager = User(email="boss@rental.test", role="manager", password_hash="x")
    db.session.add(manager)
    db.session.commit()
    token = create_access_token(identity=str(manager.id))

    r = client.post("/api/auth/register", json={"email": "new@rental.test", "role": "admin"},
                    headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403
    r = client.post("/api/auth/register", json={"email": "new@rental.test"},
                    headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 201
