"""Shared fixtures: an in-memory app, a staff token and a small catalog."""
import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from rental_admin import create_app
from rental_admin.config import TestingConfig
from rental_admin.extensions import db
from rental_admin.model import Category, Coupon, Product, ShippingMethod, User


@pytest.fixture
def app(tmp_path):
    class _Config(TestingConfig):
        DOCUMENTS_DIR = str(tmp_path / "documents")

    app = create_app(_Config)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(email, role, **kw):
    u = User(email=email, role=role, password_hash=generate_password_hash("secret123"), **kw)
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def admin(app):
    return _user("admin@rental.test", "admin", name="Admin")


@pytest.fixture
def headers(admin):
    token = create_access_token(identity=str(admin.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer(app):
    return _user("ana@example.com", "customer", name="Ana Rojas", customer_type="persona",
                 city="Santiago", phone="+56911111111", terms_accepted=True)


@pytest.fixture
def customer2(app):
    return _user("obras@constructora.cl", "customer", name="Pedro Soto", customer_type="empresa",
                 city="Valparaiso")


@pytest.fixture
def category(app):
    c = Category(name="Power", slug="power")
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture
def products(category):
    """Generator 10.000, Scaffold 5.000, Drill 2.500 per day."""
    items = [
        Product(name="Generator", sku="GEN-1", price=10000, category_id=category.id),
        Product(name="Scaffold", sku="SCF-1", price=5000),
        Product(name="Drill", sku="DRL-1", price=2500, category_id=category.id, stock_quantity=3),
    ]
    db.session.add_all(items)
    db.session.commit()
    return items


@pytest.fixture
def standard_shipping(app):
    m = ShippingMethod(name="Standard Shipping", cost=5000, shipping_type="flat_rate", enabled=True,
                       estimated_days_min=2, estimated_days_max=4)
    db.session.add(m)
    db.session.commit()
    return m


@pytest.fixture
def make_coupon(app):
    def _make(code="SAVE10", **kw):
        kw.setdefault("discount_type", "percent")
        kw.setdefault("amount", 10)
        kw.setdefault("status", "publish")
        kw.setdefault("usage_count", 0)
        c = Coupon(code=code, **kw)
        db.session.add(c)
        db.session.commit()
        return c
    return _make
