from decimal import Decimal

import pytest

from wear_backend import create_app
from wear_backend.extensions import db
from wear_backend.models import Product, User

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "JWT_SECRET_KEY": "test-secret-key-with-enough-length-for-hs256",
            "BCRYPT_ROUNDS": 4,
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "EXPOSE_RESET_TOKENS": True,
            "ALLOW_ADMIN_SELF_PROMOTION": False,
            "RESEND_API_KEY": "",
            "ADMIN_EMAIL": "",
            "ADMIN_PASSWORD": "",
            "TRUSTED_PROXY_HOPS": 0,
            "AUTO_CREATE_TABLES": True,
        }
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    def _auth_headers(token):
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def register(client):
    """Register an account through the API and return ``(user_json, token)``."""

    def _register(email="shopper@example.com", password=DEFAULT_PASSWORD, **extra):
        payload = {
            "email": email,
            "password": password,
            "firstName": extra.pop("firstName", "Jane"),
            "lastName": extra.pop("lastName", "Doe"),
        }
        payload.update(extra)
        response = client.post("/api/auth/register", json=payload)
        assert response.status_code == 201, response.get_json()
        data = response.get_json()["data"]
        return data["user"], data["token"]

    return _register


@pytest.fixture
def user_token(register):
    _user, token = register()
    return token


@pytest.fixture
def admin_token(app, register):
    user, token = register(email="admin@example.com", firstName="Ada", lastName="Admin")
    with app.app_context():
        account = db.session.get(User, user["id"])
        account.is_admin = True
        db.session.commit()
    return token


@pytest.fixture
def make_product(app):
    """Insert a product directly and return its id."""
    counter = {"value": 0}

    def _make_product(**overrides):
        counter["value"] += 1
        values = {
            "name": f"Linen Shirt {counter['value']}",
            "slug": f"linen-shirt-{counter['value']}",
            "sku": f"LS-{counter['value']:03d}",
            "price": Decimal("49.99"),
            "quantity": 10,
            "is_active": True,
        }
        values.update(overrides)
        with app.app_context():
            product = Product(**values)
            db.session.add(product)
            db.session.commit()
            return product.id

    return _make_product
