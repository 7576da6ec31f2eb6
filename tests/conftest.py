import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import security
from images import ImageStore
from main import app

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(security, "PBKDF2_ITERATIONS", 1000)


@pytest.fixture
def db():
    mongo = mongomock.MongoClient()
    mdb = mongo["marketplace_test"]
    database.ensure_indexes(mdb)
    yield mdb
    mongo.drop_database("marketplace_test")


@pytest.fixture
def image_store(tmp_path):
    return ImageStore(tmp_path / "uploads", max_bytes=1024)


@pytest.fixture
def tokens():
    return app.state.token_service


@pytest.fixture
def client(db, image_store):
    previous_store = app.state.image_store
    app.dependency_overrides[database.get_db] = lambda: db
    app.state.image_store = image_store
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.image_store = previous_store


@pytest.fixture
def signup(client):
    """Register a user through the API; returns (token, user)."""

    def _signup(email="alice@example.com", password="s3cret!", name="Alice", phone="9999900000"):
        res = client.post("/auth/signup", json={
            "email": email, "password": password, "name": name, "phone": phone,
        })
        assert res.status_code == 201, res.text
        body = res.json()
        return body["token"], body["user"]

    return _signup


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def create_product(client):
    def _create(token, **overrides):
        payload = {
            "title": "Wooden train set",
            "price": 500,
            "description": "Barely used",
            "category": "Toys",
            "upiId": "seller@upi",
            "imageUrl": "https://cdn.example.com/train.jpg",
        }
        payload.update(overrides)
        res = client.post("/products", json=payload, headers=auth(token))
        assert res.status_code == 201, res.text
        return res.json()

    return _create


@pytest.fixture
def seller(signup):
    return signup("seller@example.com", name="Sam Seller", phone="1111111111")


@pytest.fixture
def buyer(signup):
    return signup("buyer@example.com", name="Bea Buyer", phone="2222222222")
