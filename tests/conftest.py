"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory mongomock database wired into the app
through the ``get_db`` dependency, plus helpers to create users and products.
"""
import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db
from main import app
from security import create_access_token, hash_password

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role="user", name="Test User", email=None):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user_id = create_document(db, "user", {
            "name": name,
            "email": email,
            "password_hash": PASSWORD_HASH,
            "role": role,
            "cart": {"items": [], "total": 0, "item_count": 0},
            "wishlist": [],
        })
        token = create_access_token({"sub": user_id, "email": email})
        return user_id, {"Authorization": f"Bearer {token}"}

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin_user(make_user):
    return make_user(role="admin", name="Admin", email="admin@example.com")


@pytest.fixture
def make_product(db):
    def _make_product(**fields):
        data = {
            "name": "Trail Runner",
            "description": "Lightweight running shoe",
            "price": 89.99,
            "images": ["https://img.example.com/trail-runner.jpg"],
            "category": "sports",
            "tags": ["running", "shoes"],
            "inventory": 10,
            "rating": 0,
            "review_count": 0,
            "featured": False,
            "status": "active",
        }
        data.update(fields)
        return create_document(db, "product", data)

    return _make_product


@pytest.fixture
def product_id(make_product):
    return make_product()


def add_review(db, product_id, rating, user_id=None):
    """Insert a review row directly, bypassing the endpoint."""
    return create_document(db, "review", {
        "product_id": product_id,
        "user_id": user_id or str(ObjectId()),
        "user_name": "someone",
        "user_email": "someone@example.com",
        "rating": rating,
        "title": "Review",
        "comment": "Comment",
        "verified_purchase": False,
        "helpful": 0,
        "not_helpful": 0,
    })
