import re

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings, get_settings
from database import create_document, ensure_indexes, get_db
from main import app
from notifications import Notifier, get_notifier
from schemas import Product

PASSWORD = "secret123"


class MemoryTransport:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, sender, to, subject, html, text):
        if self.fail:
            raise ConnectionError("mail provider unreachable")
        self.sent.append({"from": sender, "to": to, "subject": subject, "html": html, "text": text})
        return True

    def reset_token(self):
        for message in reversed(self.sent):
            match = re.search(r"token=([A-Za-z0-9_\-\.]+)", message["text"])
            if match:
                return match.group(1)
        return None


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", bcrypt_rounds=4, delivery_charge=3.0, delivery_days=5)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["tailoring_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def transport():
    return MemoryTransport()


@pytest.fixture
def notifier(transport):
    return Notifier(transport, "Shop <shop@example.com>")


@pytest.fixture
def client(db, settings, notifier):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_product(db, **overrides):
    data = {
        "name": "Plain cotton",
        "description": "Plain white cotton fabric",
        "price": 100,
        "category": "men's wear",
        "subcategory": "tailoring",
        "tags": ["cotton"],
    }
    data.update(overrides)
    return create_document(db, "product", Product(**data))


@pytest.fixture
def products(db):
    return {
        "a": make_product(db, name="Checkered purple", price=100, tags=["checks"]),
        "b": make_product(db, name="Camel silera", price=250, category="women's wear", subcategory="blouse"),
        "c": make_product(db, name="Grey formal", price=40.5, in_stock=False, tags=["formal"]),
        "inactive": make_product(db, name="Discontinued linen", price=10, is_active=False),
    }


def registration(**overrides):
    data = {
        "username": "ravi",
        "email": "ravi@example.com",
        "password": PASSWORD,
        "first_name": "Ravi",
        "last_name": "Kumar",
        "phone": "9876543210",
        "alternate_phone": "9876543211",
        "state": "Telangana",
        "district": "Hyderabad",
        "mandal": "Ameerpet",
        "pincode": "500016",
        "address1": "12-3 Main Road",
        "address2": "Near the temple",
    }
    data.update(overrides)
    return data


def login(client, username="ravi", password=PASSWORD):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def auth(client):
    response = client.post("/api/auth/register", json=registration())
    assert response.status_code == 201, response.text
    return login(client)


def delivery_address():
    return {"name": "Ravi Kumar", "phone": "9876543210", "pincode": "500016", "address": "12-3 Main Road, Hyderabad"}
