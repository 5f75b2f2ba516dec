import json
from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from database import current_price, to_minor_units
from services import AuthError, AuthService, PaymentError, PaymentService


class FakeAuthService(AuthService):
    """Maps opaque test tokens to Firebase-like claims."""

    def __init__(self):
        self.tokens = {}

    def register(self, token, email, name=None):
        self.tokens[token] = {"uid": f"uid-{email}", "email": email, "name": name}

    def verify_token(self, token):
        if token not in self.tokens:
            raise AuthError("Invalid or expired token")
        return dict(self.tokens[token])


class FakePaymentService(PaymentService):
    def __init__(self):
        self.intents = {}
        self.created = 0

    def create_intent(self, amount, metadata):
        self.created += 1
        pid = f"pi_test_{self.created}"
        self.intents[pid] = {
            "id": pid,
            "status": "requires_payment_method",
            "amount": to_minor_units(amount),
            "currency": "usd",
            "client_secret": f"{pid}_secret_abc",
            "metadata": dict(metadata),
        }
        return dict(self.intents[pid])

    def succeed(self, pid):
        self.intents[pid]["status"] = "succeeded"

    def process(self, pid):
        self.intents[pid]["status"] = "processing"

    def retrieve_intent(self, payment_intent_id):
        if payment_intent_id not in self.intents:
            raise PaymentError(f"No such payment_intent: {payment_intent_id}")
        return dict(self.intents[payment_intent_id])

    def parse_webhook(self, payload, signature):
        if signature != "valid-signature":
            raise PaymentError("Invalid webhook signature")
        event = json.loads(payload)
        return {"type": event["type"], "object_id": event["data"]["object"]["id"]}


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def auth():
    return FakeAuthService()


@pytest.fixture
def payments():
    return FakePaymentService()


@pytest.fixture
def client(db, auth, payments):
    main.app.dependency_overrides[main.get_db] = lambda: db
    main.app.dependency_overrides[main.get_auth_service] = lambda: auth
    main.app.dependency_overrides[main.get_payment_service] = lambda: payments
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def login(db, auth):
    """Create a stored user with a role and return bearer headers for them."""

    def _login(email, role="user", stored=True, name=None):
        token = f"token-{email.split('@')[0]}"
        auth.register(token, email, name=name or email.split("@")[0])
        if stored:
            db["users"].insert_one({
                "email": email,
                "username": name or email.split("@")[0],
                "role": role,
                "createdAt": datetime.utcnow(),
            })
        return {"Authorization": f"Bearer {token}"}

    return _login


@pytest.fixture
def add_category(db):
    def _add(name="Tablet"):
        return db["categories"].insert_one({
            "categoryName": name,
            "categoryImage": "",
            "createdAt": datetime.utcnow(),
        }).inserted_id

    return _add


@pytest.fixture
def add_medicine(db):
    def _add(item_name="Napa", price=100.0, discount=0, category="Tablet",
             seller="seller@oshudh.test", stock=None, **extra):
        doc = {
            "itemName": item_name,
            "genericName": extra.pop("genericName", "Paracetamol"),
            "company": extra.pop("company", "Beximco"),
            "category": category,
            "perUnitPrice": price,
            "discountPercentage": discount,
            "currentPrice": current_price(price, discount),
            "sellerEmail": seller,
            "createdAt": datetime.utcnow(),
            **extra,
        }
        if stock is not None:
            doc["stock"] = stock
        return db["medicines"].insert_one(doc).inserted_id

    return _add
