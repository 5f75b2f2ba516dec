import json
import re

import pytest


@pytest.fixture
def buyer(login):
    return login("buyer@oshudh.test")


@pytest.fixture
def filled_cart(client, buyer, add_medicine):
    """A 400.00 cart: 2 x Napa at 150 and 1 x Seclo at 100."""
    napa = str(add_medicine(item_name="Napa", price=150, seller="seller1@oshudh.test"))
    seclo = str(add_medicine(item_name="Seclo", price=100, seller="seller2@oshudh.test"))
    client.post("/cart", json={"medicineId": napa, "quantity": 2}, headers=buyer)
    client.post("/cart", json={"medicineId": seclo, "quantity": 1}, headers=buyer)
    return {"napa": napa, "seclo": seclo}


def checkout(client, headers, payments, status="succeeded"):
    intent = client.post("/payment/create-intent", headers=headers).json()
    if status == "succeeded":
        payments.succeed(intent["paymentIntentId"])
    elif status == "processing":
        payments.process(intent["paymentIntentId"])
    return intent


def test_create_intent_with_empty_cart(client, buyer):
    res = client.post("/payment/create-intent", headers=buyer)
    assert res.status_code == 400
    assert res.json()["error"] == "Cart is empty"


def test_create_intent_charges_cart_total(client, buyer, filled_cart, payments):
    # a client-supplied amount has no effect
    res = client.post("/payment/create-intent", json={"amount": 1}, headers=buyer)
    body = res.json()

    assert res.status_code == 200
    assert body["subtotal"] == 400.0
    assert body["tax"] == 20.0
    assert body["deliveryCharge"] == 50.0
    assert body["totalAmount"] == 470.0
    assert body["clientSecret"].startswith(body["paymentIntentId"])

    intent = payments.intents[body["paymentIntentId"]]
    assert intent["amount"] == 47000
    assert intent["metadata"] == {"userEmail": "buyer@oshudh.test"}


def test_save_order_creates_pending_order(client, buyer, filled_cart, payments, db):
    intent = checkout(client, buyer, payments, status="processing")

    res = client.post(
        "/payment/save-order",
        json={"paymentIntentId": intent["paymentIntentId"], "transactionId": "txn_1"},
        headers=buyer,
    )
    body = res.json()
    order = body["data"]

    assert res.status_code == 200
    assert body["orderId"] == order["_id"]
    assert re.fullmatch(r"ORD-\d{6}", order["orderId"])
    assert order["status"] == "pending"
    assert order["paidAt"] is None
    assert order["transactionId"] == "txn_1"
    assert (order["subtotal"], order["tax"], order["deliveryCharge"], order["totalAmount"]) == (400.0, 20.0, 50.0, 470.0)
    assert order["totalAmount"] == order["subtotal"] + order["tax"] + order["deliveryCharge"]
    assert order["sellerEmails"] == ["seller1@oshudh.test", "seller2@oshudh.test"]
    assert order["commission"] == 40.0
    assert order["sellerEarning"] == 360.0

    assert client.get("/cart", headers=buyer).json()["data"] == []
    assert db["medicines"].find_one({"itemName": "Napa"})["sales"] == 2


def test_save_order_with_captured_payment_is_paid(client, buyer, filled_cart, payments):
    intent = checkout(client, buyer, payments)

    order = client.post(
        "/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=buyer
    ).json()["data"]

    assert order["status"] == "paid"
    assert order["paidAt"] is not None


def test_webhook_before_save_order_still_ends_paid(client, buyer, filled_cart, payments, db):
    intent = checkout(client, buyer, payments)

    # Stripe can deliver the event before the browser posts the order
    early = webhook(client, "payment_intent.succeeded", intent["paymentIntentId"])
    assert early.json() == {"success": True, "received": True}
    assert db["orders"].count_documents({}) == 0

    res = client.post("/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=buyer)

    stored = db["orders"].find_one({"paymentIntentId": intent["paymentIntentId"]})
    assert res.status_code == 200
    assert stored["status"] == "paid"
    assert stored["paidAt"] is not None


def test_order_lines_carry_seller_split(client, buyer, filled_cart, payments):
    intent = checkout(client, buyer, payments)
    order = client.post(
        "/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=buyer
    ).json()["data"]

    napa = next(i for i in order["items"] if i["itemName"] == "Napa")
    assert napa["lineTotal"] == 300.0
    assert napa["commission"] == 30.0
    assert napa["sellerEarning"] == 270.0
    assert napa["sellerEmail"] == "seller1@oshudh.test"


def test_save_order_twice_returns_the_same_order(client, buyer, filled_cart, payments, db):
    intent = checkout(client, buyer, payments)
    payload = {"paymentIntentId": intent["paymentIntentId"]}

    first = client.post("/payment/save-order", json=payload, headers=buyer).json()
    second = client.post("/payment/save-order", json=payload, headers=buyer).json()

    assert second["success"] is True
    assert second["orderId"] == first["orderId"]
    assert db["orders"].count_documents({}) == 1


def test_save_order_requires_completed_payment(client, buyer, filled_cart, payments, db):
    intent = checkout(client, buyer, payments, status=None)

    res = client.post("/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=buyer)

    assert res.status_code == 400
    assert res.json()["error"] == "Payment not completed (status: requires_payment_method)"
    assert db["orders"].count_documents({}) == 0
    assert len(client.get("/cart", headers=buyer).json()["data"]) == 2


def test_save_order_rejects_changed_cart(client, buyer, filled_cart, payments, db):
    intent = checkout(client, buyer, payments, status="processing")
    client.post("/cart", json={"medicineId": filled_cart["seclo"]}, headers=buyer)

    res = client.post("/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=buyer)

    assert res.status_code == 400
    assert res.json()["error"] == "Payment amount does not match cart total"
    assert db["orders"].count_documents({}) == 0


def test_captured_payment_with_repriced_cart_asks_for_support(client, buyer, payments, db, add_medicine, caplog):
    medicine_id = add_medicine(item_name="Napa", price=100, seller="seller1@oshudh.test")
    client.post("/cart", json={"medicineId": str(medicine_id)}, headers=buyer)
    intent = checkout(client, buyer, payments)
    assert payments.intents[intent["paymentIntentId"]]["amount"] == 15500

    # seller drops the price after the charge, the cart row is refreshed
    db["medicines"].update_one({"_id": medicine_id}, {"$set": {"perUnitPrice": 90}})
    db["cart"].update_many({"userEmail": "buyer@oshudh.test"}, {"$set": {"perUnitPrice": 90, "currentPrice": 90}})

    with caplog.at_level("ERROR", logger="oshudh.api"):
        res = client.post(
            "/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=buyer
        )

    assert res.status_code == 500
    assert res.json() == {
        "success": False,
        "error": "Payment received but the order could not be saved. Please contact support.",
    }
    assert db["orders"].count_documents({}) == 0
    assert any(intent["paymentIntentId"] in r.getMessage() for r in caplog.records)


def test_save_order_rejects_someone_elses_payment(client, buyer, filled_cart, payments, login, add_medicine):
    intent = checkout(client, buyer, payments)
    other = login("other@oshudh.test")
    client.post("/cart", json={"medicineId": filled_cart["napa"]}, headers=other)

    res = client.post("/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=other)

    assert res.status_code == 403


def test_saved_payment_cannot_be_claimed_by_another_user(client, buyer, filled_cart, payments, login):
    intent = checkout(client, buyer, payments)
    payload = {"paymentIntentId": intent["paymentIntentId"]}
    client.post("/payment/save-order", json=payload, headers=buyer)

    res = client.post("/payment/save-order", json=payload, headers=login("other@oshudh.test"))
    assert res.status_code == 409


def test_save_order_with_unknown_intent(client, buyer, filled_cart):
    res = client.post("/payment/save-order", json={"paymentIntentId": "pi_missing"}, headers=buyer)
    assert res.status_code == 502
    assert res.json()["success"] is False


def test_save_order_with_empty_cart(client, buyer):
    res = client.post("/payment/save-order", json={"paymentIntentId": "pi_whatever"}, headers=buyer)
    assert res.status_code == 400
    assert res.json()["error"] == "Cart is empty"


def place_order(client, headers, payments, status="succeeded"):
    intent = checkout(client, headers, payments, status=status)
    return client.post(
        "/payment/save-order", json={"paymentIntentId": intent["paymentIntentId"]}, headers=headers
    ).json()["data"]


def webhook(client, event_type, intent_id, signature="valid-signature"):
    payload = {"type": event_type, "data": {"object": {"id": intent_id}}}
    return client.post(
        "/payment/webhook",
        content=json.dumps(payload),
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )


def test_webhook_marks_order_paid(client, buyer, filled_cart, payments, db):
    order = place_order(client, buyer, payments, status="processing")

    res = webhook(client, "payment_intent.succeeded", order["paymentIntentId"])

    assert res.json() == {"success": True, "received": True}
    stored = db["orders"].find_one({"orderId": order["orderId"]})
    assert stored["status"] == "paid"
    assert stored["paidAt"] is not None


def test_webhook_ignores_other_events(client, buyer, filled_cart, payments, db):
    order = place_order(client, buyer, payments, status="processing")
    webhook(client, "payment_intent.created", order["paymentIntentId"])
    assert db["orders"].find_one({"orderId": order["orderId"]})["status"] == "pending"


def test_webhook_rejects_bad_signature(client):
    res = webhook(client, "payment_intent.succeeded", "pi_1", signature="forged")
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_order_history_and_details(client, buyer, filled_cart, payments, login):
    order = place_order(client, buyer, payments)

    for path in ("/orders", "/user/payment-history", "/payment/history/user"):
        data = client.get(path, headers=buyer).json()["data"]
        assert [o["orderId"] for o in data] == [order["orderId"]]

    details = client.get(f"/orders/{order['_id']}", headers=buyer)
    assert details.json()["data"]["orderId"] == order["orderId"]

    stranger = login("stranger@oshudh.test")
    assert client.get(f"/orders/{order['_id']}", headers=stranger).status_code == 404
    assert client.get("/orders", headers=stranger).json()["data"] == []

    admin = login("admin@oshudh.test", role="admin")
    assert client.get(f"/orders/{order['_id']}", headers=admin).status_code == 200


def test_invoice_renders_order(client, buyer, filled_cart, payments):
    order = place_order(client, buyer, payments)

    res = client.get(f"/orders/{order['_id']}/invoice", headers=buyer)

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/html")
    assert order["orderId"] in res.text
    assert "470.00" in res.text
    assert "Napa" in res.text


def test_user_dashboard_counts_paid_spend(client, buyer, filled_cart, payments):
    order = place_order(client, buyer, payments, status="processing")

    before = client.get("/user/dashboard", headers=buyer).json()["data"]
    webhook(client, "payment_intent.succeeded", order["paymentIntentId"])
    after = client.get("/user/dashboard", headers=buyer).json()["data"]

    assert before == {"orderCount": 1, "totalSpent": 0.0}
    assert after == {"orderCount": 1, "totalSpent": 470.0}
