from datetime import datetime, timedelta, timezone

import pytest

from parc_paiements.models.items import ItemKind

CUSTOMER = {"fullName": "Ana López", "email": "ana@example.com", "phone": "5512345678"}
CONTACT = {"contactName": "Ana López", "contactEmail": "ana@example.com"}


def _create(client, path, **body):
    body.setdefault("customerData", CUSTOMER)
    return client.post(path, json=body)


def test_activity_intent_and_registration(client, store, fake_stripe):
    # Arrange
    store.add_item(ItemKind.ACTIVITY, "a1", title="Yoga", price=500)

    # Act
    r = _create(client, "/api/v1/activities/a1/create-payment-intent", baseAmount="500", selectedDiscount="none")

    # Assert
    assert r.status_code == 200
    body = r.json()
    assert body["amount"] == 500.0
    assert body["clientSecret"].startswith(body["paymentIntentId"])
    assert r.headers["Cache-Control"].startswith("no-store")

    fake_stripe.succeed(body["paymentIntentId"])
    r2 = client.post("/api/v1/activities/a1/complete-payment-registration", json={
        "paymentIntentId": body["paymentIntentId"], "finalAmount": "500", "selectedDiscount": "none",
        "customerData": CUSTOMER,
    })
    assert r2.status_code == 200
    data = r2.json()
    assert data["success"] is True
    assert data["recordId"] == "rec-1"
    assert data["registration"]["stripe_payment_intent_id"] == body["paymentIntentId"]


def test_event_confirm_payment_twice_returns_409(client, store, fake_stripe):
    store.add_item(ItemKind.EVENT, "e1", price=500)
    intent = _create(client, "/api/v1/events/e1/create-payment-intent").json()
    fake_stripe.succeed(intent["paymentIntentId"])
    payload = {"paymentIntentId": intent["paymentIntentId"], "customerData": CUSTOMER}

    first = client.post("/api/v1/events/e1/confirm-payment", json=payload)
    second = client.post("/api/v1/events/e1/confirm-payment", json=payload)

    assert first.status_code == 200
    assert first.json()["data"]["id"] == "rec-1"
    assert second.status_code == 409
    assert second.json() == {"error": "Paiement déjà finalisé", "code": "already_finalized", "phase": "finalize",
                             "recordId": "rec-1", "amount": 500.0}
    assert len(store.records_for(ItemKind.EVENT, "e1")) == 1


def test_finalize_amount_tampering_is_ignored(client, store, fake_stripe):
    store.add_item(ItemKind.ACTIVITY, "a1", price=500)
    intent = _create(client, "/api/v1/activities/a1/create-payment-intent").json()
    fake_stripe.succeed(intent["paymentIntentId"])

    r = client.post("/api/v1/activities/a1/complete-payment-registration", json={
        "paymentIntentId": intent["paymentIntentId"], "finalAmount": "1", "baseAmount": "1", "customerData": CUSTOMER,
    })

    assert r.status_code == 200
    assert r.json()["amount"] == 500.0
    assert store.records_for(ItemKind.ACTIVITY, "a1")[0]["paid_amount"] == "500.00"


def test_finalize_discount_tampering_is_not_recorded(client, store, fake_stripe):
    store.add_item(ItemKind.ACTIVITY, "a1", price=500, discount_students=50)
    intent = _create(client, "/api/v1/activities/a1/create-payment-intent").json()
    fake_stripe.succeed(intent["paymentIntentId"])

    r = client.post("/api/v1/activities/a1/complete-payment-registration", json={
        "paymentIntentId": intent["paymentIntentId"], "selectedDiscount": "students", "customerData": CUSTOMER,
    })

    assert r.status_code == 200
    assert r.json()["appliedDiscount"] is None
    record = store.records_for(ItemKind.ACTIVITY, "a1")[0]
    assert record["paid_amount"] == "500.00"
    assert record["applied_discount_type"] is None


def test_pay_what_you_wish_below_base_is_400(client, store, fake_stripe):
    store.add_item(ItemKind.ACTIVITY, "a2", price=220, is_price_random=True)
    r = _create(client, "/api/v1/activities/a2/create-payment-intent", customAmount="150")
    assert r.status_code == 400
    assert r.json()["code"] == "custom_amount_below_minimum"
    assert fake_stripe.intents == {}


def test_unknown_item_is_404(client, store, fake_stripe):
    r = _create(client, "/api/v1/events/nope/create-payment-intent")
    assert r.status_code == 404
    assert r.json()["code"] == "item_not_found"


def test_invalid_participant_is_422(client, store, fake_stripe):
    store.add_item(ItemKind.ACTIVITY, "a1", price=500)
    r = client.post("/api/v1/activities/a1/create-payment-intent", json={"customerData": {"fullName": "A", "email": "x"}})
    assert r.status_code == 422


def test_space_reservation_flow(client, store, fake_stripe):
    store.add_item(ItemKind.SPACE_RESERVATION, "s1", total_cost=1500)
    intent = client.post("/api/v1/space-reservations/s1/create-payment-intent", json={"contactData": CONTACT}).json()
    assert intent["amount"] == 1500.0
    fake_stripe.succeed(intent["paymentIntentId"])

    r = client.post("/api/v1/space-reservations/s1/payment-confirm", json={
        "paymentIntentId": intent["paymentIntentId"], "contactData": CONTACT,
    })
    assert r.status_code == 200
    assert r.json()["reservation"]["id"] == "rec-1"


def test_space_reservation_has_no_free_registration(client, store):
    r = client.post("/api/v1/space-reservations/s1/register-free", json={"customerData": CUSTOMER})
    assert r.status_code in (404, 405)


def test_free_event_registration(client, store, fake_stripe):
    store.add_item(ItemKind.EVENT, "free", price=0, is_free=True)

    refused = _create(client, "/api/v1/events/free/create-payment-intent")
    registered = client.post("/api/v1/events/free/register-free", json={"customerData": CUSTOMER})

    assert refused.status_code == 400
    assert refused.json()["code"] == "item_is_free"
    assert registered.status_code == 200
    assert registered.json()["amount"] == 0.0
    assert fake_stripe.intents == {}


def test_discounts_endpoint(client, store):
    deadline = (datetime.now(timezone.utc) + timedelta(days=2)).isoformat()
    store.add_item(ItemKind.EVENT, "e2", price=1000, discount_early_bird=20, discount_early_bird_deadline=deadline)

    r = client.get("/api/v1/events/e2/discounts", params={"selectedDiscount": "early_bird"})

    assert r.status_code == 200
    body = r.json()
    assert [d["id"] for d in body["eligibleDiscounts"]] == ["early_bird"]
    assert body["finalAmount"] == 800.0


@pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity"])
def test_discounts_endpoint_invalid_amount(client, store, raw):
    store.add_item(ItemKind.ACTIVITY, "a2", price=220, is_price_random=True)
    r = client.get("/api/v1/activities/a2/discounts", params={"customAmount": raw})
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_amount"


def test_payment_status_endpoint(client, store, fake_stripe):
    store.add_item(ItemKind.ACTIVITY, "a1", price=500)
    intent = _create(client, "/api/v1/activities/a1/create-payment-intent").json()

    r = client.get(f"/api/v1/activities/a1/payment-status/{intent['paymentIntentId']}")

    assert r.status_code == 200
    assert r.json()["status"] == "requires_payment_method"
    assert r.json()["finalized"] is False


def test_payments_config(client):
    r = client.get("/api/v1/payments/config")
    assert r.status_code == 200
    assert r.json()["currency"] == "mxn"
    assert "publishableKey" in r.json()
