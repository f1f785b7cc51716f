from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from parc_paiements.errors import ItemNotFound, Phase, UpstreamError, ValidationError
from parc_paiements.models.items import ItemKind
from parc_paiements.paiements import service

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_intent_for_base_price_without_discount(store, fake_stripe, participant):
    # Arrange
    store.add_item(ItemKind.ACTIVITY, "a1", title="Yoga", price=500)

    # Act
    result = service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="a1", participant=participant, now=NOW)

    # Assert
    assert result["amount"] == 500.0
    assert result["originalAmount"] == 500.0
    assert result["appliedDiscount"] is None
    assert result["currency"] == "mxn"
    intent = fake_stripe.intents[result["paymentIntentId"]]
    assert intent["amount"] == 50000
    assert result["clientSecret"] == intent["client_secret"]
    assert intent["metadata"]["item_kind"] == "activity"
    assert intent["metadata"]["discount_type"] == "none"


def test_intent_amount_ignores_client_base_amount(store, fake_stripe, participant):
    store.add_item(ItemKind.EVENT, "e1", price=500)
    result = service.create_payment_intent(kind=ItemKind.EVENT, item_id="e1", participant=participant,
                                           base_amount=Decimal("1"), now=NOW)
    assert fake_stripe.intents[result["paymentIntentId"]]["amount"] == 50000


def test_intent_early_bird_before_deadline(store, fake_stripe, participant):
    store.add_item(ItemKind.EVENT, "e2", price=1000, discount_early_bird=20,
                   discount_early_bird_deadline=(NOW + timedelta(days=2)).isoformat())
    result = service.create_payment_intent(kind=ItemKind.EVENT, item_id="e2", participant=participant,
                                           selection="early_bird", now=NOW)
    assert result["amount"] == 800.0
    assert result["appliedDiscount"] == {"type": "early_bird", "label": "Inscription anticipée", "percentage": 20, "amount": 200.0}
    assert fake_stripe.intents[result["paymentIntentId"]]["amount"] == 80000


def test_intent_early_bird_after_deadline_falls_back(store, fake_stripe, participant):
    store.add_item(ItemKind.EVENT, "e2", price=1000, discount_early_bird=20,
                   discount_early_bird_deadline=(NOW - timedelta(days=1)).isoformat())
    result = service.create_payment_intent(kind=ItemKind.EVENT, item_id="e2", participant=participant,
                                           selection="early_bird", now=NOW)
    assert result["amount"] == 1000.0
    assert result["appliedDiscount"] is None
    assert fake_stripe.intents[result["paymentIntentId"]]["metadata"]["discount_type"] == "none"


def test_intent_pay_what_you_wish(store, fake_stripe, participant):
    store.add_item(ItemKind.ACTIVITY, "a2", price=220, is_price_random=True)

    with pytest.raises(ValidationError) as exc:
        service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="a2", participant=participant,
                                      custom_amount=Decimal("150"), now=NOW)
    assert exc.value.code == "custom_amount_below_minimum"
    assert fake_stripe.intents == {}

    result = service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="a2", participant=participant,
                                           custom_amount=Decimal("300"), now=NOW)
    assert result["amount"] == 300.0
    intent = fake_stripe.intents[result["paymentIntentId"]]
    assert intent["amount"] == 30000
    assert intent["metadata"]["custom_amount"] == "300.00"


def test_intent_unknown_item(store, fake_stripe, participant):
    with pytest.raises(ItemNotFound) as exc:
        service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="nope", participant=participant, now=NOW)
    assert exc.value.status_code == 404


def test_intent_rejects_free_item(store, fake_stripe, participant):
    store.add_item(ItemKind.ACTIVITY, "free", price=0, is_free=True)
    with pytest.raises(ValidationError) as exc:
        service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="free", participant=participant, now=NOW)
    assert exc.value.code == "item_is_free"


def test_intent_rejects_full_discount(store, fake_stripe, participant):
    store.add_item(ItemKind.ACTIVITY, "a3", price=300, discount_disability=100)
    with pytest.raises(ValidationError) as exc:
        service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="a3", participant=participant,
                                      selection="disability", now=NOW)
    assert exc.value.code == "zero_amount"
    assert fake_stripe.intents == {}


def test_intent_rejects_unknown_discount(store, fake_stripe, participant):
    store.add_item(ItemKind.ACTIVITY, "a1", price=500)
    with pytest.raises(ValidationError) as exc:
        service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="a1", participant=participant,
                                      selection="vip", now=NOW)
    assert exc.value.code == "unknown_discount"


def test_intent_space_reservation_already_paid(store, fake_stripe, participant):
    store.add_item(ItemKind.SPACE_RESERVATION, "s1", total_cost=1500, stripe_payment_intent_id="pi_old")
    with pytest.raises(ValidationError) as exc:
        service.create_payment_intent(kind=ItemKind.SPACE_RESERVATION, item_id="s1", participant=participant, now=NOW)
    assert exc.value.code == "already_paid"


def test_intent_space_reservation_uses_total_cost(store, fake_stripe, participant):
    store.add_item(ItemKind.SPACE_RESERVATION, "s2", total_cost="1500.50")
    result = service.create_payment_intent(kind=ItemKind.SPACE_RESERVATION, item_id="s2", participant=participant, now=NOW)
    assert fake_stripe.intents[result["paymentIntentId"]]["amount"] == 150050


def test_intent_gateway_unavailable(store, participant, monkeypatch):
    store.add_item(ItemKind.ACTIVITY, "a1", price=500)

    def _down(**kwargs):
        raise UpstreamError("Le service de paiement est indisponible, veuillez réessayer", phase=Phase.INTENT)

    monkeypatch.setattr("parc_paiements.paiements.service.stripe_client.create_payment_intent", _down)
    with pytest.raises(UpstreamError) as exc:
        service.create_payment_intent(kind=ItemKind.ACTIVITY, item_id="a1", participant=participant, now=NOW)
    assert exc.value.phase == Phase.INTENT


def test_quote_for_item_lists_eligible_discounts(store):
    store.add_item(ItemKind.EVENT, "e3", price=400, discount_students=25, discount_seniors=0)
    result = service.quote_for_item(kind=ItemKind.EVENT, item_id="e3", selection="students", now=NOW)
    assert [d["id"] for d in result["eligibleDiscounts"]] == ["students"]
    assert result["selectedDiscount"] == "students"
    assert result["finalAmount"] == 300.0


def test_register_free(store, participant):
    store.add_item(ItemKind.EVENT, "free", price=0, is_free=True)
    result = service.register_free(kind=ItemKind.EVENT, item_id="free", participant=participant)
    assert result["amount"] == 0.0
    assert len(store.free_records) == 1


def test_register_free_refuses_paid_item(store, participant):
    store.add_item(ItemKind.EVENT, "e1", price=500)
    with pytest.raises(ValidationError) as exc:
        service.register_free(kind=ItemKind.EVENT, item_id="e1", participant=participant)
    assert exc.value.code == "item_not_free"
