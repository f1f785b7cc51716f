import pytest
import stripe

from parc_paiements.checkout import CardInput, StripeCardGateway
from parc_paiements.checkout.gateway import intent_id_from_secret
from parc_paiements.errors import GatewayError, Phase, ValidationError


@pytest.fixture
def gateway():
    return StripeCardGateway(publishable_key="pk_test_123")


def test_intent_id_from_secret():
    assert intent_id_from_secret("pi_3Nx_secret_abc") == "pi_3Nx"
    with pytest.raises(ValidationError):
        intent_id_from_secret("not-a-secret")


def test_confirm_charge_success(gateway, monkeypatch):
    captured = {}

    def _confirm(intent_id, **kwargs):
        captured["intent_id"] = intent_id
        captured.update(kwargs)
        return {"id": intent_id, "status": "succeeded"}

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", _confirm)
    reference = gateway.confirm_charge("pi_1_secret_x", CardInput("pm_card_visa"))

    assert reference == "pi_1"
    assert captured["intent_id"] == "pi_1"
    assert captured["client_secret"] == "pi_1_secret_x"
    assert captured["payment_method"] == "pm_card_visa"
    assert captured["api_key"] == "pk_test_123"


def test_confirm_charge_missing_card(gateway, monkeypatch):
    def _confirm(*args, **kwargs):
        raise AssertionError("Stripe ne doit pas être appelé sans carte")

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", _confirm)
    with pytest.raises(ValidationError) as exc:
        gateway.confirm_charge("pi_1_secret_x", None)
    assert exc.value.phase == Phase.CHARGE
    assert exc.value.code == "missing_card"


def test_confirm_charge_declined(gateway, monkeypatch):
    def _confirm(*args, **kwargs):
        raise stripe.CardError("Your card has expired.", "exp_month", "expired_card")

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", _confirm)
    with pytest.raises(GatewayError) as exc:
        gateway.confirm_charge("pi_1_secret_x", CardInput("pm_card_chargeDeclinedExpiredCard"))
    assert exc.value.phase == Phase.CHARGE
    assert exc.value.code == "card_declined"
    assert exc.value.message == "La carte a expiré"


def test_confirm_charge_network_failure(gateway, monkeypatch):
    def _confirm(*args, **kwargs):
        raise stripe.APIConnectionError("Network error")

    monkeypatch.setattr(stripe.PaymentIntent, "confirm", _confirm)
    with pytest.raises(GatewayError) as exc:
        gateway.confirm_charge("pi_1_secret_x", CardInput("pm_card_visa"))
    assert exc.value.code == "gateway_unreachable"


def test_confirm_charge_requires_action(gateway, monkeypatch):
    monkeypatch.setattr(stripe.PaymentIntent, "confirm", lambda *a, **kw: {"id": "pi_1", "status": "requires_action"})
    with pytest.raises(GatewayError) as exc:
        gateway.confirm_charge("pi_1_secret_x", CardInput("pm_card_authenticationRequired"))
    assert exc.value.code == "requires_action"


def test_confirm_charge_unexpected_status(gateway, monkeypatch):
    monkeypatch.setattr(stripe.PaymentIntent, "confirm", lambda *a, **kw: {"id": "pi_1", "status": "requires_payment_method"})
    with pytest.raises(GatewayError) as exc:
        gateway.confirm_charge("pi_1_secret_x", CardInput("pm_card_visa"))
    assert exc.value.code == "card_declined"
