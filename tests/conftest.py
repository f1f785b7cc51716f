import os

# Avant tout import de parc_paiements (config lue à l'import)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("PAYMENT_CURRENCY", "mxn")
os.environ.setdefault("STRIPE_PUBLIC_KEY", "pk_test_dummy")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

import time
from typing import Any, Dict, Generator, Optional, Tuple
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from parc_paiements.app_setup.factory import create_app
from parc_paiements.errors import GatewayError, Phase, ValidationError
from parc_paiements.models.items import ItemKind, ParticipantData
from parc_paiements.paiements import repository


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def app():
    return create_app()


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


# Aucun accès réseau à Supabase pendant les tests
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("parc_paiements.infra.supabase_client.get_catalog_client", lambda: MagicMock())
    monkeypatch.setattr("parc_paiements.infra.supabase_client.get_registrations_client", lambda: MagicMock())


@pytest.fixture
def participant() -> ParticipantData:
    return ParticipantData(full_name="Ana López", email="ana@example.com", phone="5512345678")


class InMemoryStore:
    """Remplace le repository Supabase: offres + inscriptions indexées par référence de paiement."""

    def __init__(self):
        self.items: Dict[Tuple[ItemKind, str], Dict[str, Any]] = {}
        self.records: Dict[Tuple[ItemKind, str], Dict[str, Any]] = {}
        self.free_records = []

    def add_item(self, kind: ItemKind, item_id: str, **row) -> Dict[str, Any]:
        row = dict(row, id=item_id)
        self.items[(kind, item_id)] = row
        return row

    def get_item_row(self, kind, item_id):
        return self.items.get((kind, str(item_id)))

    def find_record_by_charge(self, kind, charge_reference):
        return self.records.get((kind, charge_reference))

    def insert_paid_record(self, *, kind, item_id, participant, quote, charge_reference, paid_amount):
        if (kind, charge_reference) in self.records:
            raise repository.DuplicateChargeReference(charge_reference)
        record = {
            "id": f"rec-{len(self.records) + 1}",
            "item_id": item_id,
            "participant_email": participant.email,
            "stripe_payment_intent_id": charge_reference,
            "paid_amount": str(paid_amount),
            "applied_discount_type": quote.discount.id if quote.discount else None,
            "original_amount": str(quote.original_amount),
        }
        self.records[(kind, charge_reference)] = record
        return record

    def insert_free_registration(self, *, kind, item_id, participant):
        record = {"id": f"free-{len(self.free_records) + 1}", "item_id": item_id, "paid_amount": "0.00"}
        self.free_records.append(record)
        return record

    def records_for(self, kind: ItemKind, item_id: str):
        return [r for (k, _), r in self.records.items() if k == kind and r["item_id"] == item_id]


@pytest.fixture
def store(monkeypatch) -> InMemoryStore:
    s = InMemoryStore()
    monkeypatch.setattr("parc_paiements.paiements.repository.get_item_row", s.get_item_row)
    monkeypatch.setattr("parc_paiements.paiements.repository.find_record_by_charge", s.find_record_by_charge)
    monkeypatch.setattr("parc_paiements.paiements.repository.insert_paid_record", s.insert_paid_record)
    monkeypatch.setattr("parc_paiements.paiements.repository.insert_free_registration", s.insert_free_registration)
    return s


class FakeStripe:
    """PaymentIntents en mémoire, mêmes formes de dict que stripe_client."""

    def __init__(self):
        self.intents: Dict[str, Dict[str, Any]] = {}

    def create_payment_intent(self, *, amount_cents, currency, metadata, description, receipt_email=None):
        intent_id = f"pi_test{len(self.intents) + 1}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_abc",
            "amount": amount_cents,
            "currency": currency,
            "metadata": dict(metadata),
            "description": description,
            "status": "requires_payment_method",
            "created": int(time.time()),
        }
        self.intents[intent_id] = intent
        return dict(intent)

    def retrieve_payment_intent(self, intent_id, phase=Phase.FINALIZE):
        if intent_id not in self.intents:
            raise ValidationError("Paiement introuvable", phase=phase, code="unknown_payment")
        return dict(self.intents[intent_id])

    def succeed(self, intent_id: str, amount_received: Optional[int] = None) -> None:
        intent = self.intents[intent_id]
        intent["status"] = "succeeded"
        intent["amount_received"] = intent["amount"] if amount_received is None else amount_received


@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr("parc_paiements.paiements.stripe_client.create_payment_intent", fake.create_payment_intent)
    monkeypatch.setattr("parc_paiements.paiements.stripe_client.retrieve_payment_intent", fake.retrieve_payment_intent)
    return fake


DECLINED_CARD = "pm_card_chargeDeclined"


class FakeCardGateway:
    """Confirme la carte sur FakeStripe; DECLINED_CARD est toujours refusée."""

    def __init__(self, stripe_fake: FakeStripe):
        self.stripe = stripe_fake
        self.calls = []

    def confirm_charge(self, client_secret, card):
        self.calls.append(card)
        if card is None:
            raise ValidationError("Veuillez saisir les informations de votre carte", phase=Phase.CHARGE, code="missing_card")
        intent_id = client_secret.partition("_secret_")[0]
        if card.payment_method == DECLINED_CARD:
            raise GatewayError("Carte refusée, essayez une autre carte", phase=Phase.CHARGE, code="card_declined")
        self.stripe.succeed(intent_id)
        return intent_id


@pytest.fixture
def card_gateway(fake_stripe) -> FakeCardGateway:
    return FakeCardGateway(fake_stripe)
