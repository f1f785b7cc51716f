"""
Adaptateurs par type d'offre: chemins et forme des corps pour les deux appels backend.

Aucune logique métier ici, seulement du routage: le coordinateur et le calcul des
remises sont écrits une fois et réutilisés pour les trois types.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from parc_paiements.errors import Phase, UpstreamError
from parc_paiements.models.items import ItemKind, ParticipantData, PayableItem
from parc_paiements.remises.calcul import NO_DISCOUNT
from parc_paiements.utils.money import to_decimal
from .state import CheckoutDraft, TransactionRecord


@dataclass(frozen=True)
class BackendRequest:
    path: str
    payload: Dict[str, Any]


@dataclass(frozen=True)
class IntentResult:
    payment_intent_id: str
    client_secret: str
    amount: Optional[Decimal] = None
    original_amount: Optional[Decimal] = None
    applied_discount: Optional[str] = None


@dataclass(frozen=True)
class FinalizeResult:
    record_id: Optional[str]
    amount: Optional[Decimal] = None


def _amount(value) -> Optional[str]:
    return None if value is None else str(value)


class ItemAdapter:
    kind: ItemKind
    collection: str
    finalize_action: str
    record_key: str
    participant_key = "customerData"

    def intent_path(self, item_id: str) -> str:
        return f"/api/v1/{self.collection}/{item_id}/create-payment-intent"

    def finalize_path(self, item_id: str) -> str:
        return f"/api/v1/{self.collection}/{item_id}/{self.finalize_action}"

    def participant_payload(self, participant: ParticipantData) -> Dict[str, Any]:
        return participant.model_dump(by_alias=True, exclude_none=True)

    def _amounts(self, item: PayableItem, draft: CheckoutDraft) -> Dict[str, Any]:
        payload = {
            "baseAmount": _amount(item.price),
            "selectedDiscount": draft.selection or NO_DISCOUNT,
        }
        if item.is_price_random and draft.custom_amount is not None:
            payload["customAmount"] = _amount(draft.custom_amount)
        return payload

    # module parc_paiements.checkout.adapters
    def build_intent_request(self, item: PayableItem, participant: ParticipantData, draft: CheckoutDraft) -> BackendRequest:
        """Corps de create-payment-intent: participant, montant de base/libre, id de remise (jamais le total)."""
        payload = self._amounts(item, draft)
        payload[self.participant_key] = self.participant_payload(participant)
        return BackendRequest(self.intent_path(item.id), payload)

    def build_finalize_request(self, item: PayableItem, participant: ParticipantData, record: TransactionRecord) -> BackendRequest:
        """
        Corps de finalisation: référence de paiement + mêmes montant et remise qu'en phase 1.
        finalAmount n'est qu'indicatif (montant annoncé par le backend en phase 1).
        """
        payload = self._amounts(item, record.draft)
        payload["paymentIntentId"] = record.charge_reference
        payload["finalAmount"] = _amount(record.quoted_amount)
        payload[self.participant_key] = self.participant_payload(participant)
        return BackendRequest(self.finalize_path(item.id), payload)

    def parse_intent_response(self, body: Dict[str, Any]) -> IntentResult:
        client_secret = body.get("clientSecret")
        intent_id = body.get("paymentIntentId")
        if not client_secret or not intent_id:
            raise UpstreamError("Réponse du serveur de paiement invalide", phase=Phase.INTENT, code="invalid_response")
        discount = body.get("appliedDiscount") or {}
        return IntentResult(
            payment_intent_id=intent_id,
            client_secret=client_secret,
            amount=to_decimal(body.get("amount")),
            original_amount=to_decimal(body.get("originalAmount")),
            applied_discount=discount.get("type") if isinstance(discount, dict) else None,
        )

    def parse_finalize_response(self, body: Dict[str, Any]) -> FinalizeResult:
        record = body.get(self.record_key) or {}
        record_id = body.get("recordId") or (record.get("id") if isinstance(record, dict) else None)
        return FinalizeResult(record_id=record_id, amount=to_decimal(body.get("amount")))


class ActivityAdapter(ItemAdapter):
    kind = ItemKind.ACTIVITY
    collection = "activities"
    finalize_action = "complete-payment-registration"
    record_key = "registration"


class EventAdapter(ItemAdapter):
    kind = ItemKind.EVENT
    collection = "events"
    finalize_action = "confirm-payment"
    record_key = "data"


class SpaceReservationAdapter(ItemAdapter):
    kind = ItemKind.SPACE_RESERVATION
    collection = "space-reservations"
    finalize_action = "payment-confirm"
    record_key = "reservation"
    participant_key = "contactData"

    def participant_payload(self, participant: ParticipantData) -> Dict[str, Any]:
        payload = {"contactName": participant.full_name, "contactEmail": participant.email}
        if participant.phone:
            payload["contactPhone"] = participant.phone
        if participant.notes:
            payload["notes"] = participant.notes
        return payload


_ADAPTERS = {
    ItemKind.ACTIVITY: ActivityAdapter(),
    ItemKind.EVENT: EventAdapter(),
    ItemKind.SPACE_RESERVATION: SpaceReservationAdapter(),
}


def get_adapter(kind: ItemKind) -> ItemAdapter:
    return _ADAPTERS[ItemKind(kind)]
